from typing import Any

from fastapi.responses import JSONResponse


def ok(data: Any) -> JSONResponse:
    """Success envelope for the JSON API."""
    return JSONResponse(status_code=200, content={"success": True, "data": data, "error": None})


def err(message: str, status_code: int = 400) -> JSONResponse:
    """Failure envelope for the JSON API."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": None, "error": message},
    )
