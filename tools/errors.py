from typing import Optional


class ApiError(Exception):
    """Error that maps directly onto an HTTP status and a client-facing message."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    status_code = 400


class PreconditionFailed(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(ApiError):
    status_code = 404


class RateLimited(ApiError):
    status_code = 429


class UpstreamError(ApiError):
    status_code = 502
