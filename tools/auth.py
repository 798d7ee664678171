from typing import Optional

from loguru import logger


def is_authorized(authorization: Optional[str], api_secret: Optional[str]) -> bool:
    """
    Check an `Authorization: Bearer <token>` header against the operator secret.

    The system is operator-only, so a single shared secret is enough.
    """
    if not api_secret:
        logger.error("API_SECRET not configured, rejecting operator request")
        return False

    if not authorization or not authorization.startswith("Bearer "):
        return False

    # TODO: compare with hmac.compare_digest
    return authorization[len("Bearer "):] == api_secret
