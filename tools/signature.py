import hashlib
import hmac
import time
from typing import List, NamedTuple, Optional

from config import SIGNATURE_MAX_FUTURE_SECONDS, SIGNATURE_TOLERANCE_SECONDS


class VerifyResult(NamedTuple):
    valid: bool
    error: Optional[str] = None


def parse_signature_header(header: str):
    """
    Split a `t=<ts>,v1=<sig>[,v1=<sig>...]` header.

    Returns:
        Tuple of (timestamp string or None, list of v1 signatures)
    """
    timestamp = None
    signatures: List[str] = []

    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)

    return timestamp, signatures


def compute_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    """Lowercase hex HMAC-SHA256 of `"{timestamp}.{raw_body}"`."""
    signed_payload = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def verify_signature(
    raw_body: bytes,
    header: str,
    secret: str,
    now: Optional[int] = None,
) -> VerifyResult:
    """
    Verify a payment provider webhook signature.

    Args:
        raw_body: Request body exactly as received
        header: Value of the signature header
        secret: Shared webhook signing secret
        now: Current Unix time (defaults to the wall clock)

    Returns:
        VerifyResult with a diagnostic error when invalid
    """
    timestamp, signatures = parse_signature_header(header or "")
    if not timestamp or not signatures:
        return VerifyResult(False, "Missing timestamp or signature in header")

    try:
        ts = int(timestamp)
    except ValueError:
        return VerifyResult(False, "Invalid timestamp in header")

    now = int(time.time()) if now is None else now

    if ts > now + SIGNATURE_MAX_FUTURE_SECONDS:
        return VerifyResult(False, "Timestamp is in the future")

    age = now - ts
    if age > SIGNATURE_TOLERANCE_SECONDS:
        return VerifyResult(False, f"Timestamp too old ({age}s > {SIGNATURE_TOLERANCE_SECONDS}s)")

    expected = compute_signature(raw_body, timestamp, secret)

    # Provider key rotation sends several v1 values; any one may match
    matched = False
    for candidate in signatures:
        if hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8")):
            matched = True

    if not matched:
        return VerifyResult(False, "Signature mismatch")

    return VerifyResult(True)
