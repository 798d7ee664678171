import hashlib
import hmac

import pytest

from tools.signature import compute_signature, parse_signature_header, verify_signature

SECRET = "whsec_unit"
BODY = b'{"id":"evt_1","type":"checkout.session.completed"}'
NOW = 1_700_000_000


def header_for(body: bytes, ts: int, secret: str = SECRET) -> str:
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


class TestSignatureVerification:
    """Webhook signature parsing, freshness and digest checks."""

    def test_valid_signature(self):
        """A correctly signed, fresh payload verifies."""
        result = verify_signature(BODY, header_for(BODY, NOW), SECRET, now=NOW)

        assert result.valid is True
        assert result.error is None

    def test_digest_is_lowercase_hex_over_timestamp_dot_body(self):
        """The signed payload is the timestamp as received, a dot, then the raw body."""
        expected = hmac.new(SECRET.encode(), b"1700000000." + BODY, hashlib.sha256).hexdigest()

        assert compute_signature(BODY, "1700000000", SECRET) == expected
        assert expected == expected.lower()

    @pytest.mark.parametrize("position", [0, 17, 63])
    def test_flipped_digest_bit_fails(self, position):
        """Changing any single bit of the digest invalidates it."""
        digest = compute_signature(BODY, str(NOW), SECRET)
        flipped = format(int(digest[position], 16) ^ 0x1, "x")
        tampered = digest[:position] + flipped + digest[position + 1:]

        result = verify_signature(BODY, f"t={NOW},v1={tampered}", SECRET, now=NOW)

        assert result.valid is False
        assert result.error == "Signature mismatch"

    def test_modified_body_fails(self):
        """The digest covers the exact raw bytes."""
        header = header_for(BODY, NOW)

        result = verify_signature(BODY + b" ", header, SECRET, now=NOW)

        assert result.valid is False

    def test_wrong_secret_fails(self):
        result = verify_signature(BODY, header_for(BODY, NOW, secret="other"), SECRET, now=NOW)

        assert result.valid is False

    def test_any_of_multiple_signatures_matches(self):
        """Key rotation: one matching v1 among several is enough."""
        good = compute_signature(BODY, str(NOW), SECRET)
        header = f"t={NOW},v1={'0' * 64},v1={good}"

        result = verify_signature(BODY, header, SECRET, now=NOW)

        assert result.valid is True

    def test_length_mismatch_is_not_equal(self):
        good = compute_signature(BODY, str(NOW), SECRET)

        result = verify_signature(BODY, f"t={NOW},v1={good[:-2]}", SECRET, now=NOW)

        assert result.valid is False
        assert result.error == "Signature mismatch"

    def test_timestamp_too_old_fails_even_with_correct_digest(self):
        ts = NOW - 301

        result = verify_signature(BODY, header_for(BODY, ts), SECRET, now=NOW)

        assert result.valid is False
        assert "too old" in result.error

    def test_timestamp_at_tolerance_edge_is_accepted(self):
        ts = NOW - 300

        assert verify_signature(BODY, header_for(BODY, ts), SECRET, now=NOW).valid is True

    def test_timestamp_in_future_fails(self):
        ts = NOW + 61

        result = verify_signature(BODY, header_for(BODY, ts), SECRET, now=NOW)

        assert result.valid is False
        assert result.error == "Timestamp is in the future"

    def test_small_clock_skew_is_accepted(self):
        ts = NOW + 60

        assert verify_signature(BODY, header_for(BODY, ts), SECRET, now=NOW).valid is True

    @pytest.mark.parametrize("header", [
        "",
        f"t={NOW}",
        "v1=abcdef",
        "garbage",
        f"t=,v1={'a' * 64}",
    ])
    def test_malformed_header_fails(self, header):
        result = verify_signature(BODY, header, SECRET, now=NOW)

        assert result.valid is False
        assert result.error == "Missing timestamp or signature in header"

    def test_non_numeric_timestamp_fails(self):
        result = verify_signature(BODY, f"t=soon,v1={'a' * 64}", SECRET, now=NOW)

        assert result.valid is False

    def test_parse_header_collects_repeated_v1(self):
        timestamp, signatures = parse_signature_header("t=123,v1=aaa,v0=zzz,v1=bbb")

        assert timestamp == "123"
        assert signatures == ["aaa", "bbb"]
