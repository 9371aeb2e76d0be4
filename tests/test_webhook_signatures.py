"""
Webhook signature validation tests.
These protect the authentication boundary for all inbound data.
"""
import hashlib
import hmac

from hookrelay.utils.webhook_signatures import (
    compute_payload_hash,
    compute_signature,
    validate_hmac_sha256,
)

SECRET = "test-secret"
BODY = b'{"unit_id": "bldg-1-unit-2"}'


class TestComputeSignature:
    def test_matches_hmac_sha256_hex(self):
        expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert compute_signature(SECRET, BODY) == expected

    def test_is_lowercase_hex(self):
        sig = compute_signature(SECRET, BODY)
        assert sig == sig.lower()
        assert len(sig) == 64


class TestValidateHmacSha256:
    def test_valid_signature(self):
        assert validate_hmac_sha256(SECRET, compute_signature(SECRET, BODY), BODY) is True

    def test_uppercase_signature_accepted(self):
        assert validate_hmac_sha256(SECRET, compute_signature(SECRET, BODY).upper(), BODY) is True

    def test_wrong_secret_rejected(self):
        assert validate_hmac_sha256(SECRET, compute_signature("other", BODY), BODY) is False

    def test_modified_body_rejected(self):
        sig = compute_signature(SECRET, BODY)
        assert validate_hmac_sha256(SECRET, sig, BODY + b" ") is False

    def test_missing_signature_rejected(self):
        assert validate_hmac_sha256(SECRET, None, BODY) is False
        assert validate_hmac_sha256(SECRET, "", BODY) is False

    def test_missing_secret_rejected(self):
        assert validate_hmac_sha256("", compute_signature(SECRET, BODY), BODY) is False

    def test_non_ascii_signature_rejected(self):
        assert validate_hmac_sha256(SECRET, "\u00ff" * 64, BODY) is False
        assert validate_hmac_sha256(SECRET, compute_signature(SECRET, BODY)[:-1] + "\u00e9", BODY) is False


class TestComputePayloadHash:
    def test_sha256_of_raw_bytes(self):
        assert compute_payload_hash(BODY) == hashlib.sha256(BODY).hexdigest()

    def test_whitespace_changes_hash(self):
        assert compute_payload_hash(b'{"a":1}') != compute_payload_hash(b'{"a": 1}')
