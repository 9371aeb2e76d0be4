"""
Webhook signature validation - verify incoming webhooks are authentic.

Senders sign the exact request body bytes with HMAC-SHA256 using the shared
secret and send the lowercase hex digest in X-Webhook-Signature.
"""
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"


def compute_signature(secret: str, body: bytes) -> str:
    """HMAC-SHA256 of body under secret, lowercase hex."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def validate_hmac_sha256(secret: str, signature: Optional[str], body: bytes) -> bool:
    """
    Validate HMAC-SHA256 webhook signature.
    Returns True if valid, False if missing or mismatched.
    """
    if not secret or not signature:
        return False

    expected = compute_signature(secret, body).encode("ascii")
    # bytes on both sides: compare_digest rejects non-ASCII str
    return hmac.compare_digest(expected, signature.strip().lower().encode("utf-8"))


def compute_payload_hash(body: bytes) -> str:
    """Compute SHA-256 hash of raw payload for dedup and audit."""
    return hashlib.sha256(body).hexdigest()
