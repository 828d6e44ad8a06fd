"""GitHub-style HMAC webhook signatures."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def sign_payload(body: bytes, secret: str) -> str:
    """Return the ``X-Hub-Signature-256`` header value for a body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Check a ``sha256=<hex>`` signature against the raw request body.

    Missing or malformed signatures, and an empty secret, simply fail
    verification. The digest comparison is constant-time.
    """
    if not secret or not signature:
        return False
    if not signature.startswith(SIGNATURE_PREFIX):
        return False

    expected = sign_payload(body, secret)
    return hmac.compare_digest(
        expected.encode("ascii"),
        signature.encode("utf-8", errors="replace"),
    )
