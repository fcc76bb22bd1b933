"""
WooCommerce webhook signature verification.

WooCommerce sends X-WC-Webhook-Signature: base64(HMAC-SHA256(raw body, secret)).
Always verify against the raw request bytes; re-serialized JSON will not match.
"""
import base64
import hashlib
import hmac


def sign_payload(body: bytes | str, secret: str) -> str:
    """Compute the base64-encoded HMAC-SHA256 signature of a payload."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes | str, signature: str | None, secret: str) -> bool:
    """
    Check a claimed signature in constant time.

    Returns False for a missing signature.
    """
    if not signature:
        return False
    expected = sign_payload(body, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))
