# payments/signatures.py
"""
HMAC-SHA256 signature checks for the payment gateway.

Webhook signatures are computed over the exact raw request body. Any
re-serialization (key order, whitespace, unicode escaping) changes the
digest, so callers must pass request.body untouched.
"""

import hmac
import hashlib
from typing import Optional


def compute_signature(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Check a webhook signature header against the shared secret.

    A missing secret or a missing/empty header is never valid.
    """
    if not secret or not signature:
        return False

    expected = compute_signature(secret, raw_body)
    return hmac.compare_digest(expected, signature.strip())


def verify_checkout_signature(order_id: str, payment_id: str, signature: Optional[str],
                              key_secret: Optional[str]) -> bool:
    """Check the signature the checkout widget returns: HMAC of 'order_id|payment_id'."""
    if not key_secret or not signature:
        return False

    message = f"{order_id}|{payment_id}".encode('utf-8')
    return hmac.compare_digest(compute_signature(key_secret, message), signature.strip())
