"""LINE webhook signature verification.

LINE signs the exact request bytes: ``base64(HMAC-SHA256(channel_secret, body))``
in the ``x-line-signature`` header. The body must be verified as received;
parsing and re-encoding the JSON changes whitespace and key order and breaks
the signature.
"""

from __future__ import annotations

import base64
import hashlib
import hmac

SIGNATURE_HEADER = "x-line-signature"


def compute_signature(body: bytes, secret: str) -> str:
    """Return the base64 HMAC-SHA256 of *body* keyed with *secret*."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, secret: str, signature: str | None) -> bool:
    """Constant-time check of *signature* against *body*.

    Fails closed when the secret or the header is missing. Never raises.
    """
    if not secret or not signature:
        return False
    try:
        expected = compute_signature(body, secret)
        return hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii"))
    except (UnicodeEncodeError, TypeError):
        return False
