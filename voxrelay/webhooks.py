"""Signature verification for assistant-provider webhooks."""

from __future__ import annotations

import hashlib
import hmac

from voxrelay.core.errors import SignatureMismatch


def compute_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str | None) -> None:
    """Check a webhook body against its signature header.

    With no secret configured every body is accepted. A ``sha256=`` prefix
    on the header is tolerated.

    Raises:
        SignatureMismatch: If a secret is configured and the signature is
            missing or wrong.
    """
    if not secret:
        return
    if not signature:
        raise SignatureMismatch("Missing webhook signature")
    provided = signature.strip()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]
    expected = compute_signature(body, secret)
    # compare_digest only accepts ASCII str, so compare the encoded bytes
    if not hmac.compare_digest(
        expected.encode("ascii"), provided.lower().encode("utf-8", "replace")
    ):
        raise SignatureMismatch("Webhook signature does not match body")
