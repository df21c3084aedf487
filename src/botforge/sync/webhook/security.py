"""Signature verification for inbound GitHub webhooks.

GitHub signs each delivery with HMAC-SHA256 over the raw request body using
the secret configured on the repository webhook, and sends the hex digest in
``X-Hub-Signature-256`` as ``sha256=<hex>``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import string
from typing import Optional, Union

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="
_DIGEST_HEX_LENGTH = hashlib.sha256().digest_size * 2
_HEX_DIGITS = frozenset(string.hexdigits)


def compute_signature(payload_body: bytes, secret: Union[bytes, str]) -> str:
    """Compute the ``sha256=<hex>`` signature header value for a payload."""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    digest = hmac.new(key=key, msg=payload_body, digestmod=hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def is_unsecured(secret: Optional[Union[bytes, str]]) -> bool:
    """True when no shared secret is configured."""
    return secret is None or len(secret) == 0


def verify_webhook_signature(
    payload_body: bytes,
    signature_header: Optional[str],
    secret: Optional[Union[bytes, str]],
) -> bool:
    """Verify GitHub webhook signature using HMAC-SHA256.

    Uses constant-time comparison. When no secret is configured the check is
    skipped and True is returned; this is logged every time so unsecured mode
    never looks like normal operation.

    Args:
        payload_body: Raw webhook payload body (bytes)
        signature_header: Value of X-Hub-Signature-256 header
        secret: Webhook secret configured in GitHub, or None

    Returns:
        True if signature is valid (or verification is disabled), False otherwise

    Example:
        >>> body = b'{"ref": "refs/heads/main"}'
        >>> verify_webhook_signature(body, compute_signature(body, "s3cret"), "s3cret")
        True
    """
    if is_unsecured(secret):
        logger.warning(
            "Webhook secret not configured, accepting delivery without signature verification"
        )
        return True

    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning("Invalid signature header format")
        return False

    received = signature_header[len(SIGNATURE_PREFIX):]
    if len(received) != _DIGEST_HEX_LENGTH or not set(received) <= _HEX_DIGITS:
        logger.warning(
            "Malformed webhook signature",
            extra={"received_length": len(received)},
        )
        return False

    expected = compute_signature(payload_body, secret)[len(SIGNATURE_PREFIX):]

    is_valid = hmac.compare_digest(received, expected)

    if not is_valid:
        logger.warning("Webhook signature verification failed")

    return is_valid


__all__ = [
    "SIGNATURE_PREFIX",
    "compute_signature",
    "is_unsecured",
    "verify_webhook_signature",
]
