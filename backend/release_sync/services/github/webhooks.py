"""
GitHub webhook signature verification.

GitHub signs each delivery with HMAC-SHA256 of the raw body using the App's
webhook secret and sends it as `X-Hub-Signature-256: sha256=<hex>`.
"""

import hashlib
import hmac
from typing import Optional

from release_sync.exceptions import ConfigurationError, WebhookSignatureError

SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> None:
    """
    Raises:
        ConfigurationError: no webhook secret configured
        WebhookSignatureError: header missing or digest mismatch
    """
    if not secret:
        raise ConfigurationError("GitHub", "webhook secret")
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        raise WebhookSignatureError("missing signature")
    if not hmac.compare_digest(sign_payload(secret, body), signature):
        raise WebhookSignatureError()
