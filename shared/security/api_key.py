"""
Shared-secret checks: the operator API key header and the WooCommerce
webhook signature.

Missing secrets do not crash startup. The operator key falls back to an
insecure default and the webhook signature check is switched off, both with
a loud warning so production misconfiguration is surfaced.
"""
import base64
import hashlib
import hmac
import secrets
import warnings

from shared.config.settings import get_settings

_settings = get_settings()

_INTERNAL_API_KEY: str = _settings.internal_api_key

if not _INTERNAL_API_KEY:
    warnings.warn(
        "INTERNAL_API_KEY is not set. Using an insecure default. "
        "Set this env var in production!",
        stacklevel=2,
    )
    _INTERNAL_API_KEY = "insecure-default-change-me"

INTERNAL_API_KEY: str = _INTERNAL_API_KEY

WEBHOOK_SECRET: str = _settings.webhook_secret

if not WEBHOOK_SECRET:
    warnings.warn(
        "WOOCOMMERCE_WEBHOOK_SECRET is not set. Webhook signatures will NOT be verified.",
        stacklevel=2,
    )


def verify_api_key(provided_key: str) -> bool:
    """Verify an API key using constant-time comparison to prevent timing attacks."""
    if not provided_key:
        return False
    return secrets.compare_digest(str(provided_key), str(INTERNAL_API_KEY))


def sign_webhook_body(body: bytes, secret: str) -> str:
    """WooCommerce signature: base64(HMAC-SHA256(secret, raw body))."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_webhook_signature(body: bytes, signature: str | None) -> bool:
    if not WEBHOOK_SECRET:
        return True
    if not signature:
        return False
    return secrets.compare_digest(sign_webhook_body(body, WEBHOOK_SECRET), signature)
