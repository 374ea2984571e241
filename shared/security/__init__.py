from .jwt_handler import verify_access_token
from .api_key import verify_api_key, verify_webhook_signature, sign_webhook_body
from .dependencies import get_current_user, verify_internal_api_key, verify_woocommerce_signature
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "verify_access_token",
    "verify_api_key",
    "verify_webhook_signature",
    "sign_webhook_body",
    "get_current_user",
    "verify_internal_api_key",
    "verify_woocommerce_signature",
    "limiter",
    "user_id_or_ip"
]
