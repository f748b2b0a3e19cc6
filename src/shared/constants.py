"""Shared constants across the application."""

# Back-office API endpoints (relative to the configured base URL)
PRODUCT_ENDPOINT = "/api/wp/wordpress-product"
PURCHASE_ENDPOINT = "/api/wp/external-wordpress-purchase"
VALIDATE_USER_ENDPOINT = "/api/wp/validate-user"
REGISTER_USER_ENDPOINT = "/api/wp/register-user"
UPDATE_USER_ENDPOINT = "/api/wp/update-user"
DEACTIVATE_USER_ENDPOINT = "/api/wp/deactivate-user"
TOKEN_VERIFY_ENDPOINT = "/api/wp/token-verify"
GET_TOKEN_ENDPOINT = "/api/wp/get-token/{user_id}"
VALIDATE_SPONSOR_ENDPOINT = "/api/wp/validate-sponsor/{username}"

# HTTP status codes accepted as success for product upserts
PRODUCT_SUCCESS_CODES = frozenset({200, 201})

# Referral capture
REFERRAL_QUERY_PARAM = "u"
REFERRAL_STORAGE_KEYS = ("sponsor", "referral_username")
REFERRAL_MAX_LENGTH = 60

# Cache key prefixes
PENDING_REGISTRATION_PREFIX = "pending_registration:"

# Time windows
PENDING_REGISTRATION_TTL_SECONDS = 300
SESSION_MAX_AGE_SECONDS = 14 * 24 * 60 * 60
HTTP_TIMEOUT_SECONDS = 15.0

# Messages shown to end users
UNKNOWN_ERROR = "Unknown error"
CONFIG_MISSING_MESSAGE = "API URL or API Key not configured."
