"""Security configuration constants for the Family Admin API.

This module centralizes:
- Keys that must be redacted from logs (OAuth material, API keys, PII)
- Which error response fields each environment may expose
"""

# Matched as substrings of lower-cased keys
SENSITIVE_KEYS: set[str] = {
    # Credentials
    "secret",
    "token",
    "authorization",
    "api_key",
    "x-api-key",
    "password",
    "bearer",
    "cookie",
    "set-cookie",
    # OAuth flow material
    "auth_code",
    "oauth_state",
    "assertion",
    # Personal information
    "email",
    "phone",
    "address",
}

# In production, error responses only contain these fields
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)
