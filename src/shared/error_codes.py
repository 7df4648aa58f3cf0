# src/shared/error_codes.py
# Central mapping of stable error codes to HTTP status and default message.
# Keep keys stable: clients rely on these.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 422,
        "message": "Validation failed for one or more fields."
    },
    "bad_request": {
        "http": 400,
        "message": "Invalid configuration provided"
    },
    "invalid_otp": {
        "http": 400,
        "message": "Invalid OTP provided"
    },
    "feature_disabled": {
        "http": 400,
        "message": "Feature is disabled for this tenant"
    },

    # ─── Authentication & Authorization ────────────────────────────────────
    "unauthorized": {
        "http": 401,
        "message": "Please add authentication token"
    },
    "forbidden": {
        "http": 403,
        "message": "Permission denied"
    },

    # ─── Resources ─────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Not found"
    },
    "settings_not_found": {
        "http": 404,
        "message": "Settings not found"
    },
    "history_not_found": {
        "http": 404,
        "message": "Audit log entry not found"
    },
    "entry_not_found": {
        "http": 404,
        "message": "Entry not found"
    },
    "already_exists": {
        "http": 409,
        "message": "Settings already exist"
    },
    "entry_already_exists": {
        "http": 409,
        "message": "Entry already exists"
    },
    "concurrent_modification": {
        "http": 409,
        "message": "Settings were modified concurrently, reload and retry"
    },

    # ─── Quotas ────────────────────────────────────────────────────────────
    "rate_limited": {
        "http": 429,
        "message": "Too many requests, please try again later"
    },

    # ─── Server ────────────────────────────────────────────────────────────
    "internal_error": {
        "http": 500,
        "message": "Internal server error"
    },
    "crypto_error": {
        "http": 500,
        "message": "Encryption operation failed"
    },
}


def http_status_for(code: str) -> int:
    return int(ERROR_CODES.get(code, {}).get("http", 500))


def message_for(code: str, default: str = "") -> str:
    return str(ERROR_CODES.get(code, {}).get("message", default or code))
