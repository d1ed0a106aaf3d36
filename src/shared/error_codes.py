# src/shared/error_codes.py
# Central mapping that aligns with the public error contract.
# Keep keys stable: API clients and partner integrations rely on these.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "invalid_request": {
        "http": 400,
        "message": "Invalid request payload."
    },

    # ─── Authentication & Authorization ────────────────────────────────────
    "unauthorized": {
        "http": 401,
        "message": "Unauthorized."
    },
    "forbidden": {
        "http": 403,
        "message": "You are not allowed to perform this action."
    },

    # ─── Resources ─────────────────────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },
    "conflict": {
        "http": 409,
        "message": "Resource state conflict."
    },
    "idempotency_conflict": {
        "http": 409,
        "message": "A request with this Idempotency-Key is still being processed."
    },

    # ─── Admission control ─────────────────────────────────────────────────
    "rate_limit_exceeded": {
        "http": 429,
        "message": "Rate limit exceeded."
    },
    "plan_limit_exceeded": {
        "http": 429,
        "message": "Plan limit exceeded for the current period."
    },

    # ─── Server ────────────────────────────────────────────────────────────
    "internal_error": {
        "http": 500,
        "message": "Internal server error."
    },
    "service_unavailable": {
        "http": 503,
        "message": "Service temporarily unavailable."
    },
}
