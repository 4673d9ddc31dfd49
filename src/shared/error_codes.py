# src/shared/error_codes.py
# Central mapping that aligns with the error contract.
# Keep keys stable—operator tooling and campaign owners rely on these.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 422,
        "message": "Validation failed for one or more fields."
    },
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },
    "conflict": {
        "http": 409,
        "message": "Resource state conflict."
    },

    # ─── Throughput ─────────────────────────────────────────────────────────
    "rate_limited": {
        "http": 429,
        "message": "Throughput ceiling reached. Retry after the indicated delay."
    },
    "upstream_backoff": {
        "http": 429,
        "message": "The messaging provider is throttling this sender."
    },

    # ─── Upstream provider ──────────────────────────────────────────────────
    "upstream_transient": {
        "http": 502,
        "message": "Temporary provider failure. The message was queued for retry."
    },
    "upstream_error": {
        "http": 502,
        "message": "The messaging provider rejected the request."
    },
    "credential_invalid": {
        "http": 401,
        "message": "Channel credential is expired or revoked."
    },
    "policy_violation": {
        "http": 403,
        "message": "Provider policy violation. Campaign paused for review."
    },
    "account_blocked": {
        "http": 403,
        "message": "Sender account blocked by the provider."
    },
    "template_invalid": {
        "http": 422,
        "message": "Template rejected or paused by the provider."
    },
    "recipient_invalid": {
        "http": 422,
        "message": "Recipient cannot receive messages."
    },

    # ─── Governance ────────────────────────────────────────────────────────
    "compliance_blocked": {
        "http": 403,
        "message": "Recipient has opted out of messages."
    },
    "campaign_paused": {
        "http": 409,
        "message": "Campaign is paused pending review."
    },
    "retry_exhausted": {
        "http": 410,
        "message": "All retry attempts were exhausted."
    },
    "unknown": {
        "http": 502,
        "message": "Unrecognized provider error. The message was queued for retry."
    },

    # ─── Infrastructure ────────────────────────────────────────────────────
    "crypto_error": {
        "http": 500,
        "message": "Credential could not be decrypted."
    },
    "store_unavailable": {
        "http": 503,
        "message": "Shared counter store unavailable."
    },
    "internal_error": {
        "http": 500,
        "message": "Internal server error."
    },
}
