"""Shared defaults for the sagaflow engine."""

# Seconds a finished execution stays visible to duplicate callers.
DEFAULT_RETENTION_SECONDS = 300.0

# Idempotency wait polling, in seconds.
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_WAIT_TIMEOUT = 30.0

DEFAULT_RETRYABLE_ERRORS = (
    "timeout",
    "network",
    "temporary",
    "rate_limit",
    "unavailable",
    "service",
)

# Stored key-value payloads expire after a day.
KV_EXPIRATION_TTL = 86400

DEFAULT_AI_MODEL = "llama-3.3-70b"
