"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Security
DEFAULT_HSTS_MAX_AGE = 31536000  # 1 year in seconds

# Logging
MAX_USER_AGENT_LENGTH = 200

# Messages returned to clients
INTERNAL_SERVER_ERROR_MESSAGE = "Internal Server Error"
INVALID_LIST_PARAMS_MESSAGE = "minAge and limit must be valid numbers"
LIMIT_OUT_OF_RANGE_MESSAGE = "limit must be between 1 and 100"
USER_NOT_FOUND_MESSAGE = "User not found or does not meet age requirements"
