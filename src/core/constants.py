"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"

# Visibility rule: only users strictly older than this age are readable
AGE_VISIBILITY_THRESHOLD = 21

# Listing defaults and bounds for GET /users
DEFAULT_MIN_AGE = AGE_VISIBILITY_THRESHOLD
DEFAULT_LIST_LIMIT = 10
MIN_LIST_LIMIT = 1
MAX_LIST_LIMIT = 100

# Largest integers BSON can encode (signed 64-bit)
BSON_INT64_MIN = -(2**63)
BSON_INT64_MAX = 2**63 - 1
