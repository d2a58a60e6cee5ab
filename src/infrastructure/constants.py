"""Infrastructure-related constants, particularly for the database."""

# Used when neither the settings nor the URI path name a database
DEFAULT_DATABASE_NAME = "centivo"

USERS_COLLECTION = "users"

# Index definitions for the users collection
AGE_INDEX_NAME = "idx_age"
EMAIL_INDEX_NAME = "idx_email"

PING_COMMAND = "ping"
