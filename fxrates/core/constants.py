# Configuration keys
CONFIG_DATABASE_URL = "database_url"
CONFIG_TIMEZONE = "timezone"
CONFIG_MAX_MARGIN_PCT = "max_margin_pct"
CONFIG_API_HOST = "api_host"
CONFIG_API_PORT = "api_port"
CONFIG_API_PREFIX = "api_prefix"
CONFIG_CORS_ORIGINS = "cors_origins"
CONFIG_AUTH_HEADER = "auth_header"

# Defaults
DEFAULT_TIMEZONE = "UTC"
DEFAULT_MAX_MARGIN_PCT = 100
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 4000
DEFAULT_API_PREFIX = "/api"
DEFAULT_AUTH_HEADER = "X-Authenticated-User-Id"

# Margin history actions
ACTION_CREATED = "CREATED"
ACTION_UPDATED = "UPDATED"
ACTION_CLOSED = "CLOSED"
ACTION_SHIFTED = "SHIFTED"
ACTION_DELETED = "DELETED"

# Conflict descriptions
CONFLICT_ACTION_CLOSE = "close"
CONFLICT_ACTION_SHIFT = "shift"
CONFLICT_ACTION_DELETE = "delete"
CONFLICT_ACTION_KEEP = "keep"

# Response fields
FIELD_ID = "id"
FIELD_VALUE = "value"
FIELD_START_DATE = "startDate"
FIELD_END_DATE = "endDate"
FIELD_OWNER_ID = "ownerId"
FIELD_OWNER_DISPLAY_NAME = "ownerDisplayName"
FIELD_ACTION = "action"
FIELD_CONFLICTS = "conflicts"
FIELD_OVERLAPPING = "overlapping"

TIMELINE_LOCK_ID = 1
