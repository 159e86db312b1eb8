"""Internal constants shared across the package."""

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_TABLE = "house_status"
DEFAULT_DATA_FILE = "house_status.json"

# PostgREST rejects very large payloads; inserts and upserts are chunked.
DEFAULT_BATCH_SIZE = 100

STORE_REST = "rest"
STORE_FILE = "file"
STORE_MIRROR = "mirror"
STORE_BACKENDS: frozenset[str] = frozenset({STORE_REST, STORE_FILE, STORE_MIRROR})

# Bulk delete needs a filter; no real unit id ever equals this value.
DELETE_ALL_SENTINEL = "__salesboard_none__"

BACKUP_FILENAME_PREFIX = "salesboard-backup"

# Seconds a single outbound frame may wait on a slow peer before it is dropped.
DEFAULT_SEND_TIMEOUT = 5.0
