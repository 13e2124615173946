"""Collection names the service itself reads and writes.

Everything else under /api/{collection} is user data. These collections are
plain documents too and go through the same collection layer.
"""

ACTIVITY_LOGS = "activity_logs"
RESOURCE_USAGE = "resource_usage"
API_LOGS = "api_logs"
SCHEMAS = "schemas"
USERS = "users"
ROLES = "roles"

# Bookkeeping written by the service; never audited, never counted as user data
SYSTEM_COLLECTIONS = frozenset({ACTIVITY_LOGS, RESOURCE_USAGE, API_LOGS})

# Pruned by the usage job once older than the retention window
RETAINED_COLLECTIONS = (ACTIVITY_LOGS, RESOURCE_USAGE, API_LOGS)

# Left out of the document total in usage snapshots
UNCOUNTED_COLLECTIONS = SYSTEM_COLLECTIONS | {SCHEMAS}
