from dashboard_api.domains.realtime.entities import ChangeType, Notification, diff_snapshots
from dashboard_api.domains.realtime.services import SubscriptionHandle, SubscriptionManager

__all__ = [
    "ChangeType", "Notification", "diff_snapshots",
    "SubscriptionHandle", "SubscriptionManager",
]
