from dashboard_api.domains.audit.entities import (
    Action, ActivityLogEntry, ResourceUsageSnapshot, classify_change
)
from dashboard_api.domains.audit.schemas import (
    ActivityEntryResponse, ActivityPageResponse, AnalyticsResponse
)
from dashboard_api.domains.audit.services import AnalyticsService, AuditService, UsageAggregator

__all__ = [
    "Action", "ActivityLogEntry", "ResourceUsageSnapshot", "classify_change",
    "ActivityEntryResponse", "ActivityPageResponse", "AnalyticsResponse",
    "AnalyticsService", "AuditService", "UsageAggregator",
]
