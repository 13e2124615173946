import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.core.clock import isoformat, utcnow
from dashboard_api.core.events import ChangeEvent, ResourceType
from dashboard_api.db.repositories.document_repository import DocumentRepository
from dashboard_api.domains.audit.entities import ActivityLogEntry, ResourceUsageSnapshot, classify_change
from dashboard_api.domains.collections import (
    ACTIVITY_LOGS,
    API_LOGS,
    RESOURCE_USAGE,
    RETAINED_COLLECTIONS,
    SYSTEM_COLLECTIONS,
    UNCOUNTED_COLLECTIONS,
)
from dashboard_api.domains.documents.entities import Filter, Sort
from dashboard_api.domains.documents.services import CollectionService, WriteBatch

logger = logging.getLogger(__name__)


class AuditService:
    """Change listener appending one activity_logs entry per committed mutation"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def should_audit(self, event: ChangeEvent) -> bool:
        if event.resource_type == ResourceType.FILE:
            return True
        return event.collection not in SYSTEM_COLLECTIONS

    async def handle_change(self, event: ChangeEvent) -> Optional[ActivityLogEntry]:
        if not self.should_audit(event):
            return None
        action = classify_change(event.before, event.after)
        if action is None:
            return None

        entry = ActivityLogEntry.from_event(event, action)
        async with self.session_factory() as session:
            # no dispatcher: audit writes must not produce further change events
            await CollectionService(session, ACTIVITY_LOGS).create(entry.to_dict())
        logger.debug(f"Audited {action.value} on {entry.resource_name}")
        return entry


class UsageAggregator:
    """Hourly job: append a resource usage snapshot, then prune old bookkeeping"""

    def __init__(
        self,
        session_factory,
        storage=None,
        retention_days: int = 90,
        active_window: timedelta = timedelta(hours=24),
    ):
        self.session_factory = session_factory
        self.storage = storage
        self.retention_days = retention_days
        self.active_window = active_window

    async def _active_users(self, session: AsyncSession, now: datetime) -> int:
        since = isoformat(now - self.active_window)
        entries = await CollectionService(session, ACTIVITY_LOGS).query([Filter("timestamp", ">=", since)])
        return len({entry.data.get("userId") for entry in entries if entry.data.get("userId")})

    async def collect(self, now: Optional[datetime] = None) -> ResourceUsageSnapshot:
        now = now or utcnow()
        async with self.session_factory() as session:
            documents = await DocumentRepository(session).count(exclude=UNCOUNTED_COLLECTIONS)
            active_users = await self._active_users(session, now)

        usage = await self.storage.usage() if self.storage is not None else {"files": 0, "bytes": 0}
        return ResourceUsageSnapshot(
            timestamp=now,
            documents=documents,
            files=usage["files"],
            storage=usage["bytes"],
            active_users=active_users,
        )

    async def prune(self, now: Optional[datetime] = None) -> int:
        """Delete retained bookkeeping older than the retention window in one batch"""
        now = now or utcnow()
        cutoff = isoformat(now - timedelta(days=self.retention_days))
        async with self.session_factory() as session:
            batch = WriteBatch(session)
            for collection in RETAINED_COLLECTIONS:
                expired = await CollectionService(session, collection).query([Filter("timestamp", "<", cutoff)])
                for document in expired:
                    batch.delete(collection, document.id)
            if not len(batch):
                return 0
            removed = await batch.commit()
        logger.info(f"Pruned {removed} records older than {cutoff}")
        return removed

    async def run(self, now: Optional[datetime] = None) -> ResourceUsageSnapshot:
        snapshot = await self.collect(now)
        async with self.session_factory() as session:
            await CollectionService(session, RESOURCE_USAGE).create(snapshot.to_dict())
        logger.info(
            f"Resource usage: {snapshot.documents} documents, {snapshot.files} files, "
            f"{snapshot.storage} bytes, {snapshot.active_users} active users"
        )
        # separate commit; a failure here leaves the snapshot in place
        await self.prune(snapshot.timestamp)
        return snapshot


def _day(timestamp: Any) -> str:
    return str(timestamp or "")[:10]


def _parse_cursor(cursor: Optional[str]) -> Optional[Tuple[str, str]]:
    """`{timestamp}|{id}`; a bare timestamp skips every entry carrying it"""
    if not cursor:
        return None
    timestamp, separator, entry_id = cursor.rpartition("|")
    if not separator:
        return cursor, ""
    return timestamp, entry_id


class AnalyticsService:
    """Read side of the dashboard analytics and activity pages"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _since(self, collection: str, start: str) -> List[Dict[str, Any]]:
        documents = await CollectionService(self.session, collection).query(
            [Filter("timestamp", ">=", start)], sort=Sort("timestamp")
        )
        return [document.data for document in documents]

    async def summary(self, days: int = 7, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        start = isoformat(now - timedelta(days=days))

        user_activity: Dict[str, Dict[str, Any]] = OrderedDict()
        for entry in await self._since(ACTIVITY_LOGS, start):
            date = _day(entry.get("timestamp"))
            day = user_activity.setdefault(date, {"date": date, "users": 0})
            day["users"] += 1

        resource_usage: Dict[str, Dict[str, Any]] = OrderedDict()
        for snapshot in await self._since(RESOURCE_USAGE, start):
            date = _day(snapshot.get("timestamp"))
            day = resource_usage.setdefault(date, {"date": date, "documents": 0, "files": 0, "storage": 0})
            day["documents"] += snapshot.get("documents") or 0
            day["files"] += snapshot.get("files") or 0
            day["storage"] += snapshot.get("storage") or 0

        api_usage: Dict[str, Dict[str, Any]] = OrderedDict()
        for call in await self._since(API_LOGS, start):
            date = _day(call.get("timestamp"))
            day = api_usage.setdefault(date, {"date": date, "calls": 0})
            day["calls"] += 1

        user_rows = list(user_activity.values())
        usage_rows = list(resource_usage.values())
        api_rows = list(api_usage.values())
        return {
            "userActivity": user_rows,
            "resourceUsage": usage_rows,
            "apiUsage": api_rows,
            "stats": {
                "totalUsers": sum(row["users"] for row in user_rows),
                "totalDocuments": sum(row["documents"] for row in usage_rows),
                "totalFiles": sum(row["files"] for row in usage_rows),
                "activeUsers": user_rows[-1]["users"] if user_rows else 0,
                "storageUsed": usage_rows[-1]["storage"] if usage_rows else 0,
                "apiCalls": sum(row["calls"] for row in api_rows),
            },
        }

    async def activity_page(
        self,
        page_size: int = 20,
        cursor: Optional[str] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Newest first; `cursor` is `{timestamp}|{id}` of the last entry already shown"""
        filters = []
        if action:
            filters.append(Filter("action", "==", action))
        if resource_type:
            filters.append(Filter("resourceType", "==", resource_type))

        documents = await CollectionService(self.session, ACTIVITY_LOGS).query(
            filters, sort=Sort("timestamp", "desc"), limit=page_size, start_after=_parse_cursor(cursor)
        )
        entries = [{"id": document.id, **document.data} for document in documents]
        return {
            "entries": entries,
            "cursor": f"{entries[-1].get('timestamp')}|{entries[-1]['id']}" if entries else None,
            "has_more": len(entries) == page_size,
        }
