import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder

from dashboard_api.core.clock import isoformat
from dashboard_api.core.events import ChangeEvent, ResourceType


class Action(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def classify_change(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> Optional[Action]:
    """create/update/delete from which side of the change exists"""
    if before is None and after is None:
        return None
    if before is None:
        return Action.CREATE
    if after is None:
        return Action.DELETE
    return Action.UPDATE


@dataclass
class ActivityLogEntry:
    action: Action
    resource_type: ResourceType
    resource_name: str
    timestamp: datetime
    user_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    # resource-specific keys: collection/docId, userEmail, filePath
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_event(cls, event: ChangeEvent, action: Action) -> "ActivityLogEntry":
        before, after = event.before, event.after
        current = after if after is not None else before

        if event.resource_type == ResourceType.FILE:
            details = {
                "contentType": current.get("contentType"),
                "size": current.get("size"),
            }
            if after is not None:
                details["metadata"] = after.get("metadata") or {}
            return cls(
                action=action,
                resource_type=ResourceType.FILE,
                resource_name=event.resource_id,
                timestamp=event.occurred_at,
                user_id=event.actor_id,
                details=details,
                extra={"filePath": event.resource_id},
            )

        details = {"before": jsonable_encoder(before), "after": jsonable_encoder(after)}
        if event.resource_type == ResourceType.USER:
            email = (after or {}).get("email") or (before or {}).get("email")
            return cls(
                action=action,
                resource_type=ResourceType.USER,
                resource_name=email or event.resource_id,
                timestamp=event.occurred_at,
                user_id=event.actor_id or event.resource_id,
                details=details,
                extra={"userEmail": email},
            )

        return cls(
            action=action,
            resource_type=ResourceType.DOCUMENT,
            resource_name=f"{event.collection}/{event.resource_id}",
            timestamp=event.occurred_at,
            user_id=event.actor_id,
            details=details,
            extra={"collection": event.collection, "docId": event.resource_id},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "resourceType": self.resource_type.value,
            "resourceName": self.resource_name,
            "timestamp": isoformat(self.timestamp),
            "userId": self.user_id,
            "details": self.details,
            **self.extra,
        }


@dataclass
class ResourceUsageSnapshot:
    timestamp: datetime
    documents: int
    files: int
    storage: int
    active_users: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": isoformat(self.timestamp),
            "documents": self.documents,
            "files": self.files,
            "storage": self.storage,
            "activeUsers": self.active_users,
        }
