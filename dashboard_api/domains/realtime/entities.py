import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Sequence, Tuple

from dashboard_api.core.clock import utcnow
from dashboard_api.domains.documents.entities import Document


class ChangeType(str, enum.Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


_MESSAGES = {
    ChangeType.ADDED: ("New {collection} added", "success"),
    ChangeType.MODIFIED: ("{collection} updated", "info"),
    ChangeType.REMOVED: ("{collection} deleted", "error"),
}


@dataclass
class Notification:
    """Transient, never persisted message about a change seen by a live query"""

    collection: str
    change_type: ChangeType
    document_id: str
    message: str
    level: str
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def for_change(cls, collection: str, change_type: ChangeType, document_id: str) -> "Notification":
        template, level = _MESSAGES[change_type]
        return cls(
            collection=collection,
            change_type=change_type,
            document_id=document_id,
            message=template.format(collection=collection),
            level=level,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "change": self.change_type.value,
            "documentId": self.document_id,
            "message": self.message,
            "level": self.level,
            "createdAt": self.created_at.isoformat(),
        }


Snapshot = Dict[str, Tuple[Any, Dict[str, Any]]]


def snapshot_of(documents: Sequence[Document]) -> Snapshot:
    return {doc.id: (doc.updated_at, doc.data) for doc in documents}


def diff_snapshots(previous: Snapshot, current: Snapshot) -> List[Tuple[ChangeType, str]]:
    """Per-document changes between two result sets of the same live query"""
    changes = []
    for document_id, state in current.items():
        if document_id not in previous:
            changes.append((ChangeType.ADDED, document_id))
        elif previous[document_id] != state:
            changes.append((ChangeType.MODIFIED, document_id))
    for document_id in previous:
        if document_id not in current:
            changes.append((ChangeType.REMOVED, document_id))
    return changes


def new_subscription_id() -> str:
    return uuid.uuid4().hex
