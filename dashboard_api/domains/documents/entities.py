import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# Keys owned by the store; never taken from caller data
RESERVED_FIELDS = ("id", "createdAt", "updatedAt")

OPERATORS = ("=", "==", "!=", "<", "<=", ">", ">=", "in")

# Upper bound appended to a prefix for range-based prefix search
PREFIX_SENTINEL = "\uf8ff"


class Document:
    """Schema-less record living in a collection"""

    def __init__(
        self,
        id: str,
        collection: str,
        data: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.collection = collection
        self.data = dict(data or {})
        self.created_at = created_at
        self.updated_at = updated_at

    def merge(self, partial: Dict[str, Any], timestamp: datetime) -> None:
        """Shallow field merge; untouched fields keep their values"""
        self.data.update(strip_reserved(partial))
        self.updated_at = timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            **self.data,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def __eq__(self, other) -> bool:
        if not isinstance(other, Document):
            return False
        return self.collection == other.collection and self.id == other.id

    def __hash__(self) -> int:
        return hash((self.collection, self.id))

    def __repr__(self) -> str:
        return f"Document(collection={self.collection}, id={self.id})"


def strip_reserved(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if key not in RESERVED_FIELDS}


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")
        if self.op == "in" and not isinstance(self.value, (list, tuple)):
            raise ValueError("The 'in' operator expects a list of values")

    @classmethod
    def parse(cls, raw) -> "Filter":
        """Accept a Filter, a (field, op, value) sequence, or a {field, operator, value} map"""
        if isinstance(raw, Filter):
            return raw
        if isinstance(raw, dict):
            return cls(raw["field"], raw.get("operator", raw.get("op")), raw.get("value"))
        field_name, op, value = raw
        return cls(field_name, op, value)


@dataclass(frozen=True)
class Sort:
    field: str
    direction: str = "asc"

    def __post_init__(self):
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction: {self.direction}")

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


@dataclass
class Page:
    documents: List[Document] = field(default_factory=list)
    cursor: Optional[str] = None
    has_more: bool = False


@dataclass
class BatchUpdate:
    id: str
    data: Dict[str, Any]
