import enum
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

REQUIRED_MESSAGE = "This field is required"


class FieldType(str, enum.Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    IMAGE = "image"


def field_id_from_name(name: str) -> str:
    """Stable key for a field: lower-cased, whitespace runs become underscores"""
    return re.sub(r"\s+", "_", name.strip().lower())


class FieldDefinition:
    """One column of a collection schema"""

    def __init__(self, id: str, name: str, type: FieldType = FieldType.TEXT, required: bool = False):
        self.id = id
        self.name = name
        self.type = FieldType(type)
        self.required = required

    @classmethod
    def create_field(
        cls, name: str, type: FieldType = FieldType.TEXT, required: bool = False, id: Optional[str] = None
    ) -> "FieldDefinition":
        return cls(id=id or field_id_from_name(name), name=name, type=type, required=required)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldDefinition":
        return cls.create_field(
            name=data["name"],
            type=data.get("type", FieldType.TEXT),
            required=bool(data.get("required", False)),
            id=data.get("id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.type.value, "required": self.required}

    def __eq__(self, other) -> bool:
        if not isinstance(other, FieldDefinition):
            return False
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"FieldDefinition(id={self.id}, type={self.type.value}, required={self.required})"


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def _is_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip().replace("Z", "+00:00")
    for parse in (date.fromisoformat, datetime.fromisoformat):
        try:
            parse(text)
        except ValueError:
            continue
        return True
    return False


def _type_error(field: FieldDefinition, value: Any) -> Optional[str]:
    if field.type == FieldType.NUMBER and not _is_numeric(value):
        return f"{field.name} must be a number"
    if field.type == FieldType.DATE and not _is_date(value):
        return f"{field.name} must be a valid date"
    if field.type == FieldType.BOOLEAN and not isinstance(value, bool):
        return f"{field.name} must be true or false"
    return None


def validate_document(fields: Sequence[FieldDefinition], data: Dict[str, Any]) -> Dict[str, str]:
    """Check a document against schema fields; returns {field_id: message} for each violation.

    Fields not declared in the schema are ignored. Empty optional values
    skip the type checks.
    """
    errors: Dict[str, str] = {}
    for field in fields:
        value = data.get(field.id)
        if is_empty(value):
            if field.required:
                errors[field.id] = REQUIRED_MESSAGE
            continue
        message = _type_error(field, value)
        if message:
            errors[field.id] = message
    return errors


def ensure_unique_ids(fields: List[FieldDefinition]) -> List[str]:
    """Field ids that appear more than once"""
    seen = set()
    duplicates = []
    for field in fields:
        if field.id in seen and field.id not in duplicates:
            duplicates.append(field.id)
        seen.add(field.id)
    return duplicates
