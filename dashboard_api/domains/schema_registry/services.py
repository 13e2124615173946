import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.core.errors import NotFound, ValidationFailed
from dashboard_api.core.events import ChangeDispatcher
from dashboard_api.domains.collections import SCHEMAS
from dashboard_api.domains.documents.services import CollectionService
from dashboard_api.domains.schema_registry.entities import (
    FieldDefinition,
    ensure_unique_ids,
    validate_document,
)

logger = logging.getLogger(__name__)

FieldInput = Union[FieldDefinition, Dict[str, Any]]


def _to_field(raw: FieldInput) -> FieldDefinition:
    if isinstance(raw, FieldDefinition):
        return raw
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    return FieldDefinition.from_dict(raw)


def ensure_valid(fields: Sequence[FieldDefinition], data: Dict[str, Any]) -> None:
    errors = validate_document(fields, data)
    if errors:
        raise ValidationFailed("Document does not match the collection schema", errors)


class SchemaRegistry:
    """Per-collection field definitions kept as documents in the schemas collection"""

    def __init__(self, session: AsyncSession, dispatcher: Optional[ChangeDispatcher] = None, actor_id: Optional[str] = None):
        self.session = session
        self.documents = CollectionService(session, SCHEMAS, dispatcher, actor_id)

    async def get_schema(self, collection: str) -> Optional[List[FieldDefinition]]:
        document = await self.documents.get(collection)
        if document is None:
            return None
        return [FieldDefinition.from_dict(item) for item in document.data.get("fields", [])]

    async def set_schema(self, collection: str, fields: Iterable[FieldInput]) -> List[FieldDefinition]:
        definitions = [_to_field(raw) for raw in fields]
        duplicates = ensure_unique_ids(definitions)
        if duplicates:
            raise ValidationFailed(
                "Field ids must be unique",
                {field_id: "Duplicate field id" for field_id in duplicates},
            )

        await self.documents.set(collection, {"fields": [field.to_dict() for field in definitions]})
        logger.info(f"Schema for {collection} saved with {len(definitions)} fields")
        return definitions

    async def _current(self, collection: str) -> List[FieldDefinition]:
        fields = await self.get_schema(collection)
        return fields if fields is not None else []

    async def add_field(self, collection: str, field: FieldInput) -> List[FieldDefinition]:
        fields = await self._current(collection)
        fields.append(_to_field(field))
        return await self.set_schema(collection, fields)

    async def remove_field(self, collection: str, field_id: str) -> List[FieldDefinition]:
        fields = await self._current(collection)
        remaining = [field for field in fields if field.id != field_id]
        if len(remaining) == len(fields):
            raise NotFound(f"Field {field_id} not found in schema for {collection}")
        return await self.set_schema(collection, remaining)

    async def reorder(self, collection: str, field_ids: Sequence[str]) -> List[FieldDefinition]:
        """Put fields in the given id order; ids not listed keep their relative order at the end"""
        fields = await self._current(collection)
        by_id = {field.id: field for field in fields}
        unknown = [field_id for field_id in field_ids if field_id not in by_id]
        if unknown:
            raise NotFound(f"Unknown field ids for {collection}: {', '.join(unknown)}")

        ordered = [by_id[field_id] for field_id in field_ids]
        ordered.extend(field for field in fields if field.id not in field_ids)
        return await self.set_schema(collection, ordered)

    async def validate(self, collection: str, data: Dict[str, Any]) -> None:
        """Raise ValidationFailed when a schema exists and the data breaks it"""
        fields = await self.get_schema(collection)
        if fields:
            ensure_valid(fields, data)
