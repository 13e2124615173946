from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.api.deps import get_dispatcher
from dashboard_api.core.auth import Principal, get_current_user
from dashboard_api.core.db import get_db
from dashboard_api.core.events import ChangeDispatcher
from dashboard_api.domains.schema_registry.schemas import (
    FieldDefinitionSchema,
    SchemaResponse,
    SchemaUpdate,
)
from dashboard_api.domains.schema_registry.services import SchemaRegistry

router = APIRouter(prefix="/api/schemas", tags=["schemas"])


class FieldOrder(BaseModel):
    field_ids: List[str]


def _response(collection: str, fields) -> SchemaResponse:
    return SchemaResponse(
        collection=collection,
        fields=None if fields is None else [FieldDefinitionSchema(**field.to_dict()) for field in fields],
    )


@router.get("/{collection}", response_model=SchemaResponse)
async def get_schema(
    collection: str,
    db: AsyncSession = Depends(get_db),
    current_user: Principal = Depends(get_current_user),
):
    """Field definitions, or null fields when the collection has no schema"""
    return _response(collection, await SchemaRegistry(db).get_schema(collection))


@router.put("/{collection}", response_model=SchemaResponse)
async def set_schema(
    collection: str,
    schema: SchemaUpdate,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Replace the whole schema"""
    registry = SchemaRegistry(db, dispatcher, current_user.uid)
    return _response(collection, await registry.set_schema(collection, schema.fields))


@router.post("/{collection}/fields", response_model=SchemaResponse)
async def add_field(
    collection: str,
    field: FieldDefinitionSchema,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Append a field"""
    registry = SchemaRegistry(db, dispatcher, current_user.uid)
    return _response(collection, await registry.add_field(collection, field))


@router.delete("/{collection}/fields/{field_id}", response_model=SchemaResponse)
async def remove_field(
    collection: str,
    field_id: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Drop a field by id"""
    registry = SchemaRegistry(db, dispatcher, current_user.uid)
    return _response(collection, await registry.remove_field(collection, field_id))


@router.put("/{collection}/order", response_model=SchemaResponse)
async def reorder_fields(
    collection: str,
    order: FieldOrder,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Move the listed fields to the front, in order"""
    registry = SchemaRegistry(db, dispatcher, current_user.uid)
    return _response(collection, await registry.reorder(collection, order.field_ids))
