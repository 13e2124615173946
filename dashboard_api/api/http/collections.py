import json
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.api.deps import get_dispatcher
from dashboard_api.core.auth import Principal, get_current_user
from dashboard_api.core.db import get_db
from dashboard_api.core.errors import NotFound
from dashboard_api.core.events import ChangeDispatcher
from dashboard_api.domains.documents.entities import BatchUpdate, Filter, Sort, strip_reserved
from dashboard_api.domains.documents.schemas import (
    BatchCreateRequest,
    BatchDeleteRequest,
    BatchDeleteResponse,
    BatchUpdateRequest,
    DocumentListResponse,
    DocumentPageResponse,
    DocumentResponse,
)
from dashboard_api.domains.documents.services import CollectionService
from dashboard_api.domains.schema_registry.services import SchemaRegistry, ensure_valid

router = APIRouter(prefix="/api", tags=["collections"])


def parse_filters(raw: Optional[str]) -> List[Filter]:
    """`filters` query parameter: JSON array of [field, op, value] triples"""
    if not raw:
        return []
    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError("filters must be a JSON array")
        return [Filter.parse(item) for item in items]
    except (ValueError, TypeError, KeyError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid filters: {e}")


@router.get("/{collection}", response_model=Union[DocumentListResponse, DocumentPageResponse])
async def list_documents(
    collection: str,
    filters: Optional[str] = Query(None, description='JSON array, e.g. [["age", ">", 30]]'),
    sort: Optional[str] = Query(None),
    direction: str = Query("asc", pattern="^(asc|desc)$"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    page_size: Optional[int] = Query(None, ge=1, le=500),
    cursor: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: Principal = Depends(get_current_user),
):
    """Query a collection, or page through it when page_size is given"""
    service = CollectionService(db, collection)

    if page_size is not None:
        page = await service.paginate(page_size, cursor)
        return DocumentPageResponse(
            documents=[doc.to_dict() for doc in page.documents],
            cursor=page.cursor,
            has_more=page.has_more,
        )

    documents = await service.query(
        parse_filters(filters),
        sort=Sort(sort, direction) if sort else None,
        limit=limit,
    )
    return DocumentListResponse(documents=[doc.to_dict() for doc in documents], count=len(documents))


@router.post("/{collection}", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    collection: str,
    data: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Create a document with a generated id"""
    await SchemaRegistry(db).validate(collection, strip_reserved(data))
    document = await CollectionService(db, collection, dispatcher, current_user.uid).create(data)
    return document.to_dict()


@router.post("/{collection}/batch", response_model=List[DocumentResponse], status_code=status.HTTP_201_CREATED)
async def batch_create(
    collection: str,
    request: BatchCreateRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Create every document or none"""
    fields = await SchemaRegistry(db).get_schema(collection)
    if fields:
        for data in request.documents:
            ensure_valid(fields, strip_reserved(data))

    documents = await CollectionService(db, collection, dispatcher, current_user.uid).batch_create(request.documents)
    return [doc.to_dict() for doc in documents]


@router.put("/{collection}/batch", response_model=List[DocumentResponse])
async def batch_update(
    collection: str,
    request: BatchUpdateRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Apply every partial update or none"""
    service = CollectionService(db, collection, dispatcher, current_user.uid)

    fields = await SchemaRegistry(db).get_schema(collection)
    if fields:
        for item in request.updates:
            current = await service.get(item.id)
            if current is not None:
                ensure_valid(fields, {**current.data, **strip_reserved(item.data)})

    documents = await service.batch_update([BatchUpdate(item.id, item.data) for item in request.updates])
    return [doc.to_dict() for doc in documents]


@router.delete("/{collection}/batch", response_model=BatchDeleteResponse)
async def batch_delete(
    collection: str,
    request: BatchDeleteRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Delete the given ids; missing ones are ignored"""
    deleted = await CollectionService(db, collection, dispatcher, current_user.uid).batch_delete(request.ids)
    return BatchDeleteResponse(deleted=deleted)


@router.get("/{collection}/{document_id}", response_model=DocumentResponse)
async def get_document(
    collection: str,
    document_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Principal = Depends(get_current_user),
):
    """Single document by id"""
    document = await CollectionService(db, collection).get(document_id)
    if document is None:
        raise NotFound(f"Document {collection}/{document_id} not found")
    return document.to_dict()


@router.put("/{collection}/{document_id}", response_model=DocumentResponse)
async def update_document(
    collection: str,
    document_id: str,
    data: Dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Merge the given fields into the document"""
    service = CollectionService(db, collection, dispatcher, current_user.uid)

    fields = await SchemaRegistry(db).get_schema(collection)
    if fields:
        current = await service.get(document_id)
        if current is None:
            raise NotFound(f"Document {collection}/{document_id} not found")
        ensure_valid(fields, {**current.data, **strip_reserved(data)})

    document = await service.update(document_id, data)
    return document.to_dict()


@router.delete("/{collection}/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    collection: str,
    document_id: str,
    db: AsyncSession = Depends(get_db),
    dispatcher: ChangeDispatcher = Depends(get_dispatcher),
    current_user: Principal = Depends(get_current_user),
):
    """Idempotent delete"""
    await CollectionService(db, collection, dispatcher, current_user.uid).delete(document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
