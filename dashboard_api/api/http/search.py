from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.core.auth import Principal, get_current_user
from dashboard_api.core.db import get_db
from dashboard_api.domains.documents.schemas import DocumentListResponse
from dashboard_api.domains.documents.services import CollectionService

router = APIRouter(prefix="/api/search", tags=["search"])


@router.get("/{collection}", response_model=DocumentListResponse)
async def search_collection(
    collection: str,
    field: str = Query(..., min_length=1),
    term: str = Query(...),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    current_user: Principal = Depends(get_current_user),
):
    """Documents whose `field` starts with `term`"""
    documents = await CollectionService(db, collection).search(field, term, limit)
    return DocumentListResponse(documents=[doc.to_dict() for doc in documents], count=len(documents))
