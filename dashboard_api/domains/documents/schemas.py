from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BatchCreateRequest(BaseModel):
    """Documents to create in one atomic batch"""
    documents: List[Dict[str, Any]] = Field(..., min_length=1, max_length=500)


class BatchUpdateItem(BaseModel):
    id: str = Field(..., min_length=1)
    data: Dict[str, Any]


class BatchUpdateRequest(BaseModel):
    """Partial updates to apply in one atomic batch"""
    updates: List[BatchUpdateItem] = Field(..., min_length=1, max_length=500)


class BatchDeleteRequest(BaseModel):
    """Ids to delete in one atomic batch"""
    ids: List[str] = Field(..., min_length=1, max_length=500)

    @field_validator("ids")
    @classmethod
    def validate_ids(cls, v):
        if any(not item.strip() for item in v):
            raise ValueError("Document ids cannot be empty")
        return v


class DocumentResponse(BaseModel):
    """A stored document: its fields plus id and timestamps"""
    id: str
    createdAt: datetime
    updatedAt: datetime

    model_config = ConfigDict(extra="allow")


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    count: int


class DocumentPageResponse(BaseModel):
    documents: List[DocumentResponse]
    cursor: Optional[str] = None
    has_more: bool


class BatchDeleteResponse(BaseModel):
    deleted: List[str]
