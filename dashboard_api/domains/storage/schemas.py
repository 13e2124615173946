from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class FileResponse(BaseModel):
    """File object as shown in the file manager"""
    path: str
    name: str
    size: int
    contentType: Optional[str] = None
    customMetadata: Dict[str, str] = Field(default_factory=dict)
    timeCreated: Optional[datetime] = None
    url: Optional[str] = None

    @classmethod
    def from_file(cls, file) -> "FileResponse":
        return cls(
            path=file.path,
            name=file.name,
            size=file.size,
            contentType=file.content_type,
            customMetadata=file.custom_metadata,
            timeCreated=file.time_created,
            url=file.url,
        )


class FilePageResponse(BaseModel):
    files: List[FileResponse]
    next_page_token: Optional[str] = None


class UploadResponse(BaseModel):
    url: str
    path: str
    name: str
    size: int
    type: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class AccessUpdate(BaseModel):
    is_public: bool


class LinkRequest(BaseModel):
    record_id: str = Field(..., min_length=1, max_length=255)
    record_type: str = Field(..., min_length=1, max_length=255)


class FileStatsResponse(BaseModel):
    totalFiles: int
    totalSize: int
    fileTypes: Dict[str, int]
    sizeRanges: Dict[str, int]
