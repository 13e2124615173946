import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from pydantic import BaseModel, Field

from dashboard_api.api.deps import get_storage
from dashboard_api.core.auth import Principal, get_current_user
from dashboard_api.core.errors import NotFound
from dashboard_api.domains.storage.schemas import (
    AccessUpdate,
    FilePageResponse,
    FileResponse,
    FileStatsResponse,
    LinkRequest,
    UploadResponse,
)
from dashboard_api.domains.storage.services import StorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


class BatchDeleteFilesRequest(BaseModel):
    paths: List[str] = Field(..., min_length=1, max_length=500)


def _json_object(raw: Optional[str], name: str) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {name}: {e}")
    if not isinstance(value, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{name} must be a JSON object")
    return value


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile = File(...),
    collection: str = Form(...),
    path: str = Form(""),
    metadata: Optional[str] = Form(None),
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Upload a file under `{collection}/{path}/`"""
    result = await storage.upload(
        collection,
        file.file,
        file.filename,
        content_type=file.content_type,
        sub_path=path,
        metadata=_json_object(metadata, "metadata"),
        actor_id=current_user.uid,
    )
    return UploadResponse(**result.__dict__)


@router.get("", response_model=FilePageResponse)
async def list_files(
    collection: str = Query(..., min_length=1),
    path: str = Query(""),
    page_size: int = Query(20, ge=1, le=1000),
    page_token: Optional[str] = Query(None),
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """One page of files under a collection folder"""
    page = await storage.list_files(collection, path, page_size, page_token)
    return FilePageResponse(
        files=[FileResponse.from_file(file) for file in page.files],
        next_page_token=page.next_page_token,
    )


@router.get("/stats", response_model=FileStatsResponse)
async def file_stats(
    collection: str = Query(..., min_length=1),
    path: str = Query(""),
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """File counts by type and size range"""
    return await storage.stats(collection, path)


@router.get("/search", response_model=List[FileResponse])
async def search_files(
    collection: str = Query(..., min_length=1),
    criteria: Optional[str] = Query(None, description='JSON object matched against custom metadata'),
    record_id: Optional[str] = Query(None),
    path: str = Query(""),
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Files whose custom metadata matches every criterion"""
    if record_id:
        files = await storage.files_for_record(collection, record_id)
    else:
        files = await storage.search_files(collection, _json_object(criteria, "criteria"), path)
    return [FileResponse.from_file(file) for file in files]


@router.get("/metadata/{path:path}", response_model=FileResponse)
async def file_metadata(
    path: str,
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Object metadata, including custom metadata"""
    return FileResponse.from_file(await storage.get_metadata(path))


@router.get("/download/{path:path}")
async def download_url(
    path: str,
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Time-limited download URL"""
    await storage.get_metadata(path)
    return {"path": path, "url": await storage.download_url(path)}


@router.put("/access/{path:path}", response_model=FileResponse)
async def set_access(
    path: str,
    request: AccessUpdate,
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Mark a file public or private"""
    return FileResponse.from_file(await storage.set_access(path, request.is_public))


@router.put("/link/{path:path}", response_model=FileResponse)
async def link_to_record(
    path: str,
    request: LinkRequest,
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Attach a file to a collection record"""
    return FileResponse.from_file(await storage.link_to_record(path, request.record_id, request.record_type))


@router.post("/batch-delete")
async def batch_delete(
    request: BatchDeleteFilesRequest,
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Delete several files at once"""
    return {"deleted": await storage.batch_delete(request.paths, actor_id=current_user.uid)}


@router.delete("/{path:path}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    path: str,
    storage: StorageService = Depends(get_storage),
    current_user: Principal = Depends(get_current_user),
):
    """Delete a file; a file that is already gone counts as deleted"""
    try:
        await storage.delete(path, actor_id=current_user.uid)
    except NotFound:
        logger.info(f"Delete of missing file {path} treated as success")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
