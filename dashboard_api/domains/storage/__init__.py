from dashboard_api.domains.storage.entities import (
    FileObject, FilePage, ProgressTracker, UploadResult, object_key
)
from dashboard_api.domains.storage.schemas import (
    AccessUpdate, FilePageResponse, FileResponse, FileStatsResponse, LinkRequest, UploadResponse
)
from dashboard_api.domains.storage.services import (
    StorageClientFactory, StorageService, storage_service_factory
)

__all__ = [
    "FileObject", "FilePage", "ProgressTracker", "UploadResult", "object_key",
    "AccessUpdate", "FilePageResponse", "FileResponse", "FileStatsResponse", "LinkRequest",
    "UploadResponse",
    "StorageClientFactory", "StorageService", "storage_service_factory",
]
