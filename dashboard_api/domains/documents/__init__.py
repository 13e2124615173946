from dashboard_api.domains.documents.entities import (
    BatchUpdate, Document, Filter, Page, Sort, strip_reserved
)
from dashboard_api.domains.documents.schemas import (
    BatchCreateRequest, BatchDeleteRequest, BatchDeleteResponse, BatchUpdateItem,
    BatchUpdateRequest, DocumentListResponse, DocumentPageResponse, DocumentResponse
)

# services import the repository layer, which imports these entities

__all__ = [
    "BatchUpdate", "Document", "Filter", "Page", "Sort", "strip_reserved",
    "BatchCreateRequest", "BatchDeleteRequest", "BatchDeleteResponse", "BatchUpdateItem",
    "BatchUpdateRequest", "DocumentListResponse", "DocumentPageResponse", "DocumentResponse",
]
