from dashboard_api.api.http.health import router as health_router
from dashboard_api.api.http.files import router as files_router
from dashboard_api.api.http.schemas import router as schemas_router
from dashboard_api.api.http.search import router as search_router
from dashboard_api.api.http.activity import router as activity_router
from dashboard_api.api.http.collections import router as collections_router

__all__ = [
    "health_router",
    "files_router",
    "schemas_router",
    "search_router",
    "activity_router",
    "collections_router",
]
