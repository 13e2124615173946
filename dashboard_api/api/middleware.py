import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from dashboard_api.core.auth import principal_from_token
from dashboard_api.core.clock import isoformat, utcnow
from dashboard_api.core.security import extract_token_from_header
from dashboard_api.domains.collections import API_LOGS
from dashboard_api.domains.documents.services import CollectionService

logger = logging.getLogger(__name__)


async def write_api_log(session_factory, entry: dict) -> None:
    try:
        async with session_factory() as session:
            await CollectionService(session, API_LOGS).create(entry)
    except Exception:
        logger.exception(f"Writing API log for {entry.get('method')} {entry.get('path')} failed")


class ApiLoggingMiddleware(BaseHTTPMiddleware):
    """Appends an api_logs document for every /api call, off the request path"""

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith("/api"):
            return await call_next(request)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            token = extract_token_from_header(request.headers.get("Authorization"))
            principal = principal_from_token(token)
            entry = {
                "timestamp": isoformat(utcnow()),
                "method": request.method,
                "path": request.url.path,
                "userId": principal.uid if principal else None,
                "userAgent": request.headers.get("user-agent"),
                "ip": request.client.host if request.client else None,
                "status": status_code,
            }
            state = request.app.state
            state.dispatcher.spawn(write_api_log(state.session_factory, entry))

        return response
