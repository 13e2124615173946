from fastapi import Request

from dashboard_api.core.events import ChangeDispatcher
from dashboard_api.domains.storage.services import StorageService


def get_dispatcher(request: Request) -> ChangeDispatcher:
    return request.app.state.dispatcher


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage
