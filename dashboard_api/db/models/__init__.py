from dashboard_api.db.models.document import DocumentModel

__all__ = [
    "DocumentModel",
]
