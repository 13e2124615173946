from sqlalchemy import JSON, Column, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB

from dashboard_api.core.db import Base


class DocumentModel(Base):
    __tablename__ = "documents"

    collection = Column(String(255), primary_key=True)
    id = Column(String(255), primary_key=True)
    # JSONB on PostgreSQL so field values keep a total order for sorting
    data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_documents_collection_created_at", "collection", "created_at"),
    )
