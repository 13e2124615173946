from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.db.models.document import DocumentModel
from dashboard_api.domains.documents.entities import (
    PREFIX_SENTINEL,
    Document,
    Filter,
    Page,
    Sort,
)

# Document keys backed by real columns instead of the JSON payload
COLUMN_FIELDS = {
    "id": DocumentModel.id,
    "createdAt": DocumentModel.created_at,
    "updatedAt": DocumentModel.updated_at,
}


def _column_value(field: str, value):
    if field in ("createdAt", "updatedAt") and isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _json_accessor(field: str, sample, dialect: str = ""):
    """Typed accessor for a payload field, picked from the Python type of the compared value"""
    element = DocumentModel.data[field]
    if isinstance(sample, bool):
        typed, json_type = element.as_boolean(), "boolean"
    elif isinstance(sample, (int, float)):
        typed, json_type = element.as_float(), "number"
    elif dialect == "postgresql":
        # code-point order, as in SQLite
        return element.as_string().collate("C")
    else:
        return element.as_string()

    if dialect == "postgresql":
        # values of another JSON type never reach the cast and compare as NULL
        return case((func.jsonb_typeof(element) == json_type, typed))
    return typed


def _compare(expression, op: str, value):
    if op in ("=", "=="):
        return expression == value
    if op == "!=":
        return expression != value
    if op == "<":
        return expression < value
    if op == "<=":
        return expression <= value
    if op == ">":
        return expression > value
    if op == ">=":
        return expression >= value
    if op == "in":
        return expression.in_(list(value))
    raise ValueError(f"Unsupported operator: {op}")


def filter_clause(flt: Filter, dialect: str = ""):
    if flt.field in COLUMN_FIELDS:
        column = COLUMN_FIELDS[flt.field]
        if flt.op == "in":
            value = [_column_value(flt.field, item) for item in flt.value]
        else:
            value = _column_value(flt.field, flt.value)
        return _compare(column, flt.op, value)

    sample = flt.value[0] if flt.op == "in" and flt.value else flt.value
    return _compare(_json_accessor(flt.field, sample, dialect), flt.op, flt.value)


class DocumentRepository:
    """Rows of the documents table, addressed by (collection, id).

    Writes are staged on the session; committing is left to the caller so
    several writes can share one transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def dialect(self) -> str:
        bind = self.session.bind
        return bind.dialect.name if bind is not None else ""

    async def _get_model(self, collection: str, document_id: str) -> Optional[DocumentModel]:
        return await self.session.get(
            DocumentModel, (collection, document_id), populate_existing=True
        )

    async def get(self, collection: str, document_id: str) -> Optional[Document]:
        """Document by id, or None"""
        db_document = await self._get_model(collection, document_id)
        return self._to_domain(db_document) if db_document else None

    def add(self, document: Document) -> None:
        """Stage an insert"""
        self.session.add(
            DocumentModel(
                collection=document.collection,
                id=document.id,
                data=dict(document.data),
                created_at=document.created_at,
                updated_at=document.updated_at,
            )
        )

    async def save(self, document: Document) -> None:
        """Write the document's current state, inserting the row if it is missing"""
        db_document = await self._get_model(document.collection, document.id)
        if db_document is None:
            self.add(document)
            return
        db_document.data = dict(document.data)
        db_document.updated_at = document.updated_at

    async def remove(self, collection: str, document_id: str) -> Optional[Document]:
        """Stage a delete; returns the removed document, or None when there was nothing to remove"""
        db_document = await self._get_model(collection, document_id)
        if db_document is None:
            return None
        removed = self._to_domain(db_document)
        await self.session.delete(db_document)
        return removed

    def _sort_expression(self, field: str):
        if field in COLUMN_FIELDS:
            return COLUMN_FIELDS[field]
        if self.dialect == "postgresql":
            # jsonb has a total order across value types
            return DocumentModel.data[field]
        # JSON_EXTRACT keeps native SQLite types, so numbers sort numerically
        return DocumentModel.data[field].as_string()

    def _keyed(self, field: str, value):
        """Expression and bound value used to compare `field` against `value`"""
        if field in COLUMN_FIELDS:
            return COLUMN_FIELDS[field], _column_value(field, value)
        return _json_accessor(field, value, self.dialect), value

    def _after_clause(self, sort: Optional[Sort], start_after: Tuple[Any, str]):
        """Rows strictly after (sort value, id) in the query order"""
        value, document_id = start_after
        if sort is None:
            return DocumentModel.id > document_id
        expression, value = self._keyed(sort.field, value)
        if sort.descending:
            return or_(expression < value, and_(expression == value, DocumentModel.id < document_id))
        return or_(expression > value, and_(expression == value, DocumentModel.id > document_id))

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        start_after: Optional[Tuple[Any, str]] = None,
    ) -> List[Document]:
        """Documents matching every filter, in sort order with ties broken by id.

        `start_after` is the (sort value, id) of the last row already seen.
        """
        dialect = self.dialect
        stmt = select(DocumentModel).where(DocumentModel.collection == collection)
        for flt in filters:
            stmt = stmt.where(filter_clause(flt, dialect))
        if start_after is not None:
            stmt = stmt.where(self._after_clause(sort, start_after))

        if sort is not None:
            if start_after is not None:
                # order by the same expression the keyset compares
                expression = self._keyed(sort.field, start_after[0])[0]
            else:
                expression = self._sort_expression(sort.field)
            if sort.descending:
                stmt = stmt.order_by(expression.desc(), DocumentModel.id.desc())
            else:
                stmt = stmt.order_by(expression.asc(), DocumentModel.id.asc())
        else:
            stmt = stmt.order_by(DocumentModel.id)

        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def paginate(self, collection: str, page_size: int, cursor: Optional[str] = None) -> Page:
        """One page in id order; `cursor` is the last id of the previous page"""
        stmt = select(DocumentModel).where(DocumentModel.collection == collection)
        if cursor:
            stmt = stmt.where(DocumentModel.id > cursor)
        stmt = stmt.order_by(DocumentModel.id).limit(page_size)

        result = await self.session.execute(stmt)
        documents = [self._to_domain(row) for row in result.scalars().all()]
        return Page(
            documents=documents,
            cursor=documents[-1].id if documents else None,
            has_more=len(documents) == page_size,
        )

    async def search(
        self, collection: str, field: str, term: str, limit: Optional[int] = None
    ) -> List[Document]:
        """String prefix match on one field, ordered by that field"""
        value = _json_accessor(field, term, self.dialect)
        stmt = (
            select(DocumentModel)
            .where(
                DocumentModel.collection == collection,
                value >= term,
                value < term + PREFIX_SENTINEL,
            )
            .order_by(value, DocumentModel.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [self._to_domain(row) for row in result.scalars().all()]

    async def count(self, collection: Optional[str] = None, exclude: Iterable[str] = ()) -> int:
        """Count one collection, or every collection except `exclude` when none is given"""
        stmt = select(func.count()).select_from(DocumentModel)
        if collection is not None:
            stmt = stmt.where(DocumentModel.collection == collection)
        exclude = list(exclude)
        if exclude:
            stmt = stmt.where(DocumentModel.collection.not_in(exclude))
        result = await self.session.execute(stmt)
        return result.scalar_one()

    def _to_domain(self, db_document: DocumentModel) -> Document:
        return Document(
            id=db_document.id,
            collection=db_document.collection,
            data=db_document.data,
            created_at=db_document.created_at,
            updated_at=db_document.updated_at,
        )
