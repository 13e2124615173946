import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_api.core.clock import next_timestamp, utcnow
from dashboard_api.core.errors import BatchFailed, NotFound, StoreError, StoreUnavailable
from dashboard_api.core.events import ChangeDispatcher, ChangeEvent, ResourceType
from dashboard_api.db.repositories.document_repository import DocumentRepository
from dashboard_api.domains.collections import USERS
from dashboard_api.domains.documents.entities import (
    BatchUpdate,
    Document,
    Filter,
    Page,
    Sort,
    strip_reserved,
)

logger = logging.getLogger(__name__)


def normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Caller data as it will be stored: reserved keys dropped, values JSON-ready"""
    return jsonable_encoder(strip_reserved(dict(data or {})))


def resource_type_for(collection: str) -> ResourceType:
    return ResourceType.USER if collection == USERS else ResourceType.DOCUMENT


class _Transaction:
    """Pending writes of one commit and the change events they produce"""

    def __init__(self, session: AsyncSession, actor_id: Optional[str] = None):
        self.session = session
        self.repository = DocumentRepository(session)
        self.actor_id = actor_id
        self.events: List[ChangeEvent] = []

    def record(self, collection: str, document_id: str, before: Optional[Document], after: Optional[Document]):
        self.events.append(
            ChangeEvent(
                collection=collection,
                resource_id=document_id,
                resource_type=resource_type_for(collection),
                before=before.to_dict() if before else None,
                after=after.to_dict() if after else None,
                actor_id=self.actor_id,
            )
        )

    async def create(self, collection: str, data: Dict[str, Any], document_id: Optional[str] = None) -> Document:
        now = utcnow()
        document = Document(
            id=document_id or Document.new_id(),
            collection=collection,
            data=normalize(data),
            created_at=now,
            updated_at=now,
        )
        self.repository.add(document)
        self.record(collection, document.id, None, document)
        return document

    async def update(self, collection: str, document_id: str, partial: Dict[str, Any]) -> Document:
        current = await self.repository.get(collection, document_id)
        if current is None:
            raise NotFound(f"Document {collection}/{document_id} not found")

        before = Document(current.id, collection, current.data, current.created_at, current.updated_at)
        current.merge(normalize(partial), next_timestamp(current.updated_at))
        await self.repository.save(current)
        self.record(collection, document_id, before, current)
        return current

    async def set(self, collection: str, document_id: str, data: Dict[str, Any]) -> Document:
        current = await self.repository.get(collection, document_id)
        if current is None:
            return await self.create(collection, data, document_id=document_id)

        before = Document(current.id, collection, current.data, current.created_at, current.updated_at)
        current.data = normalize(data)
        current.updated_at = next_timestamp(current.updated_at)
        await self.repository.save(current)
        self.record(collection, document_id, before, current)
        return current

    async def delete(self, collection: str, document_id: str) -> bool:
        removed = await self.repository.remove(collection, document_id)
        if removed is None:
            return False
        self.record(collection, document_id, removed, None)
        return True


@asynccontextmanager
async def _committing(
    session: AsyncSession,
    dispatcher: Optional[ChangeDispatcher],
    actor_id: Optional[str],
    failure: Type[StoreError] = StoreUnavailable,
    wrap_store_errors: bool = False,
):
    """Yield a transaction, commit it on exit and publish its events once committed"""
    transaction = _Transaction(session, actor_id)
    try:
        yield transaction
        await session.commit()
    except StoreError as exc:
        await session.rollback()
        if wrap_store_errors and not isinstance(exc, failure):
            raise failure(f"Batch rejected: {exc.message}") from exc
        raise
    except (SQLAlchemyError, OSError) as exc:
        await session.rollback()
        logger.error(f"Store write failed: {exc}")
        raise failure(f"Store write failed: {exc}") from exc

    if dispatcher is not None:
        for event in transaction.events:
            dispatcher.publish(event)


class CollectionService:
    """CRUD, query and batch operations over one named collection"""

    def __init__(
        self,
        session: AsyncSession,
        collection: str,
        dispatcher: Optional[ChangeDispatcher] = None,
        actor_id: Optional[str] = None,
    ):
        self.session = session
        self.collection = collection
        self.dispatcher = dispatcher
        self.actor_id = actor_id
        self.repository = DocumentRepository(session)

    def _writing(self, batch: bool = False):
        if batch:
            return _committing(self.session, self.dispatcher, self.actor_id, BatchFailed, wrap_store_errors=True)
        return _committing(self.session, self.dispatcher, self.actor_id)

    @asynccontextmanager
    async def _reading(self):
        try:
            yield
        except (SQLAlchemyError, OSError) as exc:
            logger.error(f"Store read on {self.collection} failed: {exc}")
            raise StoreUnavailable(f"Store read failed: {exc}") from exc

    async def create(self, data: Dict[str, Any]) -> Document:
        """Store a new document under a generated id"""
        async with self._writing() as tx:
            document = await tx.create(self.collection, data)
        return document

    async def get(self, document_id: str) -> Optional[Document]:
        """Document by id; a missing document is not an error"""
        async with self._reading():
            return await self.repository.get(self.collection, document_id)

    async def update(self, document_id: str, partial: Dict[str, Any]) -> Document:
        """Merge fields into an existing document; raises NotFound when it is missing"""
        async with self._writing() as tx:
            document = await tx.update(self.collection, document_id, partial)
        return document

    async def set(self, document_id: str, data: Dict[str, Any]) -> Document:
        """Replace the document, creating it under this id if needed"""
        async with self._writing() as tx:
            document = await tx.set(self.collection, document_id, data)
        return document

    async def delete(self, document_id: str) -> None:
        """Idempotent delete"""
        async with self._writing() as tx:
            await tx.delete(self.collection, document_id)

    async def query(
        self,
        filters: Iterable[Any] = (),
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
        start_after: Optional[Tuple[Any, str]] = None,
    ) -> List[Document]:
        """Documents matching every filter; `start_after` is the (sort value, id) of the last one seen"""
        parsed = [Filter.parse(raw) for raw in filters or ()]
        async with self._reading():
            return await self.repository.query(self.collection, parsed, sort, limit, start_after)

    async def paginate(self, page_size: int, cursor: Optional[str] = None) -> Page:
        """Page through the collection in id order"""
        if page_size < 1:
            raise ValueError("page_size must be positive")
        async with self._reading():
            return await self.repository.paginate(self.collection, page_size, cursor)

    async def search(self, field: str, term: str, limit: Optional[int] = None) -> List[Document]:
        """Prefix search on a string field"""
        async with self._reading():
            return await self.repository.search(self.collection, field, term, limit)

    async def count(self) -> int:
        async with self._reading():
            return await self.repository.count(self.collection)

    async def batch_create(self, items: Sequence[Dict[str, Any]]) -> List[Document]:
        """Create every document or none"""
        async with self._writing(batch=True) as tx:
            documents = [await tx.create(self.collection, data) for data in items]
        return documents

    async def batch_update(self, updates: Sequence[BatchUpdate]) -> List[Document]:
        """Apply every update or none; a missing id fails the whole batch"""
        async with self._writing(batch=True) as tx:
            documents = [await tx.update(self.collection, item.id, item.data) for item in updates]
        return documents

    async def batch_delete(self, ids: Sequence[str]) -> List[str]:
        """Delete every id in one commit"""
        async with self._writing(batch=True) as tx:
            for document_id in ids:
                await tx.delete(self.collection, document_id)
        return list(ids)


class WriteBatch:
    """Writes across collections staged locally and applied in one commit"""

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: Optional[ChangeDispatcher] = None,
        actor_id: Optional[str] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.actor_id = actor_id
        self._operations: List[tuple] = []
        self._committed = False

    def create(self, collection: str, data: Dict[str, Any], document_id: Optional[str] = None) -> "WriteBatch":
        self._operations.append(("create", collection, document_id, data))
        return self

    def set(self, collection: str, document_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._operations.append(("set", collection, document_id, data))
        return self

    def update(self, collection: str, document_id: str, partial: Dict[str, Any]) -> "WriteBatch":
        self._operations.append(("update", collection, document_id, partial))
        return self

    def delete(self, collection: str, document_id: str) -> "WriteBatch":
        self._operations.append(("delete", collection, document_id, None))
        return self

    def __len__(self) -> int:
        return len(self._operations)

    async def commit(self) -> int:
        """Apply every staged write or none of them; returns the number of operations"""
        if self._committed:
            raise RuntimeError("WriteBatch already committed")

        async with _committing(self.session, self.dispatcher, self.actor_id, BatchFailed, wrap_store_errors=True) as tx:
            for kind, collection, document_id, data in self._operations:
                if kind == "create":
                    await tx.create(collection, data, document_id=document_id)
                elif kind == "set":
                    await tx.set(collection, document_id, data)
                elif kind == "update":
                    await tx.update(collection, document_id, data)
                else:
                    await tx.delete(collection, document_id)

        self._committed = True
        return len(self._operations)
