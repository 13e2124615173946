import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from dashboard_api.core.clock import utcnow

logger = logging.getLogger(__name__)


class ResourceType(str, enum.Enum):
    USER = "user"
    DOCUMENT = "document"
    FILE = "file"


@dataclass
class ChangeEvent:
    """A committed mutation, as seen by change listeners.

    `before`/`after` hold the resource snapshot on either side of the write;
    a missing side means the resource did not exist at that point.
    """

    collection: str
    resource_id: str
    resource_type: ResourceType = ResourceType.DOCUMENT
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    actor_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)


Listener = Callable[[ChangeEvent], Awaitable[None]]


class ChangeDispatcher:
    """Fans committed changes out to listeners as background tasks.

    Delivery happens after the write has committed and never blocks the
    writer. A listener failure is logged and ends that delivery only.
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Task] = set()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event: ChangeEvent) -> None:
        for listener in list(self._listeners):
            self.spawn(self._deliver(listener, event))

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Run a coroutine in the background and keep track of it until it finishes"""
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, listener: Listener, event: ChangeEvent) -> None:
        try:
            await listener(event)
        except Exception:
            logger.exception(
                f"Change listener {getattr(listener, '__qualname__', listener)} failed "
                f"for {event.collection}/{event.resource_id}"
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled delivery, including ones scheduled while waiting"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
