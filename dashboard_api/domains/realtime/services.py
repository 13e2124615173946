import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from dashboard_api.core.events import ChangeEvent, ResourceType
from dashboard_api.domains.documents.entities import Document, Filter
from dashboard_api.domains.documents.services import CollectionService
from dashboard_api.domains.realtime.entities import (
    Notification,
    Snapshot,
    diff_snapshots,
    new_subscription_id,
    snapshot_of,
)

logger = logging.getLogger(__name__)

ResultCallback = Callable[[List[Document]], Any]
ErrorCallback = Callable[[Exception], Any]
NotificationCallback = Callable[[Notification], Any]


async def _invoke(callback: Optional[Callable], *args) -> None:
    """Call a plain or async callback; failures are logged, never raised"""
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception(f"Subscription callback {getattr(callback, '__qualname__', callback)} failed")


class _Subscription:
    def __init__(
        self,
        collection: str,
        filters: List[Filter],
        callback: ResultCallback,
        on_notification: Optional[NotificationCallback] = None,
    ):
        self.id = new_subscription_id()
        self.collection = collection
        self.filters = filters
        self.callback = callback
        self.on_notification = on_notification
        self.snapshot: Snapshot = {}
        self.active = True
        # held while a query runs and its result is delivered; FIFO keeps deliveries in order
        self.lock = asyncio.Lock()


class SubscriptionHandle:
    """Returned by subscribe(); a handle without a manager is a no-op"""

    def __init__(self, manager: Optional["SubscriptionManager"] = None, subscription_id: Optional[str] = None):
        self._manager = manager
        self.id = subscription_id

    @property
    def active(self) -> bool:
        return self._manager is not None and self._manager.is_active(self.id)

    def unsubscribe(self) -> None:
        if self._manager is not None:
            self._manager.remove(self.id)
            self._manager = None


class SubscriptionManager:
    """Registry of live queries.

    Every committed change on a watched collection re-runs the matching
    queries and hands each subscriber its full current result set.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._subscriptions: Dict[str, _Subscription] = {}
        self._notification_listeners: List[NotificationCallback] = []

    def add_notification_listener(self, listener: NotificationCallback) -> None:
        self._notification_listeners.append(listener)

    def remove_notification_listener(self, listener: NotificationCallback) -> None:
        if listener in self._notification_listeners:
            self._notification_listeners.remove(listener)

    def is_active(self, subscription_id: Optional[str]) -> bool:
        return subscription_id in self._subscriptions

    def subscriptions_for(self, collection: str) -> List[_Subscription]:
        return [sub for sub in self._subscriptions.values() if sub.collection == collection]

    def __len__(self) -> int:
        return len(self._subscriptions)

    async def _query(self, subscription: _Subscription) -> List[Document]:
        async with self.session_factory() as session:
            service = CollectionService(session, subscription.collection)
            return await service.query(subscription.filters)

    async def subscribe(
        self,
        collection: str,
        filters: Optional[Iterable[Any]],
        callback: ResultCallback,
        on_error: Optional[ErrorCallback] = None,
        on_notification: Optional[NotificationCallback] = None,
    ) -> SubscriptionHandle:
        """Start a live query and deliver its first result set.

        Never raises: when the query cannot be started `on_error` receives the
        exception and a no-op handle is returned.
        """
        try:
            parsed = [Filter.parse(raw) for raw in filters or ()]
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning(f"Rejected subscription to {collection}: {exc}")
            await _invoke(on_error, exc)
            return SubscriptionHandle()

        subscription = _Subscription(collection, parsed, callback, on_notification)
        async with subscription.lock:
            self._subscriptions[subscription.id] = subscription
            try:
                documents = await self._query(subscription)
            except Exception as exc:
                self._subscriptions.pop(subscription.id, None)
                logger.exception(f"Error subscribing to {collection}")
                await _invoke(on_error, exc)
                return SubscriptionHandle()

            subscription.snapshot = snapshot_of(documents)
            await _invoke(callback, documents)

        logger.debug(f"Subscription {subscription.id} on {collection} started")
        return SubscriptionHandle(self, subscription.id)

    def remove(self, subscription_id: Optional[str]) -> None:
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is not None:
            subscription.active = False
            logger.debug(f"Subscription {subscription_id} on {subscription.collection} stopped")

    async def _refresh(self, subscription: _Subscription) -> None:
        async with subscription.lock:
            if not subscription.active:
                return
            documents = await self._query(subscription)
            current = snapshot_of(documents)
            changes = diff_snapshots(subscription.snapshot, current)
            if not changes:
                return
            subscription.snapshot = current
            await _invoke(subscription.callback, documents)

            for change_type, document_id in changes:
                notification = Notification.for_change(subscription.collection, change_type, document_id)
                await _invoke(subscription.on_notification, notification)
                for listener in list(self._notification_listeners):
                    await _invoke(listener, notification)

    async def handle_change(self, event: ChangeEvent) -> None:
        """Change listener: refresh every live query on the event's collection"""
        if event.resource_type == ResourceType.FILE:
            return
        for subscription in self.subscriptions_for(event.collection):
            try:
                await self._refresh(subscription)
            except Exception:
                logger.exception(f"Refreshing subscription {subscription.id} on {subscription.collection} failed")

    async def close(self) -> None:
        """Stop every subscription"""
        for subscription_id in list(self._subscriptions):
            self.remove(subscription_id)
        logger.info("Subscription manager closed")
