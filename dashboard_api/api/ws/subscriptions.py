import json
import logging
import uuid
from typing import Dict, List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from dashboard_api.core.auth import principal_from_token
from dashboard_api.domains.documents.entities import Document
from dashboard_api.domains.realtime.entities import Notification
from dashboard_api.domains.realtime.services import SubscriptionHandle, SubscriptionManager

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    def __init__(self):
        # {connection_id: websocket}
        self.active_connections: Dict[str, WebSocket] = {}
        # {connection_id: {subscription_id: handle}}
        self.subscriptions: Dict[str, Dict[str, SubscriptionHandle]] = {}

    async def connect(self, websocket: WebSocket, user_id: str) -> str:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        self.subscriptions[connection_id] = {}
        logger.info(f"WebSocket {connection_id} accepted for user {user_id}")
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        """Drop the connection and stop its live queries"""
        self.active_connections.pop(connection_id, None)
        for handle in self.subscriptions.pop(connection_id, {}).values():
            handle.unsubscribe()
        logger.info(f"WebSocket {connection_id} disconnected")

    async def send(self, connection_id: str, message: dict) -> None:
        """Send to one connection; messages for closed connections are dropped"""
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return
        try:
            await websocket.send_text(json.dumps(jsonable_encoder(message)))
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug(f"Dropping message for closed WebSocket {connection_id}: {exc}")
            self.disconnect(connection_id)

    async def subscribe(
        self,
        subscription_manager: SubscriptionManager,
        connection_id: str,
        collection: str,
        filters: list,
        subscription_id: str,
    ) -> None:
        async def deliver(documents: List[Document]):
            await self.send(connection_id, {
                "type": "snapshot",
                "data": {
                    "subscription_id": subscription_id,
                    "documents": [document.to_dict() for document in documents],
                },
            })

        async def notify(notification: Notification):
            await self.send(connection_id, {
                "type": "notification",
                "data": {"subscription_id": subscription_id, **notification.to_dict()},
            })

        async def failed(exc: Exception):
            await self.send(connection_id, {
                "type": "error",
                "data": {"subscription_id": subscription_id, "message": f"Error subscribing to {collection}: {exc}"},
            })

        await self.send(connection_id, {
            "type": "subscribed",
            "data": {"subscription_id": subscription_id, "collection": collection},
        })
        handle = await subscription_manager.subscribe(
            collection, filters, deliver, on_error=failed, on_notification=notify
        )
        if not handle.active:
            return

        connection_subscriptions = self.subscriptions.get(connection_id)
        if connection_subscriptions is None:
            # connection went away during the initial query
            handle.unsubscribe()
            return
        connection_subscriptions[subscription_id] = handle

    async def unsubscribe(self, connection_id: str, subscription_id: str) -> None:
        handle = self.subscriptions.get(connection_id, {}).pop(subscription_id, None)
        if handle is not None:
            handle.unsubscribe()
        await self.send(connection_id, {
            "type": "unsubscribed",
            "data": {"subscription_id": subscription_id},
        })


manager = ConnectionManager()


@router.websocket("/ws/{collection}")
async def websocket_endpoint(websocket: WebSocket, collection: str):
    """Live queries over one collection"""
    principal = principal_from_token(websocket.query_params.get("token"))
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    subscription_manager: SubscriptionManager = websocket.app.state.subscription_manager
    connection_id = await manager.connect(websocket, principal.uid)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send(connection_id, {"type": "error", "data": {"message": "Invalid JSON"}})
                continue

            message_type = message.get("type") if isinstance(message, dict) else None

            if message_type == "subscribe":
                await manager.subscribe(
                    subscription_manager,
                    connection_id,
                    collection,
                    message.get("filters") or [],
                    message.get("subscription_id") or uuid.uuid4().hex,
                )

            elif message_type == "unsubscribe":
                await manager.unsubscribe(connection_id, message.get("subscription_id"))

            elif message_type == "ping":
                await manager.send(connection_id, {"type": "pong"})

            else:
                await manager.send(connection_id, {
                    "type": "error",
                    "data": {"message": f"Unknown message type: {message_type}"},
                })

    except WebSocketDisconnect:
        manager.disconnect(connection_id)
    except Exception as e:
        logger.error(f"WebSocket {connection_id} error: {e}")
        manager.disconnect(connection_id)
