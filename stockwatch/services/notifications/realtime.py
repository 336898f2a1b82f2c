"""
Realtime delivery channel for notifications.

Each WebSocket connection moves through CONNECTING -> AUTHENTICATING -> OPEN ->
CLOSED. A connection is admitted only with a valid bearer token for an existing
user, at which point it joins its user room (``user:{id}``). While open it may
join resource rooms (``item:{id}``) and mark its own notifications as read.

Delivery is best effort: an event pushed to a room reaches the members that are
open at that moment, at most once each. The notification table remains the
durable record.

Wire format, both directions: ``{"event": "<name>", "data": {...}}``.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ... import models, schemas
from ...auth import decode_access_token
from ...config import PUSH_TIMEOUT_SECONDS, REALTIME_ENFORCE_ROOM_OWNERSHIP
from ...errors import AuthError, NotFoundError
from . import crud

logger = logging.getLogger(__name__)


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


def item_room(item_id: int) -> str:
    return f"item:{item_id}"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    OPEN = "open"
    CLOSED = "closed"


class Connection:
    """A single live WebSocket and the identity it authenticated as."""

    def __init__(self, websocket: WebSocket):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.state = ConnectionState.CONNECTING
        self.user: Optional[schemas.UserPublic] = None

    @property
    def user_id(self) -> Optional[int]:
        return self.user.id if self.user else None

    async def send(self, event: str, data: Any, timeout: float) -> None:
        await asyncio.wait_for(self.websocket.send_json({"event": event, "data": data}), timeout=timeout)

    def __repr__(self) -> str:
        return f"<Connection {self.id[:8]} user={self.user_id} state={self.state.value}>"


class ConnectionRegistry:
    """
    Room membership for live connections.

    Owned by the application that creates it and passed to the channel; it
    holds user ids only as back-references to route events.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = {}

    def add(self, connection: Connection) -> None:
        self._connections[connection.id] = connection
        self._memberships.setdefault(connection.id, set())

    def is_registered(self, connection: Connection) -> bool:
        return connection.id in self._connections

    def join(self, connection: Connection, room: str) -> None:
        if not self.is_registered(connection):
            raise ValueError(f"{connection!r} is not registered")
        self._rooms.setdefault(room, set()).add(connection.id)
        self._memberships[connection.id].add(room)

    def leave(self, connection: Connection, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection.id)
            if not members:
                del self._rooms[room]
        self._memberships.get(connection.id, set()).discard(room)

    def remove(self, connection: Connection) -> None:
        """Drop a connection and every room membership it holds."""
        for room in list(self._memberships.get(connection.id, ())):
            self.leave(connection, room)
        self._memberships.pop(connection.id, None)
        self._connections.pop(connection.id, None)

    def members(self, room: str) -> List[Connection]:
        return [self._connections[cid] for cid in self._rooms.get(room, ()) if cid in self._connections]

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def rooms_of(self, connection: Connection) -> Set[str]:
        return set(self._memberships.get(connection.id, ()))

    def rooms(self) -> List[str]:
        return list(self._rooms)

    def __len__(self) -> int:
        return len(self._connections)


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class RealtimeChannel:
    """
    Authenticates WebSocket clients and routes events to rooms.

    Args:
        registry: Room membership store for this channel
        session_factory: Callable returning a new SQLAlchemy session
        send_timeout: Upper bound in seconds for a single send
        enforce_room_ownership: Only let item owners join item rooms
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        session_factory: Callable[[], Session],
        send_timeout: float = PUSH_TIMEOUT_SECONDS,
        enforce_room_ownership: bool = REALTIME_ENFORCE_ROOM_OWNERSHIP,
    ):
        self.registry = registry
        self.session_factory = session_factory
        self.send_timeout = send_timeout
        self.enforce_room_ownership = enforce_room_ownership
        self._handlers = {
            "join_inventory_room": self._join_inventory_room,
            "mark_notification_read": self._mark_notification_read,
        }

    # Connection lifecycle

    @staticmethod
    def handshake_token(websocket: WebSocket) -> Optional[str]:
        """Bearer token from the ``token`` query parameter or the Authorization header."""
        token = websocket.query_params.get("token")
        if token:
            return token
        scheme, _, credentials = websocket.headers.get("authorization", "").partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
        return None

    def _load_user(self, user_id: int) -> Optional[schemas.UserPublic]:
        db = self.session_factory()
        try:
            user = db.query(models.User).filter(models.User.id == user_id).first()
            return schemas.UserPublic.model_validate(user) if user else None
        finally:
            db.close()

    async def authenticate(self, token: Optional[str]) -> schemas.UserPublic:
        """
        Resolve a handshake token to an existing user.

        Raises:
            AuthError: "Authentication error" for a missing or invalid token,
                "User not found" when the token's user no longer exists
        """
        if not token:
            raise AuthError("Authentication error")
        try:
            token_data = decode_access_token(token)
        except AuthError:
            raise AuthError("Authentication error", status_code=403)
        try:
            user = await run_in_threadpool(self._load_user, token_data.user_id)
        except SQLAlchemyError as e:
            logger.error(f"Socket authentication error: {e}")
            raise AuthError("Authentication error")
        if user is None:
            raise AuthError("User not found")
        return user

    async def serve(self, websocket: WebSocket) -> None:
        """Run one connection from handshake to close."""
        connection = Connection(websocket)
        connection.state = ConnectionState.AUTHENTICATING
        try:
            connection.user = await self.authenticate(self.handshake_token(websocket))
        except AuthError as e:
            connection.state = ConnectionState.CLOSED
            logger.warning(f"Rejected WebSocket connection: {e.message}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
            return

        await websocket.accept()
        self._open(connection)
        logger.info(f"User {connection.user.username} connected via WebSocket")
        await self.broadcast("user_online", self._presence(connection), exclude=connection)

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(frame.get("code", status.WS_1000_NORMAL_CLOSURE))
                raw = frame.get("text")
                if raw is None:
                    await self._send(connection, "error", {"message": "Messages must be JSON text"})
                    continue
                try:
                    message = json.loads(raw)
                except ValueError:
                    await self._send(connection, "error", {"message": "Messages must be JSON"})
                    continue
                await self.handle_message(connection, message)
        except WebSocketDisconnect:
            pass
        finally:
            self._close(connection)
            logger.info(f"User {connection.user.username} disconnected from WebSocket")
            await self.broadcast("user_offline", self._presence(connection), exclude=connection)

    def _open(self, connection: Connection) -> None:
        self.registry.add(connection)
        self.registry.join(connection, user_room(connection.user_id))
        connection.state = ConnectionState.OPEN

    def _close(self, connection: Connection) -> None:
        connection.state = ConnectionState.CLOSED
        self.registry.remove(connection)

    @staticmethod
    def _presence(connection: Connection) -> Dict[str, Any]:
        return {"userId": connection.user_id, "username": connection.user.username}

    # Outbound events

    async def _send(self, connection: Connection, event: str, data: Any) -> bool:
        if connection.state is not ConnectionState.OPEN:
            return False
        try:
            await connection.send(event, data, self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Timed out sending '{event}' to {connection!r}")
        except Exception as e:
            logger.warning(f"Failed to send '{event}' to {connection!r}: {e!r}")
        return False

    async def emit_to_room(self, room: str, event: str, data: Any) -> int:
        """
        Send an event to every open member of a room.

        Returns:
            Number of connections the event was written to
        """
        members = self.registry.members(room)
        if not members:
            return 0
        results = await asyncio.gather(*(self._send(member, event, data) for member in members))
        return sum(1 for sent in results if sent)

    async def broadcast(self, event: str, data: Any, exclude: Optional[Connection] = None) -> int:
        targets = [c for c in self.registry.connections() if exclude is None or c.id != exclude.id]
        if not targets:
            return 0
        results = await asyncio.gather(*(self._send(target, event, data) for target in targets))
        return sum(1 for sent in results if sent)

    async def deliver_notification(self, notification: Dict[str, Any]) -> int:
        """
        Push a stored notification to its recipient's user room.

        Low stock notifications also raise a ``low-stock-alert`` in the user room
        and, when an item is referenced, in that item's room.

        Args:
            notification: JSON-ready notification (schemas.Notification dump)

        Returns:
            Number of connections that received the ``notification`` event
        """
        recipient_room = user_room(notification["user_id"])
        delivered = await self.emit_to_room(recipient_room, "notification", notification)

        if notification.get("type") == "low_stock":
            inventory_id = notification.get("inventory_id")
            alert = {
                "message": notification["message"],
                "inventory_id": inventory_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            await self.emit_to_room(recipient_room, "low-stock-alert", alert)
            if inventory_id:
                await self.emit_to_room(item_room(inventory_id), "low-stock-alert", alert)
        return delivered

    # Inbound events

    async def handle_message(self, connection: Connection, message: Any) -> None:
        event = message.get("event") if isinstance(message, dict) else None
        data = message.get("data") if isinstance(message, dict) else None
        # event names come off the wire; anything but a string is unknown
        handler = self._handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            await self._send(connection, "error", {"message": f"Unknown event: {event}"})
            return
        await handler(connection, data if isinstance(data, dict) else {})

    def _owns_item(self, user_id: int, inventory_id: int) -> bool:
        db = self.session_factory()
        try:
            item = db.query(models.InventoryItem).filter(models.InventoryItem.id == inventory_id).first()
            return item is not None and item.created_by == user_id
        finally:
            db.close()

    async def _join_inventory_room(self, connection: Connection, data: Dict[str, Any]) -> None:
        inventory_id = _positive_int(data.get("inventoryId"))
        if inventory_id is None:
            await self._send(connection, "error", {"message": "inventoryId must be a positive integer"})
            return
        if self.enforce_room_ownership:
            allowed = await run_in_threadpool(self._owns_item, connection.user_id, inventory_id)
            if not allowed:
                await self._send(connection, "error", {"message": "Not allowed to join this inventory room"})
                return
        self.registry.join(connection, item_room(inventory_id))
        await self._send(connection, "inventory_room_joined", {"inventoryId": inventory_id})

    def _mark_read(self, notification_id: int, user_id: int) -> None:
        db = self.session_factory()
        try:
            crud.mark_read(db, notification_id, user_id)
        finally:
            db.close()

    async def _mark_notification_read(self, connection: Connection, data: Dict[str, Any]) -> None:
        notification_id = _positive_int(data.get("notificationId"))
        if notification_id is None:
            await self._send(connection, "error", {"message": "Notification not found"})
            return
        try:
            await run_in_threadpool(self._mark_read, notification_id, connection.user_id)
        except NotFoundError as e:
            await self._send(connection, "error", {"message": e.message})
            return
        except SQLAlchemyError as e:
            logger.error(f"Error marking notification as read: {e}")
            await self._send(connection, "error", {"message": "Failed to mark notification as read"})
            return
        await self._send(connection, "notification_marked_read", {"notificationId": notification_id})
