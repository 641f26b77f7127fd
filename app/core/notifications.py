"""
Customer notifications.

A notification is stored first and then pushed to every live WebSocket the
user has open. Both steps run after the financial transaction has committed,
and neither is allowed to raise into the caller.
"""
import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import Dict, Optional, Set

from fastapi import WebSocket
from sqlalchemy.orm import Session

from app.crud import crud_notification
from app.models.enums import NotificationType

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Live WebSocket connections keyed by user id.
    A user may hold several connections (one per open tab or device).
    """

    def __init__(self):
        self._connections: Dict[int, Set[WebSocket]] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._pending: Set[asyncio.Task] = set()

    def register(self, user_id: int, websocket: WebSocket) -> None:
        with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
        self._loop = asyncio.get_running_loop()
        logger.info(f"User {user_id} connected ({self.connection_count(user_id)} live connection(s))")

    def unregister(self, user_id: int, websocket: WebSocket) -> None:
        with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                del self._connections[user_id]
        logger.info(f"User {user_id} disconnected")

    @asynccontextmanager
    async def connection(self, user_id: int, websocket: WebSocket):
        """Accept a socket and keep it registered for the lifetime of the block."""
        await websocket.accept()
        self.register(user_id, websocket)
        try:
            yield websocket
        finally:
            self.unregister(user_id, websocket)

    def connection_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._connections.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return self.connection_count(user_id) > 0

    async def send(self, user_id: int, payload: dict) -> int:
        """Send a JSON payload to every connection of a user. Returns how many received it."""
        with self._lock:
            sockets = list(self._connections.get(user_id, ()))
        delivered = 0
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping dead connection for user {user_id}: {e}")
                self.unregister(user_id, websocket)
        return delivered

    def push(self, user_id: int, payload: dict) -> bool:
        """
        Schedule `send` from synchronous code without waiting for it.
        Returns False when the user is offline or no event loop has been seen yet.
        """
        if not self.is_online(user_id) or self._loop is None or self._loop.is_closed():
            return False
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            task = self._loop.create_task(self.send(user_id, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            asyncio.run_coroutine_threadsafe(self.send(user_id, payload), self._loop)
        return True


registry = ConnectionRegistry()


def notify_customer(
    db: Session,
    *,
    user_id: int,
    message: str,
    notification_type: NotificationType,
    connections: Optional[ConnectionRegistry] = None,
) -> bool:
    """
    Store a notification and push it to the user's live connections.
    Returns False when the notification could not be stored; never raises.
    """
    try:
        notification = crud_notification.create_notification(
            db, receiver_id=user_id, message=message, notification_type=notification_type
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to store notification for user {user_id}: {e}", exc_info=True)
        return False

    try:
        (connections or registry).push(user_id, {
            "id": notification.id,
            "type": notification.notification_type.value,
            "message": notification.message,
            "created_at": notification.created_at.isoformat() if notification.created_at else None,
        })
    except Exception as e:
        logger.warning(f"Failed to push notification {notification.id} to user {user_id}: {e}")
    return True
