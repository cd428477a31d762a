"""
WebSocket connection manager for real-time game updates.

Tracks active connections per user (the personal channel) and per game room,
and delivers JSON frames of the form {"event": ..., "data": {...}}. Subscribes
to the event bus through ``handle_event``.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from ballup.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Timeout for WebSocket connections (60 seconds of inactivity)
WEBSOCKET_TIMEOUT_SECONDS = 60


def make_frame(event: str, data: Dict[str, Any]) -> str:
    return json.dumps({"event": event, "data": data}, default=str)


class WebSocketManager:
    """Manages WebSocket connections, user channels and game rooms."""

    def __init__(self):
        # user_id -> active connections for that user
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        # game_id -> connections that joined the game's room
        self.rooms: Dict[str, Set[WebSocket]] = {}
        # connection -> user_id
        self.connection_users: Dict[WebSocket, str] = {}
        # connection -> last activity timestamp
        self.connection_timestamps: Dict[WebSocket, datetime] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket):
        """Register a connection on the user's personal channel."""
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)
            self.connection_users[websocket] = user_id
            self.connection_timestamps[websocket] = utcnow()
            logger.info(f"WebSocket connected for user {user_id} (total connections: {len(self.active_connections[user_id])})")

    async def disconnect(self, user_id: str, websocket: WebSocket) -> List[str]:
        """
        Remove a connection from its user channel and every room.

        Returns:
            Game ids of the rooms the connection was in
        """
        left_rooms = []
        async with self._lock:
            if user_id in self.active_connections:
                self.active_connections[user_id].discard(websocket)
                if not self.active_connections[user_id]:
                    del self.active_connections[user_id]
            for game_id, members in list(self.rooms.items()):
                if websocket in members:
                    members.discard(websocket)
                    left_rooms.append(game_id)
                    if not members:
                        del self.rooms[game_id]
            self.connection_users.pop(websocket, None)
            self.connection_timestamps.pop(websocket, None)
        logger.info(f"WebSocket disconnected for user {user_id}")
        return left_rooms

    async def join_room(self, game_id: str, websocket: WebSocket):
        async with self._lock:
            self.rooms.setdefault(game_id, set()).add(websocket)

    async def leave_room(self, game_id: str, websocket: WebSocket) -> bool:
        """Returns True if the connection was in the room."""
        async with self._lock:
            members = self.rooms.get(game_id)
            if not members or websocket not in members:
                return False
            members.discard(websocket)
            if not members:
                del self.rooms[game_id]
            return True

    async def is_in_room(self, game_id: str, websocket: WebSocket) -> bool:
        async with self._lock:
            return websocket in self.rooms.get(game_id, set())

    async def _send(self, connections: Iterable[WebSocket], frame: str) -> int:
        """Send a frame to each connection, dropping the ones that fail."""
        sent = 0
        dead = []
        for websocket in connections:
            try:
                await websocket.send_text(frame)
                sent += 1
            except Exception as e:
                logger.warning(f"Error sending WebSocket message: {e}")
                dead.append(websocket)

        for websocket in dead:
            user_id = self.connection_users.get(websocket)
            if user_id is not None:
                await self.disconnect(user_id, websocket)
        return sent

    async def send_to_user(self, user_id: str, event: str, data: Dict[str, Any]) -> bool:
        """
        Send an event to all of a user's connections.

        Returns:
            True if the event reached at least one connection
        """
        async with self._lock:
            connections = set(self.active_connections.get(user_id, set()))
        if not connections:
            return False
        return await self._send(connections, make_frame(event, data)) > 0

    async def emit_to_room(
        self, game_id: str, event: str, data: Dict[str, Any], exclude: Optional[WebSocket] = None
    ) -> int:
        """Send an event to every connection in a game room, optionally skipping the sender."""
        async with self._lock:
            connections = {ws for ws in self.rooms.get(game_id, set()) if ws is not exclude}
        if not connections:
            return 0
        return await self._send(connections, make_frame(event, data))

    async def broadcast(self, event: str, data: Dict[str, Any]) -> int:
        async with self._lock:
            connections = set(self.connection_users)
        if not connections:
            return 0
        return await self._send(connections, make_frame(event, data))

    async def handle_event(self, topic: str, event: str, payload: Dict[str, Any]) -> None:
        """Event bus subscriber: route a published event to its room or channel."""
        if topic.startswith("game:"):
            await self.emit_to_room(topic[len("game:"):], event, payload)
        elif topic.startswith("user:"):
            await self.send_to_user(topic[len("user:"):], event, payload)
        elif topic == "broadcast":
            await self.broadcast(event, payload)
        else:
            logger.warning(f"Dropping {event} published on unknown topic {topic}")

    async def get_connection_count(self, user_id: str) -> int:
        async with self._lock:
            return len(self.active_connections.get(user_id, set()))

    async def update_activity(self, websocket: WebSocket):
        """Record activity on a connection (any client frame, including ping)."""
        async with self._lock:
            if websocket in self.connection_timestamps:
                self.connection_timestamps[websocket] = utcnow()

    async def cleanup_stale_connections(self):
        """Drop connections with no activity within WEBSOCKET_TIMEOUT_SECONDS."""
        timeout_threshold = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS)

        async with self._lock:
            stale = [
                (websocket, self.connection_users.get(websocket))
                for websocket, last_activity in self.connection_timestamps.items()
                if last_activity < timeout_threshold
            ]

        for websocket, user_id in stale:
            if user_id is not None:
                await self.disconnect(user_id, websocket)
                logger.info(f"Cleaned up stale WebSocket connection for user {user_id}")


# Global WebSocket manager instance
_websocket_manager: Optional[WebSocketManager] = None


def get_websocket_manager() -> WebSocketManager:
    """Get the global WebSocket manager instance."""
    global _websocket_manager
    if _websocket_manager is None:
        _websocket_manager = WebSocketManager()
    return _websocket_manager
