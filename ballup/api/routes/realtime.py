"""
Real-time WebSocket endpoint.

Clients connect to /api/ws?token=<jwt> (or send an Authorization: Bearer
header) and exchange JSON frames {"event": ..., "data": {...}}.

Client events: join-game, leave-game, game-message, share-location,
typing-start, typing-stop, ping.
Server events: game-state, user-joined-room, user-left-room, game-message,
player-location, user-typing, user-stop-typing, pong, error, plus the
lifecycle events published by the game service.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ballup.api.errors import AppError
from ballup.database import db
from ballup.services import auth_service, game_service, user_service
from ballup.services.websocket_manager import WEBSOCKET_TIMEOUT_SECONDS, get_websocket_manager, make_frame
from ballup.utils.datetime_utils import utcnow
from ballup.utils.security_log import log_security_event

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_MESSAGE_LENGTH = 500


def _extract_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return None


def _valid_game_id(game_id: Any) -> bool:
    return isinstance(game_id, str) and bool(game_id.strip())


async def _authenticate(websocket: WebSocket) -> Optional[Dict[str, Any]]:
    """Resolve the connecting user from the handshake token, or None."""
    token = _extract_token(websocket)
    if not token:
        return None
    payload = auth_service.verify_token(token)
    if payload is None or payload.get("user_id") is None:
        return None
    async with db.AsyncSessionLocal() as session:
        user = await user_service.get_user_by_id(session, payload["user_id"])
    if user is None or not user["isActive"]:
        return None
    return user


class GameRoomSession:
    """Handles the client events of one authenticated connection."""

    def __init__(self, websocket: WebSocket, user: Dict[str, Any]):
        self.websocket = websocket
        self.user = user
        self.user_id = user["id"]
        self.username = user["username"]
        self.manager = get_websocket_manager()

    async def send(self, event: str, data: Dict[str, Any]):
        await self.websocket.send_text(make_frame(event, data))

    async def error(self, message: str):
        await self.send("error", {"message": message})

    async def _require_room(self, game_id: Any) -> bool:
        if not _valid_game_id(game_id):
            await self.error("gameId is required")
            return False
        if not await self.manager.is_in_room(game_id, self.websocket):
            await self.error("Join the game room first")
            return False
        return True

    async def dispatch(self, event: str, data: Dict[str, Any]):
        handlers = {
            "join-game": self.on_join_game,
            "leave-game": self.on_leave_game,
            "game-message": self.on_game_message,
            "share-location": self.on_share_location,
            "typing-start": self.on_typing_start,
            "typing-stop": self.on_typing_stop,
            "ping": self.on_ping,
        }
        handler = handlers.get(event)
        if handler is None:
            await self.error(f"Unknown event: {event}")
            return
        await handler(data)

    async def on_ping(self, data: Dict[str, Any]):
        await self.send("pong", {"timestamp": utcnow().isoformat()})

    async def on_join_game(self, data: Dict[str, Any]):
        game_id = data.get("gameId")
        if not _valid_game_id(game_id):
            await self.error("gameId is required")
            return
        try:
            async with db.AsyncSessionLocal() as session:
                game = await game_service.get_game(session, game_id)
        except AppError as e:
            await self.error(e.message)
            return

        await self.manager.join_room(game_id, self.websocket)
        await self.send("game-state", {"game": game})
        await self.manager.emit_to_room(
            game_id,
            "user-joined-room",
            {"gameId": game_id, "userId": self.user_id, "username": self.username},
            exclude=self.websocket,
        )

    async def on_leave_game(self, data: Dict[str, Any]):
        game_id = data.get("gameId")
        if not _valid_game_id(game_id):
            await self.error("gameId is required")
            return
        if await self.manager.leave_room(game_id, self.websocket):
            await self.manager.emit_to_room(
                game_id,
                "user-left-room",
                {"gameId": game_id, "userId": self.user_id, "username": self.username},
            )

    async def on_game_message(self, data: Dict[str, Any]):
        game_id = data.get("gameId")
        message = data.get("message")
        if not await self._require_room(game_id):
            return
        if not isinstance(message, str) or not message.strip():
            await self.error("message is required")
            return
        if len(message) > MAX_MESSAGE_LENGTH:
            await self.error(f"message must be at most {MAX_MESSAGE_LENGTH} characters")
            return

        # Participation can change after the room was joined, so check on every send
        async with db.AsyncSessionLocal() as session:
            allowed = await game_service.is_participant(session, game_id, self.user_id)
        if not allowed:
            await self.error("You are not part of this game")
            return

        await self.manager.emit_to_room(
            game_id,
            "game-message",
            {
                "gameId": game_id,
                "userId": self.user_id,
                "username": self.username,
                "message": message.strip(),
                "timestamp": utcnow().isoformat(),
            },
        )

    async def on_share_location(self, data: Dict[str, Any]):
        game_id = data.get("gameId")
        if not await self._require_room(game_id):
            return
        lat = data.get("lat", data.get("latitude"))
        lng = data.get("lng", data.get("longitude"))
        if (
            not isinstance(lat, (int, float))
            or not isinstance(lng, (int, float))
            or not -90 <= lat <= 90
            or not -180 <= lng <= 180
        ):
            await self.error("Valid lat and lng are required")
            return
        await self.manager.emit_to_room(
            game_id,
            "player-location",
            {
                "gameId": game_id,
                "userId": self.user_id,
                "username": self.username,
                "lat": lat,
                "lng": lng,
                "timestamp": utcnow().isoformat(),
            },
            exclude=self.websocket,
        )

    async def on_typing_start(self, data: Dict[str, Any]):
        await self._relay_typing(data, "user-typing")

    async def on_typing_stop(self, data: Dict[str, Any]):
        await self._relay_typing(data, "user-stop-typing")

    async def _relay_typing(self, data: Dict[str, Any], event: str):
        game_id = data.get("gameId")
        if not await self._require_room(game_id):
            return
        await self.manager.emit_to_room(
            game_id,
            event,
            {"gameId": game_id, "userId": self.user_id, "username": self.username},
            exclude=self.websocket,
        )


@router.websocket("/api/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for game rooms and personal notifications.

    Requires a JWT in the ``token`` query parameter or Authorization header.
    """
    await websocket.accept()

    user = await _authenticate(websocket)
    if user is None:
        log_security_event(
            "WebSocket authentication failed",
            ip=websocket.client.host if websocket.client else None,
        )
        await websocket.close(code=1008, reason="Authentication error")
        return

    manager = get_websocket_manager()
    await manager.connect(user["id"], websocket)
    room_session = GameRoomSession(websocket, user)

    try:
        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=WEBSOCKET_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.info(f"WebSocket timeout for user {user['id']}, closing connection")
                await websocket.close(code=1000, reason="Connection timeout")
                break

            await manager.update_activity(websocket)

            # Plain-text keepalive
            if raw == "ping":
                await websocket.send_text("pong")
                continue

            try:
                frame = json.loads(raw)
            except ValueError:
                await room_session.error("Invalid message format")
                continue
            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                await room_session.error("Invalid message format")
                continue
            data = frame.get("data") or {}
            if not isinstance(data, dict):
                await room_session.error("Invalid message format")
                continue

            await room_session.dispatch(frame["event"], data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for user {user['id']}")
    except Exception as e:
        logger.error(f"WebSocket error for user {user['id']}: {e}", exc_info=True)
    finally:
        left_rooms = await manager.disconnect(user["id"], websocket)
        for game_id in left_rooms:
            await manager.emit_to_room(
                game_id,
                "user-left-room",
                {"gameId": game_id, "userId": user["id"], "username": user["username"]},
            )
