"""
Tests for the WebSocket connection manager.
"""
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from ballup.services.websocket_manager import WEBSOCKET_TIMEOUT_SECONDS, WebSocketManager, make_frame
from ballup.utils.datetime_utils import utcnow


def make_websocket():
    websocket = AsyncMock()
    websocket.send_text = AsyncMock()
    return websocket


def frames(websocket):
    return [json.loads(call.args[0]) for call in websocket.send_text.await_args_list]


def test_make_frame():
    assert json.loads(make_frame("pong", {"ok": True})) == {"event": "pong", "data": {"ok": True}}


@pytest.mark.asyncio
async def test_connect_and_disconnect():
    manager = WebSocketManager()
    ws1, ws2 = make_websocket(), make_websocket()

    await manager.connect("u1", ws1)
    await manager.connect("u1", ws2)
    assert await manager.get_connection_count("u1") == 2

    await manager.join_room("g1", ws1)
    left = await manager.disconnect("u1", ws1)
    assert left == ["g1"]
    assert await manager.get_connection_count("u1") == 1
    assert "g1" not in manager.rooms

    await manager.disconnect("u1", ws2)
    assert "u1" not in manager.active_connections


@pytest.mark.asyncio
async def test_emit_to_room_skips_excluded_sender():
    manager = WebSocketManager()
    sender, listener, outsider = make_websocket(), make_websocket(), make_websocket()
    for user_id, ws in (("u1", sender), ("u2", listener), ("u3", outsider)):
        await manager.connect(user_id, ws)
    await manager.join_room("g1", sender)
    await manager.join_room("g1", listener)

    sent = await manager.emit_to_room("g1", "user-typing", {"userId": "u1"}, exclude=sender)
    assert sent == 1
    assert frames(listener) == [{"event": "user-typing", "data": {"userId": "u1"}}]
    sender.send_text.assert_not_awaited()
    outsider.send_text.assert_not_awaited()


@pytest.mark.asyncio
async def test_leave_room():
    manager = WebSocketManager()
    ws = make_websocket()
    await manager.connect("u1", ws)
    await manager.join_room("g1", ws)

    assert await manager.is_in_room("g1", ws)
    assert await manager.leave_room("g1", ws) is True
    assert await manager.leave_room("g1", ws) is False
    assert not await manager.is_in_room("g1", ws)


@pytest.mark.asyncio
async def test_send_to_user_without_connections():
    manager = WebSocketManager()
    assert await manager.send_to_user("nobody", "notification", {}) is False


@pytest.mark.asyncio
async def test_dead_connection_is_dropped():
    manager = WebSocketManager()
    dead, alive = make_websocket(), make_websocket()
    dead.send_text.side_effect = RuntimeError("closed")
    await manager.connect("u1", dead)
    await manager.connect("u2", alive)

    assert await manager.broadcast("new-game-created", {"game": {}}) == 1
    assert dead not in manager.connection_users
    assert await manager.get_connection_count("u1") == 0


@pytest.mark.asyncio
async def test_handle_event_routes_by_topic():
    manager = WebSocketManager()
    in_room, personal, bystander = make_websocket(), make_websocket(), make_websocket()
    await manager.connect("u1", in_room)
    await manager.connect("u2", personal)
    await manager.connect("u3", bystander)
    await manager.join_room("g1", in_room)

    await manager.handle_event("game:g1", "player-joined", {"gameId": "g1"})
    await manager.handle_event("user:u2", "notification", {"type": "game_cancelled"})
    await manager.handle_event("broadcast", "new-game-created", {"game": {"id": "g2"}})
    await manager.handle_event("league:9", "ignored", {})

    assert [f["event"] for f in frames(in_room)] == ["player-joined", "new-game-created"]
    assert [f["event"] for f in frames(personal)] == ["notification", "new-game-created"]
    assert [f["event"] for f in frames(bystander)] == ["new-game-created"]


@pytest.mark.asyncio
async def test_cleanup_stale_connections():
    manager = WebSocketManager()
    stale, fresh = make_websocket(), make_websocket()
    await manager.connect("u1", stale)
    await manager.connect("u2", fresh)
    manager.connection_timestamps[stale] = utcnow() - timedelta(seconds=WEBSOCKET_TIMEOUT_SECONDS + 5)

    await manager.cleanup_stale_connections()
    assert stale not in manager.connection_users
    assert fresh in manager.connection_users
