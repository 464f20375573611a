# tests/test_websocket.py — Board channels, fan-out and the socket endpoint
import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from starlette.websockets import WebSocketDisconnect

from main import app
from models import Base
from routers.websocket_router import ConnectionManager, check_join, manager
from tests.conftest import (
    TEST_DB_URL, FakeWebSocket, create_board, add_member,
)


@pytest.mark.asyncio
class TestConnectionManager:
    async def test_publish_reaches_only_joined_connections(self):
        mgr = ConnectionManager()
        joined, other = FakeWebSocket(), FakeWebSocket()
        mgr.join(mgr.register(joined, "u1"), "board-1")
        mgr.join(mgr.register(other, "u2"), "board-2")

        await mgr.publish("board-1", "card-created", {"card": {"id": "c1"}, "list_id": "l1"})

        assert other.sent == []
        message = joined.sent[0]
        assert message["type"] == "card-created"
        assert message["board_id"] == "board-1"
        assert message["card"] == {"id": "c1"}
        assert message["list_id"] == "l1"
        assert "timestamp" in message

    async def test_publish_preserves_order(self):
        mgr = ConnectionManager()
        ws = FakeWebSocket()
        mgr.join(mgr.register(ws, "u1"), "b")

        for event in ("card-created", "card-updated", "card-moved", "card-deleted"):
            await mgr.publish("b", event, {})
        assert ws.types() == ["card-created", "card-updated", "card-moved", "card-deleted"]

    async def test_failing_socket_is_dropped(self):
        mgr = ConnectionManager()
        good, bad = FakeWebSocket(), FakeWebSocket(fail=True)
        mgr.join(mgr.register(good, "u1"), "b")
        bad_id = mgr.register(bad, "u2")
        mgr.join(bad_id, "b")

        await mgr.publish("b", "list-created", {"list": {}})

        assert good.types() == ["list-created"]
        assert bad_id not in mgr.channel_members("b")
        assert mgr.get_stats() == {"total_connections": 1, "users": 1, "channels": 1}

    async def test_unknown_event_is_refused(self):
        mgr = ConnectionManager()
        ws = FakeWebSocket()
        mgr.join(mgr.register(ws, "u1"), "b")
        await mgr.publish("b", "something-else", {})
        assert ws.sent == []

    async def test_send_to_user_reaches_every_connection(self):
        mgr = ConnectionManager()
        tab1, tab2, stranger = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
        mgr.register(tab1, "u1")
        mgr.register(tab2, "u1")
        mgr.register(stranger, "u2")

        await mgr.send_to_user("u1", {"type": "notification"})
        assert tab1.types() == tab2.types() == ["notification"]
        assert stranger.sent == []

    async def test_leave_user_drops_every_tab_of_that_user(self):
        mgr = ConnectionManager()
        tab1, tab2, other = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
        for ws, user in ((tab1, "u1"), (tab2, "u1"), (other, "u2")):
            mgr.join(mgr.register(ws, user), "b")
        mgr.join(mgr.register(FakeWebSocket(), "u1"), "elsewhere")

        assert mgr.leave_user("b", "u1") == 2
        await mgr.publish("b", "card-updated", {})
        assert tab1.sent == tab2.sent == []
        assert other.types() == ["card-updated"]
        assert len(mgr.channel_members("elsewhere")) == 1

    async def test_prune_keeps_only_allowed_users(self):
        mgr = ConnectionManager()
        keep, drop = FakeWebSocket(), FakeWebSocket()
        mgr.join(mgr.register(keep, "member"), "b")
        mgr.join(mgr.register(drop, "outsider"), "b")

        assert mgr.prune("b", lambda uid: uid == "member") == 1
        await mgr.publish("b", "list-created", {})
        assert keep.types() == ["list-created"]
        assert drop.sent == []

    async def test_slow_board_does_not_hold_up_others(self):
        mgr = ConnectionManager()
        gate = asyncio.Event()

        class StalledSocket(FakeWebSocket):
            async def send_json(self, message: dict):
                await gate.wait()
                await super().send_json(message)

        stalled, quick = StalledSocket(), FakeWebSocket()
        mgr.join(mgr.register(stalled, "u1"), "slow")
        mgr.join(mgr.register(quick, "u2"), "fast")

        pending = asyncio.create_task(mgr.publish("slow", "card-updated", {}))
        await asyncio.sleep(0)
        await asyncio.wait_for(mgr.publish("fast", "card-updated", {}), timeout=1)
        assert quick.types() == ["card-updated"]

        gate.set()
        await pending
        assert stalled.types() == ["card-updated"]

    async def test_leave_and_disconnect(self):
        mgr = ConnectionManager()
        ws = FakeWebSocket()
        conn_id = mgr.register(ws, "u1")
        mgr.join(conn_id, "b1")
        mgr.join(conn_id, "b2")

        mgr.leave(conn_id, "b1")
        await mgr.publish("b1", "card-updated", {})
        assert ws.sent == []

        mgr.disconnect(conn_id)
        assert mgr.get_online_users() == []
        assert mgr.get_stats() == {"total_connections": 0, "users": 0, "channels": 0}


@pytest.mark.asyncio
class TestChannelJoin:
    async def test_member_may_join(self, client: AsyncClient, db_session, alice, bob):
        board = await create_board(client, alice)
        await add_member(client, alice, board["id"], bob, role="viewer")
        assert await check_join(db_session, board["id"], bob.id) is None

    async def test_stranger_may_not_join(self, client: AsyncClient, db_session, alice, bob):
        board = await create_board(client, alice)
        assert await check_join(db_session, board["id"], bob.id) == "Access denied"

    async def test_unknown_board(self, db_session, alice):
        # check_join rolls back, which expires the fixture instance
        alice_id = alice.id
        assert await check_join(db_session, "nope", alice_id) == "Board not found"
        assert await check_join(db_session, "", alice_id) == "board_id is required"


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["realtime"] == {"total_connections": 0, "users": 0, "channels": 0}

    async def test_security_and_correlation_headers(self, client: AsyncClient):
        resp = await client.get("/", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"

    async def test_cors_preflight(self, client: AsyncClient):
        resp = await client.options(
            "/api/boards",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"

    async def test_unknown_route_uses_error_envelope(self, client: AsyncClient):
        resp = await client.get("/api/nothing-here")
        assert resp.status_code == 404
        assert resp.json()["success"] is False


def test_bad_token_closes_with_4001():
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=bad"):
            pass
    assert exc.value.code == 4001


def test_live_board_channel():
    """Full round trip against the real app: join a board and receive a mutation event"""
    suffix = uuid.uuid4().hex[:8]
    try:
        with TestClient(app) as client:
            reg = client.post("/api/auth/register", json={
                "email": f"ws-{suffix}@taskboard.dev", "password": "Password123",
            })
            assert reg.status_code == 201
            token = reg.json()["access_token"]
            headers = {"Authorization": f"Bearer {token}"}
            board = client.post("/api/boards", json={"title": "Live"}, headers=headers).json()["board"]

            with client.websocket_connect(f"/ws?token={token}") as ws:
                assert ws.receive_json()["type"] == "connected"

                ws.send_json({"type": "ping"})
                assert ws.receive_json()["type"] == "pong"

                ws.send_json({"type": "join-board", "boardId": "missing"})
                assert ws.receive_json() == {"type": "error", "board_id": "missing", "message": "Board not found"}

                ws.send_json({"type": "join-board", "boardId": board["id"]})
                assert ws.receive_json() == {"type": "joined-board", "board_id": board["id"]}

                resp = client.post(
                    "/api/lists", json={"title": "Todo", "boardId": board["id"]}, headers=headers,
                )
                assert resp.status_code == 201
                event = ws.receive_json()
                assert event["type"] == "list-created"
                assert event["list"]["id"] == resp.json()["list"]["id"]

                ws.send_text("not json")
                assert ws.receive_json() == {"type": "error", "message": "Invalid JSON"}

                ws.send_json({"type": "leave-board", "board_id": board["id"]})
                assert ws.receive_json()["type"] == "left-board"

                stats = client.get("/ws/stats").json()
                assert stats["total_connections"] == 1
                assert stats["channels"] == 0
    finally:
        manager.reset()
        asyncio.run(_drop_tables())


async def _drop_tables():
    engine = create_async_engine(TEST_DB_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
