# tests/conftest.py — Shared test fixtures
import os
import uuid
import tempfile

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ["ATTACHMENT_STORAGE_ROOT"] = tempfile.mkdtemp(prefix="taskboard-uploads-")

from models import Base, User
from auth import AuthService
from database import get_db_session
from main import app
import positions
from routers.websocket_router import manager


@pytest.fixture(autouse=True)
def reset_realtime_state():
    """Fresh connection manager and board locks for every test"""
    manager.reset()
    positions.clear_locks()
    yield
    manager.reset()
    positions.clear_locks()


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _make_user(db_session, email: str, display_name: str) -> User:
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        display_name=display_name,
        password_hash=AuthService.hash_password("Password123"),
        preferences={},
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def alice(db_session):
    return await _make_user(db_session, "alice@taskboard.dev", "alice")


@pytest_asyncio.fixture
async def bob(db_session):
    return await _make_user(db_session, "bob@taskboard.dev", "bob")


@pytest_asyncio.fixture
async def carol(db_session):
    return await _make_user(db_session, "carol@taskboard.dev", "carol")


def get_auth_headers(user: User) -> dict:
    """Generate auth headers for a user"""
    token = AuthService.create_access_token({"sub": user.id, "email": user.email})
    return {"Authorization": f"Bearer {token}"}


# ============================================================
# REALTIME CAPTURE
# ============================================================

class FakeWebSocket:
    """Records everything sent to it; optionally fails every send"""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def send_json(self, message: dict):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    def types(self) -> list:
        return [m["type"] for m in self.sent]

    def of_type(self, event: str) -> list:
        return [m for m in self.sent if m["type"] == event]


@pytest.fixture
def watch_board():
    """Join a fake socket to a board channel and return it"""
    def _watch(board_id: str, user_id: str = "observer") -> FakeWebSocket:
        ws = FakeWebSocket()
        conn_id = manager.register(ws, user_id)
        manager.join(conn_id, board_id)
        return ws
    return _watch


# ============================================================
# API HELPERS
# ============================================================

async def create_board(client: AsyncClient, user: User, **fields) -> dict:
    body = {"title": "Sprint", **fields}
    resp = await client.post("/api/boards", json=body, headers=get_auth_headers(user))
    assert resp.status_code == 201, resp.text
    return resp.json()["board"]


async def create_list(client: AsyncClient, user: User, board_id: str, title: str, position: int = 0) -> dict:
    resp = await client.post(
        "/api/lists",
        json={"title": title, "boardId": board_id, "position": position},
        headers=get_auth_headers(user),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["list"]


async def create_card(client: AsyncClient, user: User, list_id: str, title: str, position: int = 0) -> dict:
    resp = await client.post(
        "/api/cards",
        json={"title": title, "listId": list_id, "position": position},
        headers=get_auth_headers(user),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["card"]


async def add_member(client: AsyncClient, owner: User, board_id: str, user: User, role: str = "member") -> dict:
    resp = await client.post(
        f"/api/boards/{board_id}/members",
        json={"userId": user.id, "role": role},
        headers=get_auth_headers(owner),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["board"]
