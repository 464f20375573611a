# routers/websocket_router.py — Real-time board channels over WebSocket
import json
import uuid
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Set, Optional, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import AuthService
from database import get_db_session
from exceptions import AppException
from locks import KeyedLock
from loaders import load_board, require_role

router = APIRouter(tags=["WebSocket"])
logger = logging.getLogger("taskboard.ws")

BOARD_EVENTS = frozenset({
    "board-updated", "board-deleted", "member-added", "member-removed",
    "card-created", "card-updated", "card-moved", "card-deleted", "cards-reordered",
    "list-created", "list-updated", "list-deleted", "lists-reordered",
    "comment-added", "comment-updated", "comment-deleted",
})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConnectionManager:
    """Tracks sockets per user and per board channel.

    Delivery is at-most-once: no acknowledgements and no replay. A socket that
    fails a send is dropped from every channel. Clients refetch the board after
    reconnecting.
    """

    def __init__(self):
        self._sockets: Dict[str, WebSocket] = {}  # conn_id -> ws
        self._owners: Dict[str, str] = {}  # conn_id -> user_id
        self._users: Dict[str, Set[str]] = {}  # user_id -> {conn_ids}
        self._channels: Dict[str, Set[str]] = {}  # board_id -> {conn_ids}
        self._publish_locks = KeyedLock()  # board_id -> lock

    async def connect(self, websocket: WebSocket, user_id: str) -> str:
        await websocket.accept()
        return self.register(websocket, user_id)

    def register(self, websocket: Any, user_id: str) -> str:
        conn_id = str(uuid.uuid4())
        self._sockets[conn_id] = websocket
        self._owners[conn_id] = user_id
        self._users.setdefault(user_id, set()).add(conn_id)
        logger.info(f"WS connected: user={user_id[:8]} conn={conn_id[:8]}")
        return conn_id

    def disconnect(self, conn_id: str):
        if conn_id not in self._sockets:
            return
        self._sockets.pop(conn_id, None)
        user_id = self._owners.pop(conn_id, None)
        if user_id in self._users:
            self._users[user_id].discard(conn_id)
            if not self._users[user_id]:
                del self._users[user_id]
        for board_id in list(self._channels.keys()):
            self._channels[board_id].discard(conn_id)
            if not self._channels[board_id]:
                del self._channels[board_id]
        logger.info(f"WS disconnected: user={(user_id or '?')[:8]} conn={conn_id[:8]}")

    def join(self, conn_id: str, board_id: str):
        if conn_id in self._sockets:
            self._channels.setdefault(board_id, set()).add(conn_id)

    def leave(self, conn_id: str, board_id: str):
        if board_id in self._channels:
            self._channels[board_id].discard(conn_id)
            if not self._channels[board_id]:
                del self._channels[board_id]

    def leave_user(self, board_id: str, user_id: str) -> int:
        """Take every connection of one user out of a board channel"""
        return self.prune(board_id, lambda uid: uid != user_id)

    def prune(self, board_id: str, allowed: Callable[[str], bool]) -> int:
        """Drop channel subscribers whose user no longer passes ``allowed``"""
        revoked = [c for c in self.channel_members(board_id) if not allowed(self._owners.get(c, ""))]
        for conn_id in revoked:
            self.leave(conn_id, board_id)
        if revoked:
            logger.info(f"Revoked {len(revoked)} subscription(s) on board {board_id[:8]}")
        return len(revoked)

    def channel_members(self, board_id: str) -> Set[str]:
        return set(self._channels.get(board_id, set()))

    async def _send(self, conn_id: str, message: dict) -> bool:
        ws = self._sockets.get(conn_id)
        if ws is None:
            return False
        try:
            await ws.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"WS send failed conn={conn_id[:8]}: {e}")
            self.disconnect(conn_id)
            return False

    async def publish(self, board_id: str, event: str, payload: Optional[dict] = None):
        """Fan an event out to every connection joined to the board.

        Never raises. A per-board lock keeps events for one board in order
        without making other boards wait on a slow socket.
        """
        if event not in BOARD_EVENTS:
            logger.error(f"Refusing to publish unknown event {event!r}")
            return
        message = {"type": event, "board_id": board_id, "timestamp": _now(), **(payload or {})}
        try:
            async with self._publish_locks.hold(board_id):
                for conn_id in sorted(self.channel_members(board_id)):
                    await self._send(conn_id, message)
        except Exception:
            logger.exception(f"Broadcast of {event} to board {board_id[:8]} failed")

    async def send_to_user(self, user_id: str, message: dict):
        """Deliver a message to every live connection of one user"""
        for conn_id in sorted(self._users.get(user_id, set())):
            await self._send(conn_id, message)

    def get_online_users(self) -> list:
        return list(self._users.keys())

    def get_stats(self) -> dict:
        return {
            "total_connections": len(self._sockets),
            "users": len(self._users),
            "channels": len(self._channels),
        }

    def reset(self):
        self._sockets.clear()
        self._owners.clear()
        self._users.clear()
        self._channels.clear()
        self._publish_locks = KeyedLock()


# Global connection manager
manager = ConnectionManager()


async def check_join(db: AsyncSession, board_id: str, user_id: str) -> Optional[str]:
    """Return an error message if the user may not join the board channel"""
    if not board_id:
        return "board_id is required"
    try:
        board = await load_board(db, board_id)
        require_role(board, user_id)
    except AppException as e:
        return e.message
    finally:
        await db.rollback()
    return None


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db_session),
):
    """Board channel endpoint; authenticates with an access token in the query string"""
    try:
        payload = AuthService.verify_token(token)
    except AppException:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    user_id = payload["sub"]
    conn_id = await manager.connect(websocket, user_id)

    await websocket.send_json({"type": "connected", "user_id": user_id, "timestamp": _now()})

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "message": "Message must be an object"})
                continue

            msg_type = data.get("type", "")
            board_id = data.get("board_id") or data.get("boardId") or ""

            if msg_type == "ping":
                await websocket.send_json({"type": "pong", "timestamp": _now()})

            elif msg_type == "join-board":
                error = await check_join(db, board_id, user_id)
                if error:
                    await websocket.send_json({"type": "error", "board_id": board_id, "message": error})
                else:
                    manager.join(conn_id, board_id)
                    await websocket.send_json({"type": "joined-board", "board_id": board_id})

            elif msg_type == "leave-board":
                manager.leave(conn_id, board_id)
                await websocket.send_json({"type": "left-board", "board_id": board_id})

            else:
                await websocket.send_json({"type": "error", "message": f"Unknown message type '{msg_type}'"})

    except WebSocketDisconnect:
        manager.disconnect(conn_id)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(conn_id)


@router.get("/ws/stats")
async def websocket_stats():
    """Get WebSocket connection statistics"""
    return manager.get_stats()
