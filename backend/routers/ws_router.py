"""
WebSocket Hub — live session updates.

URL: /ws/{session_id}?playerId={player_id}

Connection flow:
  1. Validate session + participant exist (close 4404 / 4403 otherwise,
     1013 when the session is busy and the client should retry)
  2. Accept and register the connection
  3. Send a private "state" message with the observer-safe session view
  4. Message loop (dispatcher below)

Client → server message types:
  ping  — keep-alive heartbeat → "pong"
  sync  — ask for a fresh "state" message

Game actions go through the HTTP API; after each successful action the game
router calls manager.broadcast_state() so every client sees the new state.
"""
import json
import logging
from typing import Dict

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from engine.game_master import get_game_master
from models.errors import GameError, SessionNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# ── Connection Manager ─────────────────────────────────────────────────────────

class ConnectionManager:
    """
    Tracks active WebSocket connections per session.
    Safe for asyncio single-threaded event loop (no extra locking needed).
    """

    def __init__(self):
        # {session_id: {player_id: WebSocket}}
        self._sessions: Dict[str, Dict[str, WebSocket]] = {}

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def connect(self, session_id: str, player_id: str, ws: WebSocket) -> None:
        await ws.accept()
        self._sessions.setdefault(session_id, {})[player_id] = ws
        logger.debug(f"[{session_id}] {player_id} connected ({self.count(session_id)} total)")

    def disconnect(self, session_id: str, player_id: str) -> None:
        conns = self._sessions.get(session_id, {})
        conns.pop(player_id, None)
        if not conns:
            self._sessions.pop(session_id, None)

    def count(self, session_id: str) -> int:
        return len(self._sessions.get(session_id, {}))

    # ── Sending ────────────────────────────────────────────────────────────────

    async def send_to(self, session_id: str, player_id: str, message: Dict) -> None:
        """Send a private message to a single participant."""
        ws = self._sessions.get(session_id, {}).get(player_id)
        if ws:
            try:
                await ws.send_json(message)
            except Exception as exc:
                logger.warning(f"[{session_id}] send_to {player_id} failed: {exc}")
                self.disconnect(session_id, player_id)

    async def broadcast(self, session_id: str, message: Dict) -> None:
        """Broadcast a message to all connected participants of a session."""
        for pid, ws in list(self._sessions.get(session_id, {}).items()):
            try:
                await ws.send_json(message)
            except Exception as exc:
                logger.warning(f"[{session_id}] broadcast to {pid} failed: {exc}")
                self.disconnect(session_id, pid)

    async def broadcast_state(self, session_id: str) -> None:
        """Push the current observer-safe view to everyone connected."""
        if not self.count(session_id):
            return
        try:
            view = await get_game_master().get_view(session_id)
        except GameError as exc:
            logger.warning(f"[{session_id}] state broadcast skipped: {exc.message}")
            return
        await self.broadcast(session_id, {"type": "state", "state": view})


manager = ConnectionManager()


# ── Endpoint ───────────────────────────────────────────────────────────────────

@router.websocket("/ws/{session_id}")
async def websocket_endpoint(
    ws: WebSocket,
    session_id: str,
    playerId: str = Query(..., description="Player UUID from join response"),
):
    gm = get_game_master()

    try:
        snap = await gm.get_snapshot(session_id)
    except SessionNotFoundError:
        await ws.close(code=4404, reason="Session not found")
        return
    except GameError as exc:
        await ws.close(code=1013, reason=exc.message)
        return
    if snap.player(playerId) is None:
        await ws.close(code=4403, reason="Player not found in this session")
        return

    await manager.connect(session_id, playerId, ws)
    await manager.send_to(session_id, playerId, {"type": "state", "state": snap.to_public()})

    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await manager.send_to(session_id, playerId, {
                    "type": "error",
                    "message": "Invalid JSON",
                    "code": "PARSE_ERROR",
                })
                continue
            msg_type = data.get("type", "") if isinstance(data, dict) else ""
            await _dispatch_message(session_id, playerId, msg_type)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(session_id, playerId)


# ── Message dispatcher ─────────────────────────────────────────────────────────

async def _dispatch_message(session_id: str, player_id: str, msg_type: str) -> None:
    if msg_type == "ping":
        await manager.send_to(session_id, player_id, {"type": "pong"})

    elif msg_type == "sync":
        try:
            view = await get_game_master().get_view(session_id)
        except GameError as exc:
            await manager.send_to(session_id, player_id, {
                "type": "error", "message": exc.message, "code": exc.code,
            })
            return
        await manager.send_to(session_id, player_id, {"type": "state", "state": view})

    else:
        await manager.send_to(session_id, player_id, {
            "type": "error",
            "message": f"Unknown message type: '{msg_type}'",
            "code": "UNKNOWN_TYPE",
        })
