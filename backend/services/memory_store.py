"""
In-process session store with optimistic concurrency.

Documents are kept in their serialized (JSON-compatible) form, just like
Firestore documents. Each session has a version counter: a transaction
snapshots the session's documents and version under the lock, buffers its
writes, and commits only if the version is still the one it read. Otherwise
it raises StoreConflict and nothing is applied.

Transaction bodies run in the default thread pool, so two concurrent actions
against one session really do race here, exactly as they would against
Firestore.
"""
import copy
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from models.errors import StoreConflict
from models.game import PlayerState, SessionState, WordAssignment
from services.session_store import SessionStore, SessionTransaction, to_store_updates

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _MemorySessionTransaction(SessionTransaction):
    def __init__(
        self,
        session_id: str,
        session: Optional[Dict[str, Any]],
        players: Dict[str, Dict[str, Any]],
        words: Optional[Dict[str, Any]],
    ):
        super().__init__(session_id)
        self._session = session
        self._players = players
        self._words = words
        self.writes: List[Tuple[str, Any, Any]] = []

    # ── Reads (from the snapshot taken at begin) ──────────────────────────────

    def get_session(self) -> Optional[SessionState]:
        return SessionState(**self._session) if self._session else None

    def get_players(self, alive: Optional[bool] = None) -> List[PlayerState]:
        players = [PlayerState(**data) for data in self._players.values()]
        if alive is not None:
            players = [p for p in players if p.alive == alive]
        return players

    def get_words(self) -> Optional[WordAssignment]:
        return WordAssignment(**self._words) if self._words else None

    # ── Buffered writes ───────────────────────────────────────────────────────

    def update_session(self, updates: Dict[str, Any]) -> None:
        self.writes.append(("update_session", None, to_store_updates(updates)))

    def add_player(self, player: PlayerState) -> None:
        self.writes.append(("set_player", player.id, player.model_dump(mode="json")))

    def update_player(self, player_id: str, updates: Dict[str, Any]) -> None:
        self.writes.append(("update_player", player_id, to_store_updates(updates)))

    def delete_player(self, player_id: str) -> None:
        self.writes.append(("delete_player", player_id, None))

    def set_words(self, words: WordAssignment) -> None:
        self.writes.append(("set_words", None, words.model_dump(mode="json")))

    def delete_words(self) -> None:
        self.writes.append(("delete_words", None, None))


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._players: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._words: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}

    # ── Plain reads / inserts ─────────────────────────────────────────────────

    async def create_session(self, session: SessionState, host: PlayerState) -> None:
        with self._lock:
            self._sessions[session.id] = session.model_dump(mode="json")
            self._players[session.id] = {host.id: host.model_dump(mode="json")}
            self._versions[session.id] = self._versions.get(session.id, 0) + 1

    async def get_session(self, session_id: str) -> Optional[SessionState]:
        with self._lock:
            data = copy.deepcopy(self._sessions.get(session_id))
        return SessionState(**data) if data else None

    async def get_players(
        self, session_id: str, alive: Optional[bool] = None
    ) -> List[PlayerState]:
        with self._lock:
            docs = copy.deepcopy(list(self._players.get(session_id, {}).values()))
        players = [PlayerState(**d) for d in docs]
        if alive is not None:
            players = [p for p in players if p.alive == alive]
        return players

    async def get_words(self, session_id: str) -> Optional[WordAssignment]:
        with self._lock:
            data = copy.deepcopy(self._words.get(session_id))
        return WordAssignment(**data) if data else None

    # ── Transactions ──────────────────────────────────────────────────────────

    async def run_transaction(
        self, session_id: str, fn: Callable[[SessionTransaction], T]
    ) -> T:
        return await self._run(lambda: self._run_sync(session_id, fn))

    def _begin(self, session_id: str) -> Tuple[int, _MemorySessionTransaction]:
        with self._lock:
            version = self._versions.get(session_id, 0)
            txn = _MemorySessionTransaction(
                session_id,
                copy.deepcopy(self._sessions.get(session_id)),
                copy.deepcopy(self._players.get(session_id, {})),
                copy.deepcopy(self._words.get(session_id)),
            )
        return version, txn

    def _run_sync(self, session_id: str, fn: Callable[[SessionTransaction], T]) -> T:
        version, txn = self._begin(session_id)
        result = fn(txn)
        if not txn.writes:
            return result
        with self._lock:
            if self._versions.get(session_id, 0) != version:
                logger.debug("[%s] transaction conflict at version %d", session_id, version)
                raise StoreConflict(f"Session {session_id} changed during transaction")
            self._apply(session_id, txn.writes)
            self._versions[session_id] = version + 1
        return result

    def _apply(self, session_id: str, writes: List[Tuple[str, Any, Any]]) -> None:
        players = self._players.setdefault(session_id, {})
        for op, key, data in writes:
            if op == "update_session":
                self._sessions[session_id].update(data)
            elif op == "set_player":
                players[key] = data
            elif op == "update_player":
                if key in players:
                    players[key].update(data)
            elif op == "delete_player":
                players.pop(key, None)
            elif op == "set_words":
                self._words[session_id] = data
            elif op == "delete_words":
                self._words.pop(session_id, None)
