"""
Storage interface for game sessions.

One session is one addressable record (plus its participants and its word
assignment). Every engine action runs as a single transaction through
`SessionStore.run_transaction`: the body reads everything it needs, validates,
then writes. A store raises `StoreConflict` when another writer touched the
same session in between; the engine replays the whole body (see services/retry.py).

Transaction bodies are plain sync callables. Stores run them off the event loop.
"""
import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

from config import settings
from models.game import PlayerState, SessionSnapshot, SessionState, WordAssignment

T = TypeVar("T")


def to_store_value(value: Any) -> Any:
    """Convert a field value to its stored (JSON-compatible) form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [to_store_value(v) for v in value]
    if isinstance(value, dict):
        return {k: to_store_value(v) for k, v in value.items()}
    return value


def to_store_updates(updates: Dict[str, Any]) -> Dict[str, Any]:
    return {k: to_store_value(v) for k, v in updates.items()}


class SessionTransaction(ABC):
    """Reads and writes scoped to one session inside one atomic unit.

    All reads must happen before the first write (a Firestore constraint that
    every backend enforces by contract, not by check).
    """

    def __init__(self, session_id: str):
        self.session_id = session_id

    # ── Reads ─────────────────────────────────────────────────────────────────

    @abstractmethod
    def get_session(self) -> Optional[SessionState]: ...

    @abstractmethod
    def get_players(self, alive: Optional[bool] = None) -> List[PlayerState]: ...

    @abstractmethod
    def get_words(self) -> Optional[WordAssignment]: ...

    def load(self) -> Optional[SessionSnapshot]:
        """Read session, participants and words in one go (None if no session)."""
        session = self.get_session()
        if session is None:
            return None
        players = sorted(self.get_players(), key=lambda p: p.joined_at)
        return SessionSnapshot(session=session, players=players, words=self.get_words())

    # ── Writes ────────────────────────────────────────────────────────────────

    @abstractmethod
    def update_session(self, updates: Dict[str, Any]) -> None: ...

    @abstractmethod
    def add_player(self, player: PlayerState) -> None: ...

    @abstractmethod
    def update_player(self, player_id: str, updates: Dict[str, Any]) -> None: ...

    @abstractmethod
    def delete_player(self, player_id: str) -> None: ...

    @abstractmethod
    def set_words(self, words: WordAssignment) -> None: ...

    @abstractmethod
    def delete_words(self) -> None: ...


class SessionStore(ABC):
    """Keyed session storage with per-session transactions."""

    def _run(self, fn):
        """Run a sync store call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    @abstractmethod
    async def create_session(self, session: SessionState, host: PlayerState) -> None: ...

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[SessionState]: ...

    @abstractmethod
    async def get_players(
        self, session_id: str, alive: Optional[bool] = None
    ) -> List[PlayerState]: ...

    @abstractmethod
    async def get_words(self, session_id: str) -> Optional[WordAssignment]: ...

    async def get_snapshot(self, session_id: str) -> Optional[SessionSnapshot]:
        """Read-only snapshot for queries; use a transaction when writing."""
        return await self.run_transaction(session_id, lambda txn: txn.load())

    @abstractmethod
    async def run_transaction(
        self, session_id: str, fn: Callable[[SessionTransaction], T]
    ) -> T:
        """Run `fn` once as an atomic unit. Raises StoreConflict on a lost race."""


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Lazy singleton — initialised on first call, not at import time.
    This prevents credential errors from crashing the app before FastAPI boots.
    """
    global _session_store
    if _session_store is None:
        if settings.store_backend == "memory":
            from services.memory_store import InMemorySessionStore
            _session_store = InMemorySessionStore()
        else:
            from services.firestore_service import get_firestore_service
            _session_store = get_firestore_service()
    return _session_store


def set_session_store(store: Optional[SessionStore]) -> None:
    """Swap the process-wide store (tests, local tooling). None resets to lazy init."""
    global _session_store
    _session_store = store
