import os
import logging
from typing import Optional, List, Dict, Any, Callable, TypeVar

from models.game import PlayerState, SessionState, WordAssignment
from models.errors import StoreConflict
from services.session_store import SessionStore, SessionTransaction, to_store_updates
from config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Single document under each session holding the WordAssignment
_WORDS_DOC = "words"


class _FirestoreSessionTransaction(SessionTransaction):
    """SessionTransaction bound to one google.cloud.firestore.Transaction."""

    def __init__(self, service: "FirestoreService", session_id: str, transaction):
        super().__init__(session_id)
        self._fs = service
        self._txn = transaction

    # ── Reads ─────────────────────────────────────────────────────────────────

    def get_session(self) -> Optional[SessionState]:
        doc = self._fs._session_ref(self.session_id).get(transaction=self._txn)
        if doc.exists:
            return SessionState(**doc.to_dict())
        return None

    def get_players(self, alive: Optional[bool] = None) -> List[PlayerState]:
        ref = self._fs._players_ref(self.session_id)
        if alive is not None:
            ref = ref.where("alive", "==", alive)
        docs = ref.stream(transaction=self._txn)
        return [PlayerState(**d.to_dict()) for d in docs]

    def get_words(self) -> Optional[WordAssignment]:
        doc = self._fs._words_ref(self.session_id).get(transaction=self._txn)
        if doc.exists:
            return WordAssignment(**doc.to_dict())
        return None

    # ── Writes (applied at commit) ────────────────────────────────────────────

    def update_session(self, updates: Dict[str, Any]) -> None:
        self._txn.update(self._fs._session_ref(self.session_id), to_store_updates(updates))

    def add_player(self, player: PlayerState) -> None:
        ref = self._fs._players_ref(self.session_id).document(player.id)
        self._txn.set(ref, player.model_dump(mode="json"))

    def update_player(self, player_id: str, updates: Dict[str, Any]) -> None:
        ref = self._fs._players_ref(self.session_id).document(player_id)
        self._txn.update(ref, to_store_updates(updates))

    def delete_player(self, player_id: str) -> None:
        self._txn.delete(self._fs._players_ref(self.session_id).document(player_id))

    def set_words(self, words: WordAssignment) -> None:
        self._txn.set(self._fs._words_ref(self.session_id), words.model_dump(mode="json"))

    def delete_words(self) -> None:
        self._txn.delete(self._fs._words_ref(self.session_id))


class FirestoreService(SessionStore):
    """
    Async-friendly Firestore wrapper using run_in_executor to avoid
    blocking the event loop. Switch to AsyncClient once stable.

    Layout:
      sessions/{session_id}                    — SessionState
      sessions/{session_id}/players/{player_id} — PlayerState
      sessions/{session_id}/meta/words          — WordAssignment
    """

    def __init__(self):
        if settings.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = settings.firestore_emulator_host
        # Lazy import so the service can be instantiated before GCP creds exist
        from google.cloud import firestore
        self._firestore = firestore
        self.db = firestore.Client(project=settings.google_cloud_project or None)

    # ── Collection helpers ────────────────────────────────────────────────────

    def _session_ref(self, session_id: str):
        return self.db.collection("sessions").document(session_id)

    def _players_ref(self, session_id: str):
        return self._session_ref(session_id).collection("players")

    def _words_ref(self, session_id: str):
        return self._session_ref(session_id).collection("meta").document(_WORDS_DOC)

    # ── Plain reads / inserts ─────────────────────────────────────────────────

    async def create_session(self, session: SessionState, host: PlayerState) -> None:
        def _write():
            batch = self.db.batch()
            batch.set(self._session_ref(session.id), session.model_dump(mode="json"))
            batch.set(
                self._players_ref(session.id).document(host.id),
                host.model_dump(mode="json"),
            )
            batch.commit()

        await self._run(_write)

    async def get_session(self, session_id: str) -> Optional[SessionState]:
        doc = await self._run(lambda: self._session_ref(session_id).get())
        if doc.exists:
            return SessionState(**doc.to_dict())
        return None

    async def get_players(
        self, session_id: str, alive: Optional[bool] = None
    ) -> List[PlayerState]:
        ref = self._players_ref(session_id)
        if alive is not None:
            ref = ref.where("alive", "==", alive)
        docs = await self._run(lambda: list(ref.stream()))
        return [PlayerState(**d.to_dict()) for d in docs]

    async def get_words(self, session_id: str) -> Optional[WordAssignment]:
        doc = await self._run(lambda: self._words_ref(session_id).get())
        if doc.exists:
            return WordAssignment(**doc.to_dict())
        return None

    # ── Transactions ──────────────────────────────────────────────────────────

    async def run_transaction(
        self, session_id: str, fn: Callable[[SessionTransaction], T]
    ) -> T:
        return await self._run(lambda: self._run_sync(session_id, fn))

    def _run_sync(self, session_id: str, fn: Callable[[SessionTransaction], T]) -> T:
        from google.api_core import exceptions as gcp_exceptions

        # One attempt per call: the engine owns the retry/backoff policy.
        transaction = self.db.transaction(max_attempts=1)

        @self._firestore.transactional
        def _body(txn):
            return fn(_FirestoreSessionTransaction(self, session_id, txn))

        try:
            return _body(transaction)
        except gcp_exceptions.Aborted as exc:
            raise StoreConflict(f"Session {session_id} transaction aborted") from exc
        except ValueError as exc:
            # Firestore reports "failed to commit in N attempts" as ValueError
            if isinstance(exc.__cause__, gcp_exceptions.Aborted) or "Failed to commit" in str(exc):
                raise StoreConflict(f"Session {session_id} transaction aborted") from exc
            raise


_firestore_service: Optional["FirestoreService"] = None


def get_firestore_service() -> "FirestoreService":
    """Lazy singleton — initialised on first call, not at import time.
    This prevents credential errors from crashing the app before FastAPI boots.
    """
    global _firestore_service
    if _firestore_service is None:
        _firestore_service = FirestoreService()
    return _firestore_service
