"""
Game Master — the session state machine. Pure deterministic Python.

Responsibilities:
- Lobby management (create, join, leave, configure)
- Phase transitions (Waiting → Discussion → Voting → [MrWhiteGuessing] → Results)
- Clue turns, vote resolution and Mr. White's final guess
- Restart / stop back to the lobby
- Consistency repair for sessions left half-advanced

Every mutating operation is one store transaction: load the whole session,
validate, then write. Lost races are replayed from the load step with bounded
backoff (services/retry.py). Rules live in the engine modules; this class only
sequences them and persists the outcome.
"""
import logging
import random
import uuid
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, TypeVar

from config import settings
from engine.consistency import Drift, detect_drift
from engine.role_assigner import RoleAssigner, word_for_role
from engine.turn_sequencer import (
    build_turn_order,
    clue_eligible_ids,
    first_turn_index,
    next_turn_index,
)
from engine.vote_tally import all_decided, apply_vote, count_votes, tally_votes
from engine.win_evaluator import RoleCounts, evaluate
from engine.word_pairs import WORD_PAIRS, WordPair
from models.errors import (
    AlreadyActedError,
    GameError,
    GameStateError,
    InvalidConfigurationError,
    InvalidVoteError,
    NotHostError,
    NotYourTurnError,
    PlayerEliminatedError,
    PlayerNotFoundError,
    SessionFullError,
    SessionNotFoundError,
    WrongPhaseError,
)
from models.game import (
    ACTIVE_PHASES,
    ClueOutcome,
    GameResult,
    GuessOutcome,
    Phase,
    PlayerState,
    RepairOutcome,
    Role,
    SessionSnapshot,
    SessionState,
    VoteOutcome,
)
from services.retry import run_with_retry
from services.session_store import SessionStore, SessionTransaction, get_session_store

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Per-round participant fields, cleared whenever a new round or game begins
_CLEAN_ROUND: Dict[str, Any] = {
    "has_clued": False,
    "clue": None,
    "has_voted": False,
    "vote_target": None,
}


# ── Transaction helpers ───────────────────────────────────────────────────────

def _load(txn: SessionTransaction) -> SessionSnapshot:
    snap = txn.load()
    if snap is None:
        raise SessionNotFoundError(txn.session_id)
    return snap


def _patch_session(txn: SessionTransaction, session: SessionState, **updates) -> None:
    """Apply changed fields to the in-memory session and queue them for write."""
    changed = {k: v for k, v in updates.items() if getattr(session, k) != v}
    if not changed:
        return
    for key, value in changed.items():
        setattr(session, key, value)
    txn.update_session(changed)


def _patch_player(txn: SessionTransaction, player: PlayerState, **updates) -> None:
    changed = {k: v for k, v in updates.items() if getattr(player, k) != v}
    if not changed:
        return
    for key, value in changed.items():
        setattr(player, key, value)
    txn.update_player(player.id, changed)


def _require_phase(session: SessionState, *phases: Phase) -> None:
    if session.phase not in phases:
        raise WrongPhaseError(
            " or ".join(p.value for p in phases), session.phase.value
        )


def _require_host(session: SessionState, player_id: str) -> None:
    if session.host_player_id != player_id:
        raise NotHostError()


def _require_player(snap: SessionSnapshot, player_id: str) -> PlayerState:
    player = snap.player(player_id)
    if player is None:
        raise PlayerNotFoundError(player_id)
    return player


def _normalize_word(word: str) -> str:
    return word.strip().casefold()


class GameMaster:
    """
    Deterministic session engine.
    All state lives in the SessionStore; instances hold no per-session state.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        word_pairs: Sequence[WordPair] = WORD_PAIRS,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self.rng = rng or random.Random()
        self.role_assigner = RoleAssigner(word_pairs=word_pairs, rng=self.rng)

    @property
    def store(self) -> SessionStore:
        return self._store or get_session_store()

    async def _transact(
        self, session_id: str, label: str, body: Callable[[SessionTransaction], T]
    ) -> T:
        return await run_with_retry(
            session_id,
            lambda: self.store.run_transaction(session_id, body),
            label=label,
        )

    # ── Lobby ──────────────────────────────────────────────────────────────────

    async def create_session(
        self, host_name: str, max_rounds: Optional[int] = None
    ) -> Tuple[SessionState, PlayerState]:
        """Create a Waiting session with its host as the first participant."""
        host_id = str(uuid.uuid4())
        session = SessionState(
            host_player_id=host_id,
            max_rounds=max_rounds or settings.default_max_rounds,
        )
        host = PlayerState(
            id=host_id, session_id=session.id, name=host_name.strip(), is_host=True
        )
        await self.store.create_session(session, host)
        logger.info(f"[{session.id}] Session created by {host.name} (max_rounds={session.max_rounds})")
        return session, host

    async def join_session(self, session_id: str, player_name: str) -> PlayerState:
        """
        Add a participant to a Waiting session.
        Joining again under an existing name returns that participant instead
        of creating a duplicate (reconnecting clients).
        """
        name = player_name.strip()

        def body(txn: SessionTransaction) -> Tuple[PlayerState, bool]:
            snap = _load(txn)
            _require_phase(snap.session, Phase.WAITING)
            for p in snap.players:
                if p.name == name:
                    return p, False
            if len(snap.players) >= settings.max_players:
                raise SessionFullError(settings.max_players)
            # an emptied lobby hands hosting to the next participant in
            player = PlayerState(session_id=session_id, name=name, is_host=not snap.players)
            txn.add_player(player)
            if player.is_host:
                _patch_session(txn, snap.session, host_player_id=player.id)
            return player, True

        player, created = await self._transact(session_id, "join_session", body)
        if created:
            logger.info(f"[{session_id}] {name} joined")
        return player

    async def leave_session(self, session_id: str, player_id: str) -> Optional[str]:
        """
        Remove a participant from the lobby.
        If the host leaves, hosting passes to the earliest-joined remaining
        participant. Returns the (possibly new) host id, None if nobody is left.
        """
        def body(txn: SessionTransaction) -> Optional[str]:
            snap = _load(txn)
            _require_phase(snap.session, Phase.WAITING)
            player = _require_player(snap, player_id)
            txn.delete_player(player.id)
            remaining = [p for p in snap.players if p.id != player.id]
            if not remaining:
                return None
            if snap.session.host_player_id != player.id:
                return snap.session.host_player_id
            new_host = remaining[0]
            _patch_player(txn, new_host, is_host=True)
            _patch_session(txn, snap.session, host_player_id=new_host.id)
            return new_host.id

        host_id = await self._transact(session_id, "leave_session", body)
        logger.info(f"[{session_id}] Player {player_id} left (host={host_id})")
        return host_id

    async def update_config(
        self,
        session_id: str,
        host_player_id: str,
        undercover_count: int,
        mr_white_count: int,
        max_rounds: Optional[int] = None,
    ) -> SessionState:
        """Store role counts for the next start. Full validation happens at start."""
        if undercover_count < 1:
            raise InvalidConfigurationError("Need at least 1 undercover")
        if mr_white_count < 0:
            raise InvalidConfigurationError("Mr. White count cannot be negative")
        if max_rounds is not None and max_rounds < 1:
            raise InvalidConfigurationError("max_rounds must be at least 1")

        def body(txn: SessionTransaction) -> SessionState:
            snap = _load(txn)
            _require_host(snap.session, host_player_id)
            _require_phase(snap.session, Phase.WAITING)
            updates: Dict[str, Any] = {
                "undercover_count": undercover_count,
                "mr_white_count": mr_white_count,
            }
            if max_rounds is not None:
                updates["max_rounds"] = max_rounds
            _patch_session(txn, snap.session, **updates)
            return snap.session

        return await self._transact(session_id, "update_config", body)

    # ── Game start ─────────────────────────────────────────────────────────────

    async def start(
        self,
        session_id: str,
        host_player_id: str,
        undercover_count: Optional[int] = None,
        mr_white_count: Optional[int] = None,
    ) -> SessionSnapshot:
        """
        Waiting → Discussion (round 1).
        Validates the configuration against the current lobby, deals roles,
        picks the word pair and builds the first turn order, all in one commit.
        """
        def body(txn: SessionTransaction) -> SessionSnapshot:
            snap = _load(txn)
            session = snap.session
            _require_host(session, host_player_id)
            _require_phase(session, Phase.WAITING)

            uc = session.undercover_count if undercover_count is None else undercover_count
            mw = session.mr_white_count if mr_white_count is None else mr_white_count
            self.role_assigner.validate_config(len(snap.players), uc, mw)

            roles = self.role_assigner.assign_roles([p.id for p in snap.players], uc, mw)
            for p in snap.players:
                _patch_player(txn, p, role=roles[p.id], alive=True, **_CLEAN_ROUND)

            pair = self.role_assigner.pick_word_pair()
            words = self.role_assigner.build_word_assignment(session_id, pair, mw)
            txn.set_words(words)
            snap.words = words

            order = build_turn_order(snap.players, self.rng)
            _patch_session(
                txn,
                session,
                phase=Phase.DISCUSSION,
                round=1,
                turn_order=order,
                turn_index=first_turn_index(order, set(order)),
                undercover_count=uc,
                mr_white_count=mw,
                result=None,
                pending_elimination_id=None,
                last_vote_counts={},
                last_eliminated_id=None,
            )
            return snap

        snap = await self._transact(session_id, "start", body)
        logger.info(
            f"[{session_id}] Phase: waiting → discussion (round 1) — "
            f"{len(snap.players)} players, {snap.session.undercover_count} undercover, "
            f"{snap.session.mr_white_count} Mr. White"
        )
        return snap

    # ── Discussion ─────────────────────────────────────────────────────────────

    async def submit_clue(self, session_id: str, player_id: str, clue: str) -> ClueOutcome:
        """
        Record the turn-holder's clue and pass the turn on.
        When nobody owes a clue any more the session moves to Voting.
        """
        clue = clue.strip()
        if not clue:
            raise GameError("Clue cannot be empty")

        def body(txn: SessionTransaction) -> ClueOutcome:
            snap = _load(txn)
            session = snap.session
            _require_phase(session, Phase.DISCUSSION)
            player = _require_player(snap, player_id)
            if not player.alive:
                raise PlayerEliminatedError()
            if player.has_clued:
                raise AlreadyActedError()
            if session.current_turn_player_id != player_id:
                raise NotYourTurnError()

            _patch_player(txn, player, has_clued=True, clue=clue)
            next_index = next_turn_index(
                session.turn_order, session.turn_index, clue_eligible_ids(snap.players)
            )
            if next_index is None:
                self._open_voting(txn, snap)
                return ClueOutcome(phase=session.phase, all_clued=True)
            _patch_session(txn, session, turn_index=next_index)
            return ClueOutcome(
                phase=session.phase,
                all_clued=False,
                next_player_id=session.turn_order[next_index],
            )

        outcome = await self._transact(session_id, "submit_clue", body)
        if outcome.all_clued:
            logger.info(f"[{session_id}] All clues in — Phase: discussion → voting")
        return outcome

    async def force_voting(self, session_id: str, host_player_id: str) -> SessionState:
        """Host skips the remaining clues. From Voting this restarts the ballot."""
        def body(txn: SessionTransaction) -> SessionState:
            snap = _load(txn)
            _require_host(snap.session, host_player_id)
            _require_phase(snap.session, Phase.DISCUSSION, Phase.VOTING)
            self._open_voting(txn, snap)
            return snap.session

        session = await self._transact(session_id, "force_voting", body)
        logger.info(f"[{session_id}] Voting forced by host (round {session.round})")
        return session

    async def end_voting(self, session_id: str, host_player_id: str) -> VoteOutcome:
        """
        Host closes the ballot early. Undecided participants count as
        abstaining; resolution is the same as when everyone has decided.
        """
        def body(txn: SessionTransaction) -> VoteOutcome:
            snap = _load(txn)
            _require_host(snap.session, host_player_id)
            _require_phase(snap.session, Phase.VOTING)
            return self._resolve_votes(txn, snap)

        outcome = await self._transact(session_id, "end_voting", body)
        logger.info(f"[{session_id}] Voting closed by host")
        self._log_vote_outcome(session_id, outcome)
        return outcome

    # ── Voting ─────────────────────────────────────────────────────────────────

    async def cast_vote(self, session_id: str, voter_id: str, target_id: str) -> VoteOutcome:
        """
        Record, replace or withdraw a vote.
        The vote that makes every alive participant decided resolves the round
        in the same transaction, so exactly one caller performs the resolution.
        """
        def body(txn: SessionTransaction) -> VoteOutcome:
            snap = _load(txn)
            session = snap.session
            _require_phase(session, Phase.VOTING)
            voter = snap.player(voter_id)
            target = snap.player(target_id)
            if voter is None or not voter.alive:
                raise InvalidVoteError("Only alive participants can vote")
            if target is None or not target.alive:
                raise InvalidVoteError("You can only vote for an alive participant")
            if voter.id == target.id:
                raise InvalidVoteError("You cannot vote for yourself")

            _patch_player(
                txn, voter, has_voted=True, vote_target=apply_vote(voter.vote_target, target.id)
            )
            if not all_decided(snap.players):
                return VoteOutcome(
                    phase=session.phase, all_voted=False, vote_counts=count_votes(snap.players)
                )
            return self._resolve_votes(txn, snap)

        outcome = await self._transact(session_id, "cast_vote", body)
        if outcome.all_voted:
            self._log_vote_outcome(session_id, outcome)
        return outcome

    def _log_vote_outcome(self, session_id: str, outcome: VoteOutcome) -> None:
        if outcome.mr_white_guessing:
            logger.info(f"[{session_id}] Mr. White {outcome.eliminated_player_id} voted out — awaiting guess")
        elif outcome.eliminated_player_id:
            logger.info(f"[{session_id}] Vote result: {outcome.eliminated_player_id} eliminated {outcome.vote_counts}")
        elif outcome.tie:
            logger.info(f"[{session_id}] Vote tie {outcome.vote_counts} — nobody eliminated")
        else:
            logger.info(f"[{session_id}] No votes cast — nobody eliminated")
        if outcome.result:
            logger.info(f"[{session_id}] Game over: {outcome.result.value}")

    # ── Mr. White ──────────────────────────────────────────────────────────────

    async def submit_guess(self, session_id: str, player_id: str, guess: str) -> GuessOutcome:
        """
        The eliminated Mr. White's last chance.
        A correct guess (case-insensitive) wins outright; otherwise Mr. White
        dies and the game continues through the win evaluator.
        """
        def body(txn: SessionTransaction) -> GuessOutcome:
            snap = _load(txn)
            session = snap.session
            _require_phase(session, Phase.MR_WHITE_GUESSING)
            if player_id != session.pending_elimination_id:
                raise NotYourTurnError("Only the eliminated Mr. White can guess")
            if snap.words is None:
                raise GameStateError("Game words not found")
            civilian_word = snap.words.civilian_word

            if _normalize_word(guess) == _normalize_word(civilian_word):
                self._finish(txn, session, GameResult.MR_WHITE_WIN)
                return GuessOutcome(
                    phase=session.phase,
                    correct=True,
                    civilian_word=civilian_word,
                    result=GameResult.MR_WHITE_WIN,
                )

            mr_white = _require_player(snap, player_id)
            _patch_player(txn, mr_white, alive=False)
            _patch_session(
                txn, session, pending_elimination_id=None, last_eliminated_id=mr_white.id
            )
            result = self._evaluate(snap)
            self._continue_or_finish(txn, snap, result)
            return GuessOutcome(
                phase=session.phase, correct=False, civilian_word=civilian_word, result=result
            )

        outcome = await self._transact(session_id, "submit_guess", body)
        logger.info(
            f"[{session_id}] Mr. White guessed {'correctly' if outcome.correct else 'wrong'} "
            f"(phase={outcome.phase.value}, result={outcome.result})"
        )
        return outcome

    # ── Restart / stop ─────────────────────────────────────────────────────────

    async def restart(self, session_id: str, host_player_id: str) -> SessionState:
        """Results → Waiting, keeping the lobby and configuration."""
        def body(txn: SessionTransaction) -> SessionState:
            snap = _load(txn)
            _require_host(snap.session, host_player_id)
            _require_phase(snap.session, Phase.RESULTS)
            self._full_reset(txn, snap)
            return snap.session

        session = await self._transact(session_id, "restart", body)
        logger.info(f"[{session_id}] Phase: results → waiting (restart)")
        return session

    async def stop(self, session_id: str, host_player_id: str) -> SessionState:
        """Abort a running game (or leave Results) back to Waiting."""
        def body(txn: SessionTransaction) -> Tuple[SessionState, Phase]:
            snap = _load(txn)
            _require_host(snap.session, host_player_id)
            _require_phase(snap.session, *ACTIVE_PHASES, Phase.RESULTS)
            previous = snap.session.phase
            self._full_reset(txn, snap)
            return snap.session, previous

        session, previous = await self._transact(session_id, "stop", body)
        logger.info(f"[{session_id}] Phase: {previous.value} → waiting (stopped by host)")
        return session

    # ── Consistency repair ─────────────────────────────────────────────────────

    async def repair(self, session_id: str) -> RepairOutcome:
        """
        Re-derive the turn pointer and phase from the per-round flags.
        Idempotent: a consistent session is left untouched.
        """
        def body(txn: SessionTransaction) -> RepairOutcome:
            snap = _load(txn)
            session = snap.session
            drift = detect_drift(session, snap.players)
            result = None

            if drift == Drift.STALE_TURN:
                eligible = clue_eligible_ids(snap.players)
                order = list(session.turn_order)
                order.extend(p.id for p in snap.players if p.id in eligible and p.id not in order)
                index = session.turn_index
                if index is not None and not 0 <= index < len(order):
                    index = None
                _patch_session(
                    txn, session, turn_order=order, turn_index=next_turn_index(order, index, eligible)
                )
            elif drift == Drift.CLUES_COMPLETE:
                self._open_voting(txn, snap)
            elif drift == Drift.VOTES_COMPLETE:
                result = self._resolve_votes(txn, snap).result

            return RepairOutcome(action=drift.value, phase=session.phase, result=result)

        outcome = await self._transact(session_id, "repair", body)
        if outcome.action != Drift.NONE.value:
            logger.warning(f"[{session_id}] Repaired drift: {outcome.action} (phase={outcome.phase.value})")
        return outcome

    # ── Queries ────────────────────────────────────────────────────────────────

    async def get_snapshot(self, session_id: str) -> SessionSnapshot:
        return await self._transact(session_id, "get_snapshot", _load)

    async def get_view(self, session_id: str) -> Dict[str, Any]:
        """Observer-safe state: no words, roles only for the dead or after the game."""
        snap = await self.get_snapshot(session_id)
        return snap.to_public()

    async def get_player_word(self, session_id: str, player_id: str) -> Dict[str, Any]:
        """The secret word shown to one participant (Mr. White gets the marker)."""
        snap = await self.get_snapshot(session_id)
        player = _require_player(snap, player_id)
        if snap.session.phase == Phase.WAITING or snap.words is None:
            raise WrongPhaseError("a running game", snap.session.phase.value)
        return {
            "playerId": player.id,
            "role": player.role.value,
            "word": word_for_role(snap.words, player.role),
        }

    async def get_result(self, session_id: str) -> Dict[str, Any]:
        """Full reveal once the session is in Results."""
        snap = await self.get_snapshot(session_id)
        session = snap.session
        _require_phase(session, Phase.RESULTS)
        return {
            "sessionId": session.id,
            "result": session.result.value if session.result else None,
            "round": session.round,
            "civilianWord": snap.words.civilian_word if snap.words else None,
            "undercoverWord": snap.words.undercover_word if snap.words else None,
            "lastVoteCounts": dict(session.last_vote_counts),
            "players": [
                {"id": p.id, "name": p.name, "role": p.role.value, "alive": p.alive}
                for p in snap.players
            ],
        }

    # ── Internal transitions (run inside a transaction body) ──────────────────

    def _evaluate(self, snap: SessionSnapshot) -> Optional[GameResult]:
        return evaluate(
            RoleCounts.from_players(snap.players), snap.session.round, snap.session.max_rounds
        )

    def _open_voting(self, txn: SessionTransaction, snap: SessionSnapshot) -> None:
        for p in snap.players:
            _patch_player(txn, p, has_voted=False, vote_target=None)
        _patch_session(txn, snap.session, phase=Phase.VOTING, turn_index=None)

    def _resolve_votes(self, txn: SessionTransaction, snap: SessionSnapshot) -> VoteOutcome:
        """
        Close the ballot. Strict majority eliminates; a tie or an empty ballot
        eliminates nobody. A voted-out Mr. White is held pending their guess
        instead of dying.
        """
        session = snap.session
        tally = tally_votes(snap.players)
        _patch_session(txn, session, last_vote_counts=tally.counts, last_eliminated_id=None)

        eliminated = snap.player(tally.eliminated_id)
        if eliminated is not None and eliminated.role == Role.MR_WHITE:
            _patch_session(
                txn,
                session,
                phase=Phase.MR_WHITE_GUESSING,
                pending_elimination_id=eliminated.id,
                turn_index=None,
            )
            return VoteOutcome(
                phase=session.phase,
                all_voted=True,
                vote_counts=tally.counts,
                eliminated_player_id=eliminated.id,
                mr_white_guessing=True,
            )

        if eliminated is not None:
            _patch_player(txn, eliminated, alive=False)
            _patch_session(txn, session, last_eliminated_id=eliminated.id)

        result = self._evaluate(snap)
        self._continue_or_finish(txn, snap, result)
        return VoteOutcome(
            phase=session.phase,
            all_voted=True,
            vote_counts=tally.counts,
            eliminated_player_id=eliminated.id if eliminated else None,
            tie=tally.tie,
            result=result,
        )

    def _continue_or_finish(
        self, txn: SessionTransaction, snap: SessionSnapshot, result: Optional[GameResult]
    ) -> None:
        if result is not None:
            self._finish(txn, snap.session, result)
        else:
            self._start_next_round(txn, snap)

    def _finish(self, txn: SessionTransaction, session: SessionState, result: GameResult) -> None:
        _patch_session(txn, session, phase=Phase.RESULTS, result=result, turn_index=None)

    def _start_next_round(self, txn: SessionTransaction, snap: SessionSnapshot) -> None:
        """Discussion of round + 1 with a fresh order over the survivors."""
        for p in snap.players:
            _patch_player(txn, p, **_CLEAN_ROUND)
        alive = snap.alive_players
        order = build_turn_order(alive, self.rng)
        _patch_session(
            txn,
            snap.session,
            phase=Phase.DISCUSSION,
            round=snap.session.round + 1,
            turn_order=order,
            turn_index=first_turn_index(order, {p.id for p in alive}),
            pending_elimination_id=None,
        )

    def _full_reset(self, txn: SessionTransaction, snap: SessionSnapshot) -> None:
        """Back to the lobby: everyone alive, roles and words cleared."""
        for p in snap.players:
            _patch_player(txn, p, alive=True, role=Role.CIVILIAN, **_CLEAN_ROUND)
        txn.delete_words()
        snap.words = None
        _patch_session(
            txn,
            snap.session,
            phase=Phase.WAITING,
            round=0,
            turn_order=[],
            turn_index=None,
            result=None,
            pending_elimination_id=None,
            last_vote_counts={},
            last_eliminated_id=None,
        )


_game_master: Optional[GameMaster] = None


def get_game_master() -> GameMaster:
    """Lazy singleton bound to the process-wide session store."""
    global _game_master
    if _game_master is None:
        _game_master = GameMaster()
    return _game_master


def set_game_master(game_master: Optional[GameMaster]) -> None:
    global _game_master
    _game_master = game_master
