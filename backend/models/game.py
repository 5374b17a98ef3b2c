from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, timezone
import uuid


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    CIVILIAN = "civilian"
    UNDERCOVER = "undercover"
    MR_WHITE = "mr_white"


class Phase(str, Enum):
    WAITING = "waiting"
    DISCUSSION = "discussion"
    VOTING = "voting"
    MR_WHITE_GUESSING = "mr_white_guessing"
    RESULTS = "results"


# Phases in which a game is running (stop is allowed as an abort)
ACTIVE_PHASES = (Phase.DISCUSSION, Phase.VOTING, Phase.MR_WHITE_GUESSING)


class GameResult(str, Enum):
    CIVILIANS_WIN = "civilians_win"
    UNDERCOVERS_WIN = "undercovers_win"
    MR_WHITE_WIN = "mr_white_win"
    UNDERCOVERS_MR_WHITE_WIN = "undercovers_mr_white_win"  # joint victory
    MAX_ROUNDS_REACHED = "max_rounds_reached"


class PlayerState(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    name: str
    is_host: bool = False
    alive: bool = True
    role: Role = Role.CIVILIAN
    has_clued: bool = False
    clue: Optional[str] = None
    has_voted: bool = False  # "decided": stays True after a vote is withdrawn
    vote_target: Optional[str] = None
    joined_at: datetime = Field(default_factory=_utcnow)

    def to_public(self, reveal_role: bool = False) -> Dict[str, Any]:
        """Observer-safe representation. Roles are only shown once revealed."""
        return {
            "id": self.id,
            "name": self.name,
            "isHost": self.is_host,
            "alive": self.alive,
            "role": self.role.value if reveal_role or not self.alive else None,
            "hasClued": self.has_clued,
            "clue": self.clue,
            "hasVoted": self.has_voted,
            "voteTarget": self.vote_target,
        }


class SessionState(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8].upper())
    host_player_id: str
    phase: Phase = Phase.WAITING
    round: int = 0
    max_rounds: int = 3
    turn_order: List[str] = []
    turn_index: Optional[int] = None
    undercover_count: int = 1
    mr_white_count: int = 0
    result: Optional[GameResult] = None
    pending_elimination_id: Optional[str] = None  # Mr. White awaiting the final guess
    last_vote_counts: Dict[str, int] = {}
    last_eliminated_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def current_turn_player_id(self) -> Optional[str]:
        if self.phase != Phase.DISCUSSION or self.turn_index is None:
            return None
        if 0 <= self.turn_index < len(self.turn_order):
            return self.turn_order[self.turn_index]
        return None


class WordAssignment(BaseModel):
    session_id: str
    civilian_word: str
    undercover_word: str
    mr_white_marker: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class SessionSnapshot(BaseModel):
    """Everything an engine operation reads before it writes."""
    session: SessionState
    players: List[PlayerState] = []
    words: Optional[WordAssignment] = None

    @property
    def alive_players(self) -> List[PlayerState]:
        return [p for p in self.players if p.alive]

    def player(self, player_id: Optional[str]) -> Optional[PlayerState]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def to_public(self) -> Dict[str, Any]:
        session = self.session
        reveal = session.phase == Phase.RESULTS
        return {
            "sessionId": session.id,
            "hostPlayerId": session.host_player_id,
            "phase": session.phase.value,
            "round": session.round,
            "maxRounds": session.max_rounds,
            "undercoverCount": session.undercover_count,
            "mrWhiteCount": session.mr_white_count,
            "turnOrder": list(session.turn_order),
            "currentTurnPlayerId": session.current_turn_player_id,
            "pendingEliminationId": session.pending_elimination_id,
            "lastVoteCounts": dict(session.last_vote_counts),
            "lastEliminatedId": session.last_eliminated_id,
            "result": session.result.value if session.result else None,
            "players": [
                p.to_public(reveal_role=reveal)
                for p in sorted(self.players, key=lambda p: p.joined_at)
            ],
        }


# ── Engine operation outcomes ─────────────────────────────────────────────────

class ClueOutcome(BaseModel):
    phase: Phase
    all_clued: bool
    next_player_id: Optional[str] = None


class VoteOutcome(BaseModel):
    phase: Phase
    all_voted: bool
    vote_counts: Dict[str, int] = {}
    eliminated_player_id: Optional[str] = None
    tie: bool = False
    mr_white_guessing: bool = False
    result: Optional[GameResult] = None


class GuessOutcome(BaseModel):
    phase: Phase
    correct: bool
    civilian_word: str
    result: Optional[GameResult] = None


class RepairOutcome(BaseModel):
    action: str
    phase: Phase
    result: Optional[GameResult] = None


# ── HTTP request/response models ──────────────────────────────────────────────

class CreateSessionRequest(BaseModel):
    host_name: str = Field(default="Host", min_length=1)
    max_rounds: Optional[int] = Field(default=None, ge=1)


class CreateSessionResponse(BaseModel):
    session_id: str
    host_player_id: str


class JoinSessionRequest(BaseModel):
    player_name: str = Field(min_length=1)


class JoinSessionResponse(BaseModel):
    player_id: str
    session_id: str


class LeaveSessionRequest(BaseModel):
    player_id: str


class GameConfigRequest(BaseModel):
    undercover_count: int = Field(default=1, ge=1)
    mr_white_count: int = Field(default=0, ge=0)
    max_rounds: Optional[int] = Field(default=None, ge=1)


class StartGameRequest(BaseModel):
    undercover_count: Optional[int] = Field(default=None, ge=1)
    mr_white_count: Optional[int] = Field(default=None, ge=0)


class ClueRequest(BaseModel):
    player_id: str
    clue: str = Field(min_length=1)


class VoteRequest(BaseModel):
    voter_id: str
    target_id: str


class GuessRequest(BaseModel):
    player_id: str
    guess: str
