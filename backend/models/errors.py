"""
Engine error hierarchy.

Every failure is scoped to one action against one session. Configuration and
precondition errors are raised before any write, so the enclosing transaction
commits nothing. Each class carries a stable `code` for clients and the HTTP
status the API renders it with.
"""
from typing import Optional


class GameError(Exception):
    """Base exception for all engine errors."""

    code = "GAME_ERROR"
    status_code = 400
    message = "Game error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class SessionNotFoundError(GameError):
    code = "SESSION_NOT_FOUND"
    status_code = 404

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class PlayerNotFoundError(GameError):
    code = "PLAYER_NOT_FOUND"
    status_code = 404

    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found in this session")


class InvalidConfigurationError(GameError):
    code = "INVALID_CONFIGURATION"
    status_code = 400


class WrongPhaseError(GameError):
    code = "WRONG_PHASE"
    status_code = 409

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Game is not in {expected} phase (currently {actual})")


class NotYourTurnError(GameError):
    code = "NOT_YOUR_TURN"
    status_code = 409
    message = "It's not your turn to give a clue"


class AlreadyActedError(GameError):
    code = "ALREADY_ACTED"
    status_code = 409
    message = "You have already given your clue this round"


class InvalidVoteError(GameError):
    code = "INVALID_VOTE"
    status_code = 400
    message = "Invalid vote"


class NotHostError(GameError):
    code = "NOT_HOST"
    status_code = 403
    message = "Only the host can do this"


class SessionFullError(GameError):
    code = "SESSION_FULL"
    status_code = 409

    def __init__(self, max_players: int):
        super().__init__(f"Session is full (maximum {max_players} players)")


class PlayerEliminatedError(GameError):
    code = "PLAYER_ELIMINATED"
    status_code = 409
    message = "Eliminated players cannot act"


class TransientConflictError(GameError):
    """Concurrent writes kept conflicting; the caller may simply retry."""

    code = "CONFLICT"
    status_code = 503

    def __init__(self, session_id: str, attempts: int):
        self.session_id = session_id
        self.attempts = attempts
        super().__init__(
            f"Session {session_id} is busy (gave up after {attempts} attempts), please retry"
        )


class StoreConflict(Exception):
    """Raised by a store when a transaction lost a write/write or read/write race."""


class GameStateError(GameError):
    """Stored state does not allow the action (e.g. a running game without words)."""

    code = "INCONSISTENT_STATE"
    status_code = 409
