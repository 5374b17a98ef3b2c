"""
Role Assignment — configuration checks, role shuffling and word selection.

Responsibilities:
- Reject player counts / role ratios that cannot make a fair game
- Shuffle participants and hand out Undercover, Mr. White and Civilian roles
- Pick the word pair for a new game and build its WordAssignment

Pure logic: the GameMaster persists what this returns inside its transaction.
"""
import random
from typing import Dict, Optional, Sequence

from config import settings
from engine.word_pairs import WORD_PAIRS, WordPair
from models.errors import InvalidConfigurationError
from models.game import Role, WordAssignment


class RoleAssigner:
    """
    Assigns roles and words to all participants of a session.
    Called once per game start by the GameMaster.

    Limits default to the application settings:
    3..10 players, at most half of them undercover, Mr. White from 4 players.
    """

    def __init__(
        self,
        word_pairs: Sequence[WordPair] = WORD_PAIRS,
        rng: Optional[random.Random] = None,
        min_players: Optional[int] = None,
        max_players: Optional[int] = None,
        mr_white_min_players: Optional[int] = None,
        max_undercover_ratio: Optional[float] = None,
    ):
        if not word_pairs:
            raise ValueError("RoleAssigner needs at least one word pair")
        for pair in word_pairs:
            if pair.civilian.strip().casefold() == pair.undercover.strip().casefold():
                raise ValueError(f"Word pair {pair!r} uses the same word twice")
        self.word_pairs = tuple(word_pairs)
        self.rng = rng or random.Random()
        self.min_players = settings.min_players if min_players is None else min_players
        self.max_players = settings.max_players if max_players is None else max_players
        self.mr_white_min_players = (
            settings.mr_white_min_players if mr_white_min_players is None else mr_white_min_players
        )
        self.max_undercover_ratio = (
            settings.max_undercover_ratio if max_undercover_ratio is None else max_undercover_ratio
        )

    def max_undercovers(self, player_count: int) -> int:
        return int(player_count * self.max_undercover_ratio)

    def validate_config(
        self, player_count: int, undercover_count: int, mr_white_count: int
    ) -> None:
        """Raise InvalidConfigurationError unless the game can start as configured."""
        if player_count < self.min_players:
            raise InvalidConfigurationError(
                f"Need at least {self.min_players} players to start, got {player_count}"
            )
        if player_count > self.max_players:
            raise InvalidConfigurationError(
                f"Too many players. Maximum is {self.max_players}, got {player_count}"
            )
        if undercover_count < 1:
            raise InvalidConfigurationError("Need at least 1 undercover")
        if mr_white_count < 0:
            raise InvalidConfigurationError("Mr. White count cannot be negative")
        max_undercovers = self.max_undercovers(player_count)
        if undercover_count > max_undercovers:
            raise InvalidConfigurationError(
                f"Too many undercovers. Maximum is {max_undercovers} for {player_count} players"
            )
        if undercover_count + mr_white_count >= player_count:
            raise InvalidConfigurationError(
                "Need at least 1 civilian player. Reduce undercovers or Mr. Whites."
            )
        if mr_white_count > 0 and player_count < self.mr_white_min_players:
            raise InvalidConfigurationError(
                f"Mr. White requires at least {self.mr_white_min_players} players"
            )

    def assign_roles(
        self,
        player_ids: Sequence[str],
        undercover_count: int,
        mr_white_count: int,
    ) -> Dict[str, Role]:
        """
        Uniformly shuffle the participants, then deal roles in order:
        the first `undercover_count` are Undercover, the next `mr_white_count`
        Mr. White, everybody else Civilian.

        Expects a configuration that already passed validate_config().
        """
        shuffled = list(player_ids)
        self.rng.shuffle(shuffled)
        roles: Dict[str, Role] = {}
        for i, player_id in enumerate(shuffled):
            if i < undercover_count:
                roles[player_id] = Role.UNDERCOVER
            elif i < undercover_count + mr_white_count:
                roles[player_id] = Role.MR_WHITE
            else:
                roles[player_id] = Role.CIVILIAN
        return roles

    def pick_word_pair(self) -> WordPair:
        return self.rng.choice(self.word_pairs)

    def build_word_assignment(
        self, session_id: str, pair: WordPair, mr_white_count: int
    ) -> WordAssignment:
        return WordAssignment(
            session_id=session_id,
            civilian_word=pair.civilian,
            undercover_word=pair.undercover,
            mr_white_marker=settings.mr_white_marker if mr_white_count > 0 else None,
        )


def word_for_role(words: WordAssignment, role: Role) -> Optional[str]:
    """The word a participant with `role` is shown."""
    if role == Role.UNDERCOVER:
        return words.undercover_word
    if role == Role.MR_WHITE:
        return words.mr_white_marker
    return words.civilian_word
