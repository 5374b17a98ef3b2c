"""
Win Evaluator — the sole authority on whether a session becomes terminal.

Pure function of the alive role counts and the round counter; safe to re-run
at any time. Checked in order, first match wins:

  1. round >= max_rounds                         → max_rounds_reached
  2. no undercover and no Mr. White alive        → civilians_win
  3. no civilian, undercover and Mr. White alive → undercovers_mr_white_win
  4. at most 1 civilian, an undercover alive     → undercovers_win
  5. at most 1 civilian, a Mr. White alive       → mr_white_win
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from models.game import GameResult, PlayerState, Role


@dataclass(frozen=True)
class RoleCounts:
    undercovers: int = 0
    civilians: int = 0
    mr_whites: int = 0

    @classmethod
    def from_players(cls, players: Sequence[PlayerState]) -> "RoleCounts":
        alive = [p for p in players if p.alive]
        return cls(
            undercovers=sum(1 for p in alive if p.role == Role.UNDERCOVER),
            civilians=sum(1 for p in alive if p.role == Role.CIVILIAN),
            mr_whites=sum(1 for p in alive if p.role == Role.MR_WHITE),
        )


def evaluate(counts: RoleCounts, round: int, max_rounds: int) -> Optional[GameResult]:
    if round >= max_rounds:
        return GameResult.MAX_ROUNDS_REACHED
    if counts.undercovers == 0 and counts.mr_whites == 0:
        return GameResult.CIVILIANS_WIN
    if counts.civilians == 0 and counts.undercovers > 0 and counts.mr_whites > 0:
        return GameResult.UNDERCOVERS_MR_WHITE_WIN
    if counts.civilians <= 1 and counts.undercovers > 0:
        return GameResult.UNDERCOVERS_WIN
    if counts.civilians <= 1 and counts.mr_whites > 0:
        return GameResult.MR_WHITE_WIN
    return None
