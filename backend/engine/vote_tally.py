"""
Vote Tally — per-round vote counting and elimination target.

Only votes of alive participants count. A strict maximum eliminates; a shared
maximum is a tie and eliminates nobody. No votes at all is neither.

Votes are revocable: voting for someone you already voted for withdraws the
vote, voting for someone else replaces it. Both leave the voter "decided",
which is what closes the round, independently of holding a target.
"""
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

from models.game import PlayerState


@dataclass(frozen=True)
class TallyResult:
    counts: Dict[str, int] = field(default_factory=dict)
    eliminated_id: Optional[str] = None
    tie: bool = False
    max_votes: int = 0


def apply_vote(current_target: Optional[str], new_target: str) -> Optional[str]:
    """Target held after a vote: identical vote toggles off, otherwise overwrite."""
    if current_target == new_target:
        return None
    return new_target


def count_votes(players: Sequence[PlayerState]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for p in players:
        if p.alive and p.vote_target:
            counts[p.vote_target] = counts.get(p.vote_target, 0) + 1
    return counts


def tally_votes(players: Sequence[PlayerState]) -> TallyResult:
    counts = count_votes(players)
    if not counts:
        return TallyResult()

    max_votes = max(counts.values())
    leaders = [pid for pid, n in counts.items() if n == max_votes]
    if len(leaders) > 1:
        return TallyResult(counts=counts, tie=True, max_votes=max_votes)
    return TallyResult(counts=counts, eliminated_id=leaders[0], max_votes=max_votes)


def all_decided(players: Sequence[PlayerState]) -> bool:
    """True once every alive participant has voted or withdrawn a vote."""
    alive = [p for p in players if p.alive]
    return bool(alive) and all(p.has_voted for p in alive)
