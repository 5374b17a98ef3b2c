"""
Turn Sequencer — clue-giving order for one round.

The order is a shuffle of the participants alive when the round starts.
Eliminations never rebuild it mid-round: advancing simply skips anyone who is
no longer eligible (dead or already clued).

First-slot rule, applied to every order built: a Mr. White never opens the
round. If one lands in slot 0, every Mr. White is pulled out and re-inserted
at an independently chosen non-zero slot.
"""
import random
from typing import AbstractSet, List, Optional, Sequence

from models.game import PlayerState, Role


def build_turn_order(
    alive_players: Sequence[PlayerState], rng: Optional[random.Random] = None
) -> List[str]:
    rng = rng or random.Random()
    order = [p.id for p in alive_players]
    rng.shuffle(order)

    mr_whites = {p.id for p in alive_players if p.role == Role.MR_WHITE}
    if not order or order[0] not in mr_whites or len(mr_whites) == len(order):
        return order

    others = [pid for pid in order if pid not in mr_whites]
    relocated = [pid for pid in order if pid in mr_whites]
    for pid in relocated:
        others.insert(rng.randint(1, len(others)), pid)
    return others


def first_turn_index(
    turn_order: Sequence[str], eligible_ids: AbstractSet[str]
) -> Optional[int]:
    for i, pid in enumerate(turn_order):
        if pid in eligible_ids:
            return i
    return None


def next_turn_index(
    turn_order: Sequence[str],
    current_index: Optional[int],
    eligible_ids: AbstractSet[str],
) -> Optional[int]:
    """
    Position of the next participant who still owes a clue.

    Looks after `current_index` first, then wraps around from 0 up to (not
    including) `current_index`. Returns None when nobody is left, i.e. the
    clue phase of the round is complete.
    """
    if current_index is None:
        return first_turn_index(turn_order, eligible_ids)
    for i in range(current_index + 1, len(turn_order)):
        if turn_order[i] in eligible_ids:
            return i
    for i in range(0, min(current_index, len(turn_order))):
        if turn_order[i] in eligible_ids:
            return i
    return None


def clue_eligible_ids(players: Sequence[PlayerState]) -> set:
    """Participants who may still give a clue this round."""
    return {p.id for p in players if p.alive and not p.has_clued}
