"""
Consistency Repair — detect drift between the turn pointer and the
per-round completion flags.

Racing writers can leave a Discussion round pointing at someone who already
clued (or died), or leave everyone finished without the phase having moved
on. Detection here is pure; GameMaster.repair() applies the matching
advance/transition inside a transaction. Running it on a consistent session
reports Drift.NONE, so it is safe to call at any time.
"""
from enum import Enum
from typing import Sequence

from engine.turn_sequencer import clue_eligible_ids
from engine.vote_tally import all_decided
from models.game import Phase, PlayerState, SessionState


class Drift(str, Enum):
    NONE = "none"
    STALE_TURN = "stale_turn"            # pointer on a dead / already-clued participant
    CLUES_COMPLETE = "clues_complete"    # everyone clued but still in Discussion
    VOTES_COMPLETE = "votes_complete"    # everyone decided but vote not resolved


def detect_drift(session: SessionState, players: Sequence[PlayerState]) -> Drift:
    if session.phase == Phase.DISCUSSION:
        eligible = clue_eligible_ids(players)
        if not eligible:
            return Drift.CLUES_COMPLETE
        holder = session.current_turn_player_id
        if holder is None or holder not in eligible:
            return Drift.STALE_TURN
        return Drift.NONE

    if session.phase == Phase.VOTING and all_decided(players):
        return Drift.VOTES_COMPLETE

    return Drift.NONE
