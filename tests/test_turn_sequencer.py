import random

from engine.turn_sequencer import (
    build_turn_order,
    clue_eligible_ids,
    first_turn_index,
    next_turn_index,
)
from models.game import PlayerState, Role


def _player(pid, role=Role.CIVILIAN, alive=True, has_clued=False):
    return PlayerState(id=pid, session_id="S", name=pid, role=role, alive=alive, has_clued=has_clued)


def test_order_is_a_permutation_of_the_players():
    players = [_player(p) for p in "abcde"]
    order = build_turn_order(players, random.Random(3))
    assert sorted(order) == list("abcde")


def test_mr_white_never_opens_the_round():
    players = [
        _player("w1", Role.MR_WHITE),
        _player("w2", Role.MR_WHITE),
        _player("u", Role.UNDERCOVER),
        _player("c1"),
        _player("c2"),
    ]
    for seed in range(200):
        order = build_turn_order(players, random.Random(seed))
        assert order[0] not in ("w1", "w2")
        assert sorted(order) == sorted(p.id for p in players)


def test_only_mr_whites_keeps_shuffle():
    players = [_player("w1", Role.MR_WHITE), _player("w2", Role.MR_WHITE)]
    order = build_turn_order(players, random.Random(0))
    assert sorted(order) == ["w1", "w2"]


def test_next_turn_skips_ineligible_and_wraps():
    order = ["a", "b", "c", "d"]
    assert next_turn_index(order, 0, {"b", "c"}) == 1
    assert next_turn_index(order, 1, {"c", "d"}) == 2
    # b is dead / done: skipped
    assert next_turn_index(order, 0, {"c"}) == 2
    # wrap around to the front
    assert next_turn_index(order, 2, {"a"}) == 0
    assert next_turn_index(order, 3, set()) is None


def test_next_turn_from_no_pointer_starts_at_front():
    assert next_turn_index(["a", "b"], None, {"b"}) == 1
    assert first_turn_index(["a", "b"], set()) is None


def test_clue_eligible_ids():
    players = [
        _player("a"),
        _player("b", has_clued=True),
        _player("c", alive=False),
    ]
    assert clue_eligible_ids(players) == {"a"}
