import random
from collections import Counter

import pytest

from engine.role_assigner import RoleAssigner, word_for_role
from engine.word_pairs import WORD_PAIRS, WordPair
from models.errors import InvalidConfigurationError
from models.game import Role


def _assigner(seed=1):
    return RoleAssigner(rng=random.Random(seed))


def test_assign_roles_deals_exact_counts():
    ids = [f"p{i}" for i in range(7)]
    roles = _assigner().assign_roles(ids, undercover_count=2, mr_white_count=1)

    assert set(roles) == set(ids)
    counts = Counter(roles.values())
    assert counts[Role.UNDERCOVER] == 2
    assert counts[Role.MR_WHITE] == 1
    assert counts[Role.CIVILIAN] == 4


def test_assign_roles_is_shuffled():
    ids = [f"p{i}" for i in range(6)]
    undercovers = set()
    for seed in range(30):
        roles = _assigner(seed).assign_roles(ids, 1, 0)
        undercovers.update(pid for pid, r in roles.items() if r == Role.UNDERCOVER)
    assert len(undercovers) > 1


@pytest.mark.parametrize(
    "players, undercovers, mr_whites, message",
    [
        (2, 1, 0, "at least 3"),
        (11, 1, 0, "Too many players"),
        (4, 3, 0, "Too many undercovers"),
        (3, 1, 2, "at least 1 civilian"),
        (3, 1, 1, "Mr. White requires"),
        (5, 0, 1, "at least 1 undercover"),
    ],
)
def test_validate_config_rejects(players, undercovers, mr_whites, message):
    with pytest.raises(InvalidConfigurationError) as exc:
        _assigner().validate_config(players, undercovers, mr_whites)
    assert message in exc.value.message


@pytest.mark.parametrize(
    "players, undercovers, mr_whites",
    [(3, 1, 0), (4, 1, 1), (4, 2, 0), (10, 5, 4), (10, 3, 2)],
)
def test_validate_config_accepts(players, undercovers, mr_whites):
    _assigner().validate_config(players, undercovers, mr_whites)


def test_max_undercovers_rounds_down():
    assigner = _assigner()
    assert assigner.max_undercovers(3) == 1
    assert assigner.max_undercovers(5) == 2
    assert assigner.max_undercovers(10) == 5


def test_word_pair_with_identical_words_is_rejected():
    with pytest.raises(ValueError):
        RoleAssigner(word_pairs=[WordPair("Cat", " cat ")])


def test_word_pairs_are_distinct():
    for pair in WORD_PAIRS:
        assert pair.civilian.casefold() != pair.undercover.casefold()


def test_word_assignment_and_lookup():
    assigner = _assigner()
    pair = assigner.pick_word_pair()
    assert pair in WORD_PAIRS

    words = assigner.build_word_assignment("S1", pair, mr_white_count=1)
    assert word_for_role(words, Role.CIVILIAN) == pair.civilian
    assert word_for_role(words, Role.UNDERCOVER) == pair.undercover
    assert word_for_role(words, Role.MR_WHITE) == "Unknown"

    no_white = assigner.build_word_assignment("S1", pair, mr_white_count=0)
    assert no_white.mr_white_marker is None


def test_explicit_zero_limits_are_kept():
    assigner = RoleAssigner(rng=random.Random(1), max_undercover_ratio=0.0, mr_white_min_players=0)
    assert assigner.max_undercover_ratio == 0.0
    assert assigner.mr_white_min_players == 0
    with pytest.raises(InvalidConfigurationError) as exc:
        assigner.validate_config(5, 1, 0)
    assert "Too many undercovers" in exc.value.message
