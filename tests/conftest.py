import asyncio
import random

import pytest

from engine.game_master import GameMaster, set_game_master
from services.memory_store import InMemorySessionStore
from services.session_store import set_session_store


@pytest.fixture
def store():
    store = InMemorySessionStore()
    set_session_store(store)
    set_game_master(None)
    yield store
    set_session_store(None)
    set_game_master(None)


@pytest.fixture
def gm(store):
    return GameMaster(store, rng=random.Random(7))


def run(coro):
    return asyncio.run(coro)


async def lobby(gm, *names, max_rounds=None):
    """Create a session hosted by names[0] and join the others. Returns (session_id, {name: id})."""
    session, host = await gm.create_session(names[0], max_rounds)
    ids = {host.name: host.id}
    for name in names[1:]:
        player = await gm.join_session(session.id, name)
        ids[name] = player.id
    return session.id, ids
