from conftest import lobby, run
from engine.consistency import Drift, detect_drift
from models.game import Phase, PlayerState, SessionState


def _session(phase, order=(), index=None):
    return SessionState(host_player_id="a", phase=phase, turn_order=list(order), turn_index=index)


def _p(pid, **kw):
    return PlayerState(id=pid, session_id="S", name=pid, **kw)


def test_detect_drift():
    players = [_p("a"), _p("b")]
    assert detect_drift(_session(Phase.DISCUSSION, "ab", 0), players) == Drift.NONE
    assert detect_drift(_session(Phase.DISCUSSION, "ab", 0), [_p("a", has_clued=True), _p("b")]) == Drift.STALE_TURN
    assert detect_drift(_session(Phase.DISCUSSION, "ab", 0), [_p("a", alive=False), _p("b")]) == Drift.STALE_TURN
    assert detect_drift(
        _session(Phase.DISCUSSION, "ab", 1), [_p("a", has_clued=True), _p("b", has_clued=True)]
    ) == Drift.CLUES_COMPLETE
    assert detect_drift(_session(Phase.VOTING), [_p("a", has_voted=True), _p("b", has_voted=True)]) == Drift.VOTES_COMPLETE
    assert detect_drift(_session(Phase.VOTING), [_p("a", has_voted=True), _p("b")]) == Drift.NONE
    assert detect_drift(_session(Phase.WAITING), players) == Drift.NONE


async def _started(gm, *names):
    sid, ids = await lobby(gm, *names)
    await gm.start(sid, ids[names[0]])
    return sid, ids


async def _write_player(store, sid, player_id, **updates):
    await store.run_transaction(sid, lambda txn: txn.update_player(player_id, updates))


def test_repair_stale_turn_is_idempotent(gm, store):
    async def scenario():
        sid, _ = await _started(gm, "Ann", "Bob", "Cid")
        snap = await gm.get_snapshot(sid)
        holder = snap.session.current_turn_player_id
        # clue recorded but the pointer never moved
        await _write_player(store, sid, holder, has_clued=True, clue="lost")

        outcome = await gm.repair(sid)
        assert outcome.action == "stale_turn"
        snap = await gm.get_snapshot(sid)
        assert snap.session.phase == Phase.DISCUSSION
        assert snap.session.current_turn_player_id == snap.session.turn_order[1]

        assert (await gm.repair(sid)).action == "none"
        assert (await gm.get_snapshot(sid)).session == snap.session

    run(scenario())


def test_repair_moves_finished_discussion_to_voting(gm, store):
    async def scenario():
        sid, ids = await _started(gm, "Ann", "Bob", "Cid")
        for pid in ids.values():
            await _write_player(store, sid, pid, has_clued=True)

        outcome = await gm.repair(sid)
        assert outcome.action == "clues_complete"
        assert outcome.phase == Phase.VOTING
        assert (await gm.repair(sid)).action == "none"

    run(scenario())


def test_repair_resolves_finished_vote(gm, store):
    async def scenario():
        sid, ids = await _started(gm, "Ann", "Bob", "Cid", "Dee")
        await gm.force_voting(sid, ids["Ann"])
        for pid in ids.values():
            target = ids["Ann"] if pid != ids["Ann"] else ids["Bob"]
            await _write_player(store, sid, pid, has_voted=True, vote_target=target)

        outcome = await gm.repair(sid)
        assert outcome.action == "votes_complete"
        snap = await gm.get_snapshot(sid)
        assert snap.session.last_vote_counts == {ids["Ann"]: 3, ids["Bob"]: 1}
        assert outcome.phase in (Phase.DISCUSSION, Phase.RESULTS, Phase.MR_WHITE_GUESSING)
        assert not snap.player(ids["Ann"]).alive or snap.session.phase == Phase.MR_WHITE_GUESSING

        assert (await gm.repair(sid)).action == "none"

    run(scenario())


def test_repair_leaves_consistent_session_alone(gm):
    async def scenario():
        sid, _ = await _started(gm, "Ann", "Bob", "Cid")
        before = await gm.get_snapshot(sid)
        outcome = await gm.repair(sid)
        assert outcome.action == "none"
        assert (await gm.get_snapshot(sid)) == before

    run(scenario())
