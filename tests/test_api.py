import pytest

pytest.importorskip("httpx", reason="httpx is required for the FastAPI test client")

from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from conftest import run
from engine.game_master import GameMaster, set_game_master
from main import app
from models.errors import TransientConflictError
from routers.ws_router import ConnectionManager


@pytest.fixture
def client(store):
    return TestClient(app)


def _lobby(client, *names):
    resp = client.post("/api/sessions", json={"host_name": names[0]})
    assert resp.status_code == 201
    payload = resp.json()
    sid, host = payload["session_id"], payload["host_player_id"]
    ids = {names[0]: host}
    for name in names[1:]:
        joined = client.post(f"/api/sessions/{sid}/join", json={"player_name": name})
        assert joined.status_code == 200
        ids[name] = joined.json()["player_id"]
    return sid, ids


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_unknown_session_is_404(client):
    resp = client.get("/api/sessions/NOPE")
    assert resp.status_code == 404
    assert resp.json()["code"] == "SESSION_NOT_FOUND"


def test_game_flow_over_http(client):
    sid, ids = _lobby(client, "Ann", "Bob", "Cid")

    resp = client.post(f"/api/sessions/{sid}/start", params={"host_player_id": ids["Bob"]})
    assert resp.status_code == 403
    assert resp.json()["code"] == "NOT_HOST"

    resp = client.post(f"/api/sessions/{sid}/start", params={"host_player_id": ids["Ann"]})
    assert resp.status_code == 200
    started = resp.json()
    assert started["phase"] == "discussion"
    assert started["round"] == 1

    state = client.get(f"/api/sessions/{sid}").json()
    holder = state["currentTurnPlayerId"]
    assert holder == started["current_turn_player_id"]
    assert all(p["role"] is None for p in state["players"])

    word = client.get(f"/api/sessions/{sid}/players/{holder}/word")
    assert word.status_code == 200
    assert word.json()["word"]

    waiting = next(pid for pid in ids.values() if pid != holder)
    resp = client.post(f"/api/sessions/{sid}/clue", json={"player_id": waiting, "clue": "hmm"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "NOT_YOUR_TURN"

    resp = client.post(f"/api/sessions/{sid}/clue", json={"player_id": holder, "clue": "warm"})
    assert resp.status_code == 200
    assert resp.json()["all_clued"] is False

    resp = client.post(f"/api/sessions/{sid}/voting", params={"host_player_id": ids["Ann"]})
    assert resp.json()["phase"] == "voting"

    resp = client.post(f"/api/sessions/{sid}/vote", json={"voter_id": ids["Ann"], "target_id": ids["Ann"]})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_VOTE"

    assert client.get(f"/api/sessions/{sid}/result").status_code == 409

    resp = client.post(f"/api/sessions/{sid}/stop", params={"host_player_id": ids["Ann"]})
    assert resp.json()["phase"] == "waiting"


def test_invalid_start_config(client):
    sid, ids = _lobby(client, "Ann", "Bob", "Cid")
    resp = client.post(
        f"/api/sessions/{sid}/start",
        params={"host_player_id": ids["Ann"]},
        json={"undercover_count": 2},
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_CONFIGURATION"


def test_config_and_leave(client):
    sid, ids = _lobby(client, "Ann", "Bob", "Cid", "Dee")
    resp = client.put(
        f"/api/sessions/{sid}/config",
        params={"host_player_id": ids["Ann"]},
        json={"undercover_count": 1, "mr_white_count": 1, "max_rounds": 4},
    )
    assert resp.status_code == 200
    assert resp.json() == {"undercover_count": 1, "mr_white_count": 1, "max_rounds": 4}

    resp = client.post(f"/api/sessions/{sid}/leave", json={"player_id": ids["Ann"]})
    assert resp.json()["host_player_id"] == ids["Bob"]


def test_repair_endpoint(client):
    sid, _ = _lobby(client, "Ann", "Bob", "Cid")
    resp = client.post(f"/api/sessions/{sid}/repair")
    assert resp.status_code == 200
    assert resp.json()["action"] == "none"


def test_websocket_state_and_ping(client):
    sid, ids = _lobby(client, "Ann", "Bob", "Cid")
    with client.websocket_connect(f"/ws/{sid}?playerId={ids['Bob']}") as ws:
        first = ws.receive_json()
        assert first["type"] == "state"
        assert first["state"]["sessionId"] == sid

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_json({"type": "sync"})
        assert ws.receive_json()["state"]["phase"] == "waiting"

        ws.send_json({"type": "dance"})
        assert ws.receive_json()["code"] == "UNKNOWN_TYPE"


def test_websocket_rejects_strangers(client):
    sid, _ = _lobby(client, "Ann", "Bob", "Cid")
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(f"/ws/{sid}?playerId=stranger") as ws:
            ws.receive_json()


def test_host_ends_voting_over_http(client):
    sid, ids = _lobby(client, "Ann", "Bob", "Cid", "Dee")
    client.post(f"/api/sessions/{sid}/start", params={"host_player_id": ids["Ann"]})
    client.post(f"/api/sessions/{sid}/voting", params={"host_player_id": ids["Ann"]})
    client.post(f"/api/sessions/{sid}/vote", json={"voter_id": ids["Ann"], "target_id": ids["Bob"]})

    resp = client.post(f"/api/sessions/{sid}/voting/end", params={"host_player_id": ids["Bob"]})
    assert resp.status_code == 403

    resp = client.post(f"/api/sessions/{sid}/voting/end", params={"host_player_id": ids["Ann"]})
    assert resp.status_code == 200
    assert resp.json()["eliminated_player_id"] == ids["Bob"]


class _BusyGameMaster(GameMaster):
    async def get_snapshot(self, session_id):
        raise TransientConflictError(session_id, 6)


def test_websocket_busy_session_is_not_reported_missing(client):
    sid, ids = _lobby(client, "Ann", "Bob", "Cid")
    set_game_master(_BusyGameMaster())
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/ws/{sid}?playerId={ids['Bob']}") as ws:
            ws.receive_json()
    assert exc.value.code == 1013


class _RecordingSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def accept(self):
        pass

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def test_broadcast_reaches_everyone_and_drops_dead_sockets():
    hub = ConnectionManager()
    ann, bob = _RecordingSocket(), _RecordingSocket(fail=True)
    run(hub.connect("S1", "ann", ann))
    run(hub.connect("S1", "bob", bob))
    assert hub.count("S1") == 2

    run(hub.broadcast("S1", {"type": "pong"}))
    assert ann.sent == [{"type": "pong"}]
    assert hub.count("S1") == 1
