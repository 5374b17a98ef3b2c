"""
Session HTTP endpoints.

Routes:
  POST /api/sessions                                — Create session + register host
  POST /api/sessions/{session_id}/join              — Participant joins the lobby
  POST /api/sessions/{session_id}/leave             — Participant leaves the lobby
  GET  /api/sessions/{session_id}                   — Public session state (words hidden)
  PUT  /api/sessions/{session_id}/config            — Host sets role counts / max rounds
  POST /api/sessions/{session_id}/start             — Host starts the game
  POST /api/sessions/{session_id}/clue              — Turn-holder submits a clue
  POST /api/sessions/{session_id}/voting            — Host forces the vote
  POST /api/sessions/{session_id}/voting/end        — Host closes the ballot early
  POST /api/sessions/{session_id}/vote              — Cast / change / withdraw a vote
  POST /api/sessions/{session_id}/guess             — Eliminated Mr. White guesses the word
  POST /api/sessions/{session_id}/restart           — Host: Results → lobby
  POST /api/sessions/{session_id}/stop              — Host aborts the game
  POST /api/sessions/{session_id}/repair            — Re-sync a half-advanced session
  GET  /api/sessions/{session_id}/players/{pid}/word — A participant's secret word
  GET  /api/sessions/{session_id}/result            — Post-game reveal

Engine errors (GameError) are rendered by the handler in main.py.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Query

from engine.game_master import get_game_master
from models.game import (
    ClueRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    GameConfigRequest,
    GuessRequest,
    JoinSessionRequest,
    JoinSessionResponse,
    LeaveSessionRequest,
    StartGameRequest,
    VoteRequest,
)
from routers.ws_router import manager as ws_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


@router.post("/sessions", response_model=CreateSessionResponse, status_code=201)
async def create_session(body: CreateSessionRequest):
    """Create a new session and register the host as the first participant."""
    session, host = await get_game_master().create_session(body.host_name, body.max_rounds)
    return CreateSessionResponse(session_id=session.id, host_player_id=host.id)


@router.post("/sessions/{session_id}/join", response_model=JoinSessionResponse)
async def join_session(session_id: str, body: JoinSessionRequest):
    """Add a participant to the lobby. Rejected once the game has started."""
    player = await get_game_master().join_session(session_id, body.player_name)
    await ws_manager.broadcast_state(session_id)
    return JoinSessionResponse(player_id=player.id, session_id=session_id)


@router.post("/sessions/{session_id}/leave")
async def leave_session(session_id: str, body: LeaveSessionRequest):
    host_player_id = await get_game_master().leave_session(session_id, body.player_id)
    await ws_manager.broadcast_state(session_id)
    return {"status": "left", "host_player_id": host_player_id}


@router.get("/sessions/{session_id}")
async def get_session(session_id: str):
    """
    Public session state.
    Words are never included; roles only for eliminated participants,
    and for everyone once the session is in Results.
    """
    return await get_game_master().get_view(session_id)


@router.put("/sessions/{session_id}/config")
async def update_config(
    session_id: str,
    body: GameConfigRequest,
    host_player_id: str = Query(..., description="Must match the session host"),
):
    session = await get_game_master().update_config(
        session_id,
        host_player_id,
        body.undercover_count,
        body.mr_white_count,
        body.max_rounds,
    )
    await ws_manager.broadcast_state(session_id)
    return {
        "undercover_count": session.undercover_count,
        "mr_white_count": session.mr_white_count,
        "max_rounds": session.max_rounds,
    }


@router.post("/sessions/{session_id}/start")
async def start_game(
    session_id: str,
    host_player_id: str = Query(..., description="Must match the session host"),
    body: Optional[StartGameRequest] = None,
):
    """
    Start the game (host only).
    Deals roles and words, then moves the session to Discussion. Each
    participant fetches their own word from /players/{pid}/word.
    """
    body = body or StartGameRequest()
    snap = await get_game_master().start(
        session_id, host_player_id, body.undercover_count, body.mr_white_count
    )
    await ws_manager.broadcast_state(session_id)
    return {
        "status": "started",
        "phase": snap.session.phase.value,
        "round": snap.session.round,
        "current_turn_player_id": snap.session.current_turn_player_id,
    }


@router.post("/sessions/{session_id}/clue")
async def submit_clue(session_id: str, body: ClueRequest):
    outcome = await get_game_master().submit_clue(session_id, body.player_id, body.clue)
    await ws_manager.broadcast_state(session_id)
    return outcome.model_dump(mode="json")


@router.post("/sessions/{session_id}/voting")
async def force_voting(
    session_id: str,
    host_player_id: str = Query(..., description="Must match the session host"),
):
    session = await get_game_master().force_voting(session_id, host_player_id)
    await ws_manager.broadcast_state(session_id)
    return {"phase": session.phase.value}


@router.post("/sessions/{session_id}/voting/end")
async def end_voting(
    session_id: str,
    host_player_id: str = Query(..., description="Must match the session host"),
):
    """Close the ballot now; participants who have not voted abstain."""
    outcome = await get_game_master().end_voting(session_id, host_player_id)
    await ws_manager.broadcast_state(session_id)
    return outcome.model_dump(mode="json")


@router.post("/sessions/{session_id}/vote")
async def cast_vote(session_id: str, body: VoteRequest):
    outcome = await get_game_master().cast_vote(session_id, body.voter_id, body.target_id)
    await ws_manager.broadcast_state(session_id)
    return outcome.model_dump(mode="json")


@router.post("/sessions/{session_id}/guess")
async def submit_guess(session_id: str, body: GuessRequest):
    outcome = await get_game_master().submit_guess(session_id, body.player_id, body.guess)
    await ws_manager.broadcast_state(session_id)
    return outcome.model_dump(mode="json")


@router.post("/sessions/{session_id}/restart")
async def restart_game(
    session_id: str,
    host_player_id: str = Query(..., description="Must match the session host"),
):
    session = await get_game_master().restart(session_id, host_player_id)
    await ws_manager.broadcast_state(session_id)
    return {"phase": session.phase.value}


@router.post("/sessions/{session_id}/stop")
async def stop_game(
    session_id: str,
    host_player_id: str = Query(..., description="Must match the session host"),
):
    session = await get_game_master().stop(session_id, host_player_id)
    await ws_manager.broadcast_state(session_id)
    return {"phase": session.phase.value}


@router.post("/sessions/{session_id}/repair")
async def repair_session(session_id: str):
    outcome = await get_game_master().repair(session_id)
    if outcome.action != "none":
        await ws_manager.broadcast_state(session_id)
    return outcome.model_dump(mode="json")


@router.get("/sessions/{session_id}/players/{player_id}/word")
async def get_player_word(session_id: str, player_id: str):
    """Private: the caller's own word. Mr. White receives the marker instead."""
    return await get_game_master().get_player_word(session_id, player_id)


@router.get("/sessions/{session_id}/result")
async def get_result(session_id: str):
    """Post-game reveal: result, both words, every role."""
    return await get_game_master().get_result(session_id)
