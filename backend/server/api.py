"""
Chart builder API routes, mounted as a sub-router on the main FastAPI app.

Every route works on the session named by the X-Session-Id header and
returns the session's read view after the edit.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from app.llm import LLMError, LLMPlanner
from core.models import (
    BuilderUpdateRequest,
    ChartEditPlan,
    CommandOutcome,
    CommandRequest,
    DataRequest,
    SessionState,
    SpecRequest,
)
from core.storage import get_session
from server.orchestrator import CustomSpecError, apply_manual_spec, run_command, update_builder
from skills.intent import ChartPlanner, PatternPlanner
from skills.validate import SpecValidationError

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["chart"])


def _require_session_id(request: Request) -> str:
    sid = request.headers.get("X-Session-Id")
    if not sid:
        raise HTTPException(status_code=400, detail="Missing X-Session-Id header.")
    return sid


def _planner(mode: str) -> ChartPlanner:
    if mode == "llm":
        return LLMPlanner()
    return PatternPlanner()


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/state", response_model=SessionState)
async def get_state(request: Request):
    sid = _require_session_id(request)
    return get_session(sid).get()


@router.post("/data", response_model=SessionState)
async def load_data(request: Request, body: DataRequest):
    """Replace the dataset. With ``regenerate=false`` the current (custom) spec is kept."""
    sid = _require_session_id(request)
    session = get_session(sid)
    if body.regenerate:
        session.set_data(body.rows)
    else:
        session.set_data_only(body.rows, "Load data")
    return session.get()


@router.patch("/builder", response_model=SessionState)
async def patch_builder(request: Request, body: BuilderUpdateRequest):
    sid = _require_session_id(request)
    session = get_session(sid)
    try:
        update_builder(session, body.updates, body.description)
    except CustomSpecError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False))
    return session.get()


@router.put("/spec", response_model=SessionState)
async def put_spec(request: Request, body: SpecRequest):
    sid = _require_session_id(request)
    session = get_session(sid)
    try:
        apply_manual_spec(session, body.spec)
    except SpecValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return session.get()


@router.post("/plan", response_model=ChartEditPlan)
async def preview_plan(request: Request, body: CommandRequest):
    """Plan a command without applying it."""
    sid = _require_session_id(request)
    session = get_session(sid)
    planner = _planner(body.mode)
    try:
        return await planner.plan(body.command, [f.name for f in session.fields], session.builder_state, session.fields)
    except LLMError as exc:
        raise HTTPException(status_code=502, detail=str(exc))


@router.post("/command", response_model=CommandOutcome)
async def post_command(request: Request, body: CommandRequest):
    sid = _require_session_id(request)
    session = get_session(sid)
    outcome = await run_command(session, body.command, _planner(body.mode), body.allow_regenerate)
    logger.info("command %r -> changed=%s error=%s", body.command, outcome.changed, outcome.error)
    return outcome


@router.post("/undo", response_model=SessionState)
async def undo(request: Request):
    sid = _require_session_id(request)
    session = get_session(sid)
    session.undo()
    return session.get()


@router.post("/redo", response_model=SessionState)
async def redo(request: Request):
    sid = _require_session_id(request)
    session = get_session(sid)
    session.redo()
    return session.get()


@router.post("/reset", response_model=SessionState)
async def reset(request: Request):
    sid = _require_session_id(request)
    session = get_session(sid)
    session.reset()
    return session.get()
