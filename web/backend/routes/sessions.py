"""Conversation session routes.

Sessions are held in memory, one `FlowRunner` per session id. Routes are
plain `def` handlers: an answer may trigger a blocking external call, so
FastAPI runs them in its worker threadpool.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple
import uuid

from fastapi import APIRouter, HTTPException

from convoflow.config import EngineConfig
from convoflow.invoker import ActionInvoker, HttpActionInvoker
from convoflow.runner import FlowRunner

from ..models import SessionAnswerRequest, SessionResponse, SessionStartRequest
from .flows import get_flow_or_404

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sessions", tags=["sessions"])

# session_id -> (flow_id, runner)
_sessions: Dict[str, Tuple[str, FlowRunner]] = {}


def _invoker_from_env(config: EngineConfig) -> Optional[ActionInvoker]:
    if config.http_actions_enabled:
        return HttpActionInvoker()
    return None


def _get_session_or_404(session_id: str) -> Tuple[str, FlowRunner]:
    entry = _sessions.get(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return entry


@router.post("", response_model=SessionResponse)
def start_session(request: SessionStartRequest):
    """Start a new conversation on a saved flow."""
    flow = get_flow_or_404(request.flow_id)
    config = EngineConfig.from_env()
    runner = FlowRunner(flow, invoker=_invoker_from_env(config), config=config)
    result = runner.initialize()

    session_id = str(uuid.uuid4())
    _sessions[session_id] = (flow.id, runner)
    logger.info(f"Started session {session_id} on flow '{flow.id}' ({result.status.value})")
    return SessionResponse(session_id=session_id, flow_id=flow.id, result=result)


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(session_id: str):
    """Return the latest result of a session."""
    flow_id, runner = _get_session_or_404(session_id)
    return SessionResponse(session_id=session_id, flow_id=flow_id, result=runner.last_result)


@router.post("/{session_id}/answer", response_model=SessionResponse)
def answer_session(session_id: str, request: SessionAnswerRequest):
    """Feed one user answer to a session."""
    flow_id, runner = _get_session_or_404(session_id)
    if not runner.is_waiting():
        raise HTTPException(status_code=409, detail=f"Session '{session_id}' is not awaiting an answer")
    result = runner.process_user_response(request.answer)
    return SessionResponse(session_id=session_id, flow_id=flow_id, result=result)


@router.post("/{session_id}/reset", response_model=SessionResponse)
def reset_session(session_id: str):
    """Discard the session state and start over from the start node."""
    flow_id, runner = _get_session_or_404(session_id)
    result = runner.reset()
    logger.info(f"Reset session {session_id}")
    return SessionResponse(session_id=session_id, flow_id=flow_id, result=result)


@router.delete("/{session_id}")
def delete_session(session_id: str):
    _get_session_or_404(session_id)
    del _sessions[session_id]
    return {"status": "deleted", "id": session_id}
