"""Web backend models.

Flow documents use the portable models from `convoflow.visual.models` so
other hosts (CLI, workers) can reuse the same JSON schema without importing
the backend package. Only request/response envelopes live here.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, Field

from convoflow.visual.models import (  # noqa: F401
    ExecutionResult,
    FlowDefinition,
    FlowEdge,
    FlowNode,
    FlowSettings,
    FlowState,
    Variable,
)


class FlowCreateRequest(BaseModel):
    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    version: str = "1.0.0"
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)
    variables: List[Variable] = Field(default_factory=list)
    settings: FlowSettings = Field(default_factory=FlowSettings)


class FlowUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    nodes: Optional[List[FlowNode]] = None
    edges: Optional[List[FlowEdge]] = None
    variables: Optional[List[Variable]] = None
    settings: Optional[FlowSettings] = None


class SessionStartRequest(BaseModel):
    flow_id: str


class SessionAnswerRequest(BaseModel):
    answer: Any = None


class SessionResponse(BaseModel):
    session_id: str
    flow_id: str
    result: ExecutionResult


__all__ = [
    "ExecutionResult",
    "FlowCreateRequest",
    "FlowDefinition",
    "FlowEdge",
    "FlowNode",
    "FlowSettings",
    "FlowState",
    "FlowUpdateRequest",
    "SessionAnswerRequest",
    "SessionResponse",
    "SessionStartRequest",
    "Variable",
]
