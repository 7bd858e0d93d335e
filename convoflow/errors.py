"""Error types raised inside the flow engine.

These never cross the engine boundary: `FlowEngine` converts them into an
`EngineError` on the returned `ExecutionResult` so a host can render a
"something went wrong" state without corrupting the session transcript.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class FlowError(Exception):
    """Base error with optional node location."""

    message: str
    node_id: Optional[str] = None

    def __str__(self) -> str:
        if self.node_id:
            return f"{self.message} (node {self.node_id})"
        return self.message


@dataclass
class DefinitionError(FlowError):
    """The flow definition is malformed; execution must not start."""

    errors: List[Dict[str, Any]] = field(default_factory=list)


class BranchResolutionError(FlowError):
    """No transition could be resolved from the current node."""
