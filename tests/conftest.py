"""convoflow test bootstrap.

Why this exists:
- Tests import the dev backend as `web.backend.main`, which only resolves
  when the repository root is on `sys.path` (the backend is not part of the
  installed distribution).
- The backend persists flows under `CONVOFLOW_FLOWS_DIR` at import time, so
  the directory is pointed at a throwaway location before any test module
  imports it.
- External actions must never touch the network in unit tests; the
  `FakeInvoker` below records calls and returns canned results.
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest


def _prepend_sys_path(path: Path) -> None:
    p = str(path)
    if p and p not in sys.path:
        sys.path.insert(0, p)


HERE = Path(__file__).resolve()
REPO_ROOT = HERE.parents[1]

_prepend_sys_path(REPO_ROOT)
os.environ.setdefault("CONVOFLOW_FLOWS_DIR", tempfile.mkdtemp(prefix="convoflow-flows-"))


from convoflow.invoker import ActionCall, ActionInvoker, ActionResult  # noqa: E402


class FakeInvoker(ActionInvoker):
    """Records every call; answers from a queue of results (or a fixed one)."""

    def __init__(self, *results: ActionResult, default: Optional[ActionResult] = None):
        self.calls: List[ActionCall] = []
        self._queue = list(results)
        self._default = default or ActionResult(ok=True, status=200, body={})

    def invoke(self, call: ActionCall) -> ActionResult:
        self.calls.append(call)
        if self._queue:
            return self._queue.pop(0)
        return self._default


@pytest.fixture
def fake_invoker() -> FakeInvoker:
    return FakeInvoker()


def make_flow(nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]], **extra: Any) -> Dict[str, Any]:
    """Build a flow document dict (positions are filled in by the models)."""
    doc: Dict[str, Any] = {"id": extra.pop("id", "flow1"), "name": extra.pop("name", "test flow"), "nodes": nodes, "edges": edges}
    doc.update(extra)
    return doc


def edge(source: str, target: str, handle: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    e: Dict[str, Any] = {"id": f"{source}-{handle or 'out'}-{target}", "source": source, "target": target}
    if handle is not None:
        e["sourceHandle"] = handle
    e.update(extra)
    return e
