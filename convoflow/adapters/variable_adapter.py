"""Variable adapters: `{{name}}` interpolation and dotted-path reads/writes.

Design goals:
- Rendering is side-effect free and deterministic for a given FlowState.
- Unknown placeholders render as the empty string (permissive policy); the
  engine treats undeclared variables as absent, never as errors.
- Writes go through `set_by_path` so `profile.email` creates nested mappings.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Mapping, Optional, Union

from ..errors import DefinitionError
from ..visual.builtins import as_text, get_by_path
from ..visual.models import FlowState


PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_.\-]*)\s*\}\}")


def set_by_path(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    """Set a dotted path on a dict, creating intermediate dicts as needed."""
    parts = [p for p in dotted_key.split(".") if p]
    if not parts:
        raise DefinitionError(f"Invalid variable name '{dotted_key}'")
    cur: Dict[str, Any] = target
    for part in parts[:-1]:
        nxt = cur.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[part] = nxt
        cur = nxt
    cur[parts[-1]] = value


def stringify(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return as_text(value) or ""


def render(template: Optional[str], state: Union[FlowState, Mapping[str, Any]]) -> str:
    """Substitute `{{identifier}}` tokens with values from the flow state."""
    if not template:
        return ""
    variables = state.variables if isinstance(state, FlowState) else state

    def _sub(match: "re.Match[str]") -> str:
        return stringify(get_by_path(variables, match.group(1)))

    return PLACEHOLDER_RE.sub(_sub, str(template))


def render_value(value: Any, state: Union[FlowState, Mapping[str, Any]]) -> Any:
    """Render every string leaf of a JSON-like value."""
    if isinstance(value, str):
        return render(value, state)
    if isinstance(value, dict):
        return {k: render_value(v, state) for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(v, state) for v in value]
    return value
