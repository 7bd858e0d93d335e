"""Engine configuration resolved from the environment."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Optional


DEFAULT_ACTION_TIMEOUT_MS = 10_000
DEFAULT_MAX_WALK_STEPS = 1_000


def _env_int(name: str, default: int) -> int:
    raw = str(os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    raw = str(os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineConfig:
    action_timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS
    max_walk_steps: int = DEFAULT_MAX_WALK_STEPS
    http_actions_enabled: bool = False

    @classmethod
    def from_env(cls) -> "EngineConfig":
        return cls(
            action_timeout_ms=_env_int("CONVOFLOW_ACTION_TIMEOUT_MS", DEFAULT_ACTION_TIMEOUT_MS),
            max_walk_steps=_env_int("CONVOFLOW_MAX_WALK_STEPS", DEFAULT_MAX_WALK_STEPS),
            http_actions_enabled=_env_bool("CONVOFLOW_HTTP_ACTIONS", False),
        )


def resolve_log_level_from_env(default: str = "warning") -> str:
    raw = str(os.getenv("CONVOFLOW_LOG_LEVEL") or "").strip()
    return raw or default


def resolve_flows_dir(base: Optional[str] = None) -> Path:
    """Directory where the dev backend persists flow JSON files."""
    raw = base if base is not None else (os.getenv("CONVOFLOW_FLOWS_DIR") or "")
    p = Path(str(raw)).expanduser() if str(raw).strip() else Path("./flows")
    p = p.resolve()
    p.mkdir(parents=True, exist_ok=True)
    return p
