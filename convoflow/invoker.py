"""External action invoker: the engine's only I/O boundary.

Implementations must never raise. Network failures, timeouts and non-2xx
responses are all normalized into `ActionResult(ok=False, error=...)` so the
engine can route them through a node's `error` edge.

Retries, if wanted, belong in an invoker implementation, never in the
engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import json
import logging
import socket
from typing import Any, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .config import DEFAULT_ACTION_TIMEOUT_MS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionCall:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    status: Optional[int] = None
    body: Any = None
    error: Optional[str] = None


class ActionInvoker(ABC):
    """Interface injected into the engine to perform API/webhook calls."""

    @abstractmethod
    def invoke(self, call: ActionCall) -> ActionResult:
        """Perform the call. Must not raise."""


class NullActionInvoker(ActionInvoker):
    """Default invoker: performs no network access and always fails."""

    def invoke(self, call: ActionCall) -> ActionResult:
        return ActionResult(ok=False, error=f"No action invoker configured for {call.method} {call.url}")


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return None
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


class HttpActionInvoker(ActionInvoker):
    """`urllib`-backed invoker with a hard per-call timeout."""

    def __init__(self, default_headers: Optional[Dict[str, str]] = None):
        self.default_headers = dict(default_headers or {})

    def _build_request(self, call: ActionCall) -> Request:
        method = str(call.method or "GET").strip().upper() or "GET"
        headers = {"Accept": "application/json", **self.default_headers, **dict(call.headers or {})}
        data: Optional[bytes] = None
        if call.body is not None and method not in ("GET", "HEAD"):
            if isinstance(call.body, (bytes, bytearray)):
                data = bytes(call.body)
            elif isinstance(call.body, str):
                data = call.body.encode("utf-8")
            else:
                data = json.dumps(call.body, ensure_ascii=False).encode("utf-8")
                headers.setdefault("Content-Type", "application/json")
        return Request(url=call.url, data=data, method=method, headers=headers)

    def invoke(self, call: ActionCall) -> ActionResult:
        timeout_s = max(float(call.timeout_ms or DEFAULT_ACTION_TIMEOUT_MS), 1.0) / 1000.0
        try:
            req = self._build_request(call)
            with urlopen(req, timeout=timeout_s) as resp:
                status = int(getattr(resp, "status", 200) or 200)
                body = _decode_body(resp.read())
        except HTTPError as e:
            detail: Any = None
            try:
                detail = _decode_body(e.read())
            except Exception:
                detail = None
            logger.warning(f"{call.method} {call.url} returned HTTP {e.code}")
            return ActionResult(ok=False, status=e.code, body=detail, error=f"HTTP {e.code}: {e.reason}")
        except (socket.timeout, TimeoutError):
            logger.warning(f"{call.method} {call.url} timed out after {call.timeout_ms}ms")
            return ActionResult(ok=False, error=f"Request timed out after {call.timeout_ms}ms")
        except URLError as e:
            logger.warning(f"{call.method} {call.url} failed: {e.reason}")
            return ActionResult(ok=False, error=f"Request failed: {e.reason}")
        except Exception as e:
            logger.warning(f"{call.method} {call.url} failed: {e}")
            return ActionResult(ok=False, error=str(e))

        if not 200 <= status < 300:
            return ActionResult(ok=False, status=status, body=body, error=f"HTTP {status}")
        return ActionResult(ok=True, status=status, body=body)
