"""FlowRunner - drives one conversational session on top of a FlowEngine."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from .config import EngineConfig
from .engine import FlowEngine
from .invoker import ActionInvoker
from .visual.models import ExecutionResult, FlowDefinition, FlowState, SessionStatus


class FlowRunner:
    """Holds the FlowState of a single session.

    FlowRunner provides the "engine instance" surface hosts usually want:
    - `initialize()` starts (or restarts) the session
    - `process_user_response(answer)` feeds one answer
    - `reset()` discards the session and initializes again

    Example:
        >>> runner = FlowRunner(flow)
        >>> result = runner.initialize()
        >>> result = runner.process_user_response("Alice")
        >>> runner.is_complete()
        True
    """

    def __init__(
        self,
        flow: FlowDefinition,
        invoker: Optional[ActionInvoker] = None,
        config: Optional[EngineConfig] = None,
        *,
        engine: Optional[FlowEngine] = None,
    ):
        """Initialize a FlowRunner.

        Args:
            flow: The flow definition to run
            invoker: Optional external action invoker (ignored when `engine` is given)
            config: Optional engine configuration (ignored when `engine` is given)
            engine: Share an existing FlowEngine between sessions of the same flow
        """
        self.flow = flow
        self.engine = engine or FlowEngine(flow, invoker=invoker, config=config)
        self._state: Optional[FlowState] = None
        self._last: Optional[ExecutionResult] = None

    @property
    def last_result(self) -> Optional[ExecutionResult]:
        return self._last

    def initialize(self) -> ExecutionResult:
        result = self.engine.initialize()
        self._state = result.flowState
        self._last = result
        return result

    def process_user_response(self, answer: Any) -> ExecutionResult:
        """Feed one answer to the session.

        Raises:
            ValueError: If the session has not been initialized
        """
        if self._state is None:
            raise ValueError("No active session. Call initialize() first.")
        result = self.engine.process_user_response(self._state, answer)
        self._state = result.flowState
        self._last = result
        return result

    def reset(self) -> ExecutionResult:
        self._state = None
        self._last = None
        return self.initialize()

    def run(self, answers: Iterable[Any]) -> ExecutionResult:
        """Initialize and feed answers until the session stops waiting.

        Remaining answers are ignored once the session completes or errors.
        """
        result = self.initialize()
        for answer in answers:
            if result.status != SessionStatus.AWAITING_ANSWER:
                break
            result = self.process_user_response(answer)
        return result

    def get_state(self) -> Optional[FlowState]:
        """Get a copy of the current session state (None before initialize)."""
        if self._state is None:
            return None
        return self._state.model_copy(deep=True)

    def _status(self) -> Optional[SessionStatus]:
        return self._state.status if self._state is not None else None

    def is_waiting(self) -> bool:
        return self._status() == SessionStatus.AWAITING_ANSWER

    def is_complete(self) -> bool:
        return self._status() == SessionStatus.COMPLETE

    def is_failed(self) -> bool:
        return self._status() == SessionStatus.ERRORED

    def __repr__(self) -> str:
        status = self._status()
        label = status.value if status is not None else "not started"
        return f"FlowRunner(flow={self.flow.id!r}, status={label!r})"
