"""FlowEngine - the conversational state machine.

The engine is stateless between calls: every entry point receives a
FlowState value and returns an ExecutionResult carrying a new one. The
caller's FlowState is never mutated.

A call walks the graph forward until it parks on a question
(`awaiting-answer`), reaches an end node (`complete`) or hits a fatal
condition (`errored`). Fatal conditions are reported on the result, never
raised.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Optional

from .compiler import CompiledFlow, compile_flow
from .config import EngineConfig
from .errors import BranchResolutionError, DefinitionError, FlowError
from .invoker import ActionInvoker, NullActionInvoker
from .adapters.variable_adapter import set_by_path
from .visual.interfaces import validate_flow
from .visual.models import (
    EngineError,
    ExecutionResult,
    FlowDefinition,
    FlowState,
    NextQuestion,
    SessionStatus,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class FlowEngine:
    """Interprets one FlowDefinition for any number of independent sessions.

    Example:
        >>> engine = FlowEngine(flow)
        >>> result = engine.initialize()
        >>> result.nextQuestion.text
        'What is your name?'
        >>> result = engine.process_user_response(result.flowState, "Alice")
        >>> result.isComplete, result.flowState.variables
        (True, {'name': 'Alice'})
    """

    def __init__(
        self,
        flow: FlowDefinition,
        invoker: Optional[ActionInvoker] = None,
        config: Optional[EngineConfig] = None,
    ):
        """Initialize a FlowEngine.

        Args:
            flow: The flow definition to interpret (read-only, shareable).
            invoker: External action invoker. Without one, API/webhook calls
                fail into their `error` branch and no network access happens.
            config: Engine limits and defaults. Defaults to `EngineConfig()`.
        """
        self.flow = flow
        self.invoker = invoker or NullActionInvoker()
        self.config = config or EngineConfig()
        self._compiled: Optional[CompiledFlow] = None

    def validate(self) -> ValidationResult:
        return validate_flow(self.flow)

    def _compile(self) -> CompiledFlow:
        if self._compiled is None:
            self._compiled = compile_flow(self.flow, invoker=self.invoker, config=self.config)
        return self._compiled

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def initialize(self) -> ExecutionResult:
        """Start a new session: seed variable defaults and walk from the start node."""
        state = FlowState()
        try:
            compiled = self._compile()
            for variable in self.flow.variables:
                if variable.defaultValue is not None:
                    set_by_path(state.variables, variable.name, copy.deepcopy(variable.defaultValue))
            question = self._walk(compiled, state, compiled.start_node_id)
        except FlowError as e:
            return self._fail(state, e)
        logger.info(f"Flow '{self.flow.id}': session initialized ({state.status.value})")
        return self._result(state, question)

    def process_user_response(self, state: FlowState, answer: Any) -> ExecutionResult:
        """Accept one answer for the question the session is parked on.

        Only meaningful while the state is `awaiting-answer`; complete and
        errored sessions are returned unchanged.
        """
        state = state.model_copy(deep=True)
        if state.status != SessionStatus.AWAITING_ANSWER:
            return self._result(state, None)

        try:
            compiled = self._compile()
            handler = compiled.answer_handler_for(state.currentNodeId)
            plan = handler(state, answer)
            if plan.question is not None:
                logger.debug(f"Node {plan.node_id}: answer rejected, re-prompting")
                return self._result(state, plan.question)
            state.status = SessionStatus.RUNNING
            question = self._walk(compiled, state, plan.next_node)
        except FlowError as e:
            return self._fail(state, e)
        return self._result(state, question)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _walk(self, compiled: CompiledFlow, state: FlowState, node_id: Optional[str]) -> Optional[NextQuestion]:
        """Run nodes until a question, an end node, or an error."""
        current = node_id
        steps = 0
        while current is not None:
            steps += 1
            if steps > self.config.max_walk_steps:
                raise BranchResolutionError(
                    f"Walk exceeded {self.config.max_walk_steps} steps without reaching a question or end node",
                    node_id=current,
                )
            state.currentNodeId = current
            plan = compiled.handler_for(current)(state)

            if plan.question is not None:
                state.status = SessionStatus.AWAITING_ANSWER
                return plan.question
            if plan.complete:
                state.status = SessionStatus.COMPLETE
                state.isComplete = True
                logger.info(f"Flow '{self.flow.id}': session complete at node {current}")
                return None

            logger.debug(f"Node {current} -> {plan.next_node}")
            current = plan.next_node

        raise BranchResolutionError("Walk stopped without a next node", node_id=state.currentNodeId)

    def _fail(self, state: FlowState, error: FlowError) -> ExecutionResult:
        kind = "definition" if isinstance(error, DefinitionError) else "branch_resolution"
        details = list(error.errors) if isinstance(error, DefinitionError) else []
        logger.warning(f"Flow '{self.flow.id}': {kind} error: {error}")
        state.status = SessionStatus.ERRORED
        state.isComplete = False
        state.error = EngineError(kind=kind, message=error.message, nodeId=error.node_id, details=details)
        return self._result(state, None)

    def _result(self, state: FlowState, question: Optional[NextQuestion]) -> ExecutionResult:
        return ExecutionResult(
            nextQuestion=question if state.status == SessionStatus.AWAITING_ANSWER else None,
            isComplete=state.isComplete,
            status=state.status,
            messages=list(state.messages),
            flowState=state,
            error=state.error,
        )
