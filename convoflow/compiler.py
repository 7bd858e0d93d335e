"""Flow compiler - converts a FlowDefinition into per-node handlers.

Each node is turned into a handler `(FlowState) -> StepPlan` by the
adapters, and each question node additionally gets an answer handler
`(FlowState, answer) -> StepPlan`. The compiled form is read-only and can be
shared by every session of the same flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .adapters.control_adapter import StepPlan, create_condition_node_handler, create_passthrough_handler
from .adapters.effect_adapter import (
    create_action_handler,
    create_answer_handler,
    create_end_handler,
    create_http_call_handler,
    create_message_handler,
    create_question_handler,
    create_wait_handler,
)
from .config import EngineConfig
from .errors import BranchResolutionError, DefinitionError
from .invoker import ActionInvoker, NullActionInvoker
from .visual.interfaces import validate_flow
from .visual.models import (
    ActionNode,
    ApiCallNode,
    CollectInputNode,
    ConditionNode,
    EndNode,
    FlowDefinition,
    FlowEdge,
    FlowState,
    MessageNode,
    QuestionNode,
    StartNode,
    WaitNode,
    WebhookNode,
)

NodeHandler = Callable[[FlowState], StepPlan]
AnswerHandler = Callable[[FlowState, Any], StepPlan]


@dataclass
class CompiledFlow:
    flow: FlowDefinition
    start_node_id: str
    handlers: Dict[str, NodeHandler] = field(default_factory=dict)
    answer_handlers: Dict[str, AnswerHandler] = field(default_factory=dict)
    outgoing: Dict[str, List[FlowEdge]] = field(default_factory=dict)

    def handler_for(self, node_id: Optional[str]) -> NodeHandler:
        handler = self.handlers.get(node_id or "")
        if handler is None:
            raise BranchResolutionError(f"Unknown node '{node_id}'", node_id=node_id)
        return handler

    def answer_handler_for(self, node_id: Optional[str]) -> AnswerHandler:
        handler = self.answer_handlers.get(node_id or "")
        if handler is None:
            raise BranchResolutionError(f"Node '{node_id}' is not a question", node_id=node_id)
        return handler


def _create_node_handler(
    node: Any,
    edges: List[FlowEdge],
    *,
    invoker: ActionInvoker,
    config: EngineConfig,
) -> NodeHandler:
    if isinstance(node, StartNode):
        return create_passthrough_handler(node_id=node.id, edges=edges)
    if isinstance(node, MessageNode):
        return create_message_handler(node=node, edges=edges)
    if isinstance(node, (QuestionNode, CollectInputNode)):
        return create_question_handler(node=node)
    if isinstance(node, ConditionNode):
        return create_condition_node_handler(node=node, edges=edges)
    if isinstance(node, ActionNode):
        return create_action_handler(node=node, edges=edges, invoker=invoker, default_timeout_ms=config.action_timeout_ms)
    if isinstance(node, WaitNode):
        return create_wait_handler(node=node, edges=edges)
    if isinstance(node, (ApiCallNode, WebhookNode)):
        return create_http_call_handler(node=node, edges=edges, invoker=invoker, default_timeout_ms=config.action_timeout_ms)
    if isinstance(node, EndNode):
        return create_end_handler(node=node)
    raise BranchResolutionError(f"Unsupported node type '{getattr(node, 'type', None)}'", node_id=getattr(node, "id", None))


def compile_flow(
    flow: FlowDefinition,
    *,
    invoker: Optional[ActionInvoker] = None,
    config: Optional[EngineConfig] = None,
) -> CompiledFlow:
    """Compile a FlowDefinition into executable node handlers.

    Raises:
        DefinitionError: If `validate_flow` reports any error.
    """
    result = validate_flow(flow)
    if not result.isValid:
        errors = [e for e in result.errors if e.severity == "error"]
        raise DefinitionError(
            f"Invalid flow: {'; '.join(e.message for e in errors)}",
            errors=[e.model_dump(exclude_none=True) for e in errors],
        )

    invoker = invoker or NullActionInvoker()
    config = config or EngineConfig()

    outgoing: Dict[str, List[FlowEdge]] = {}
    for edge in flow.edges:
        outgoing.setdefault(edge.source, []).append(edge)

    start = next(n for n in flow.nodes if isinstance(n, StartNode))
    compiled = CompiledFlow(flow=flow, start_node_id=start.id, outgoing=outgoing)

    for node in flow.nodes:
        edges = outgoing.get(node.id, [])
        compiled.handlers[node.id] = _create_node_handler(node, edges, invoker=invoker, config=config)
        if isinstance(node, (QuestionNode, CollectInputNode)):
            compiled.answer_handlers[node.id] = create_answer_handler(
                node=node,
                edges=edges,
                allow_skip=flow.settings.allowSkip,
            )
    return compiled
