"""Control-flow adapters: condition evaluation and edge resolution.

Binary conditions branch through the `true` / `false` handles. Multi-output
conditions evaluate their outputs in declared order and branch through the
handle named after the first matching output's `value`. Nodes without
branching semantics follow their generic edges, honouring optional edge
guards in declaration order.

Key constraint: an unmatched branch is never guessed. It raises
`BranchResolutionError`, which the engine turns into an errored session.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Collection, Dict, List, Optional

from ..errors import BranchResolutionError
from ..visual.builtins import evaluate_rule
from ..visual.models import (
    HANDLE_FALSE,
    HANDLE_TRUE,
    Condition,
    ConditionNode,
    ConditionOutput,
    FlowEdge,
    FlowState,
    NextQuestion,
)


@dataclass
class StepPlan:
    """What the walk does after a node ran.

    Exactly one of `next_node`, `question` or `complete` is meaningful.
    """

    node_id: str
    next_node: Optional[str] = None
    question: Optional[NextQuestion] = None
    complete: bool = False


def _combine(results: List[bool], operator: str) -> bool:
    if operator == "or":
        return any(results)
    return all(results)


def evaluate(condition: Optional[Condition], variables: Dict[str, Any]) -> bool:
    """Evaluate a binary condition. No rules means the condition passes."""
    if condition is None or not condition.rules:
        return True
    results = [evaluate_rule(rule, variables) for rule in condition.rules]
    return _combine(results, condition.operator)


def _output_matches(output: ConditionOutput, variables: Dict[str, Any]) -> bool:
    if not output.rules:
        return True
    results = [evaluate_rule(rule, variables) for rule in output.rules]
    return _combine(results, output.operator)


def select_output(condition: Condition, variables: Dict[str, Any]) -> Optional[ConditionOutput]:
    """Return the first output (declared order) whose rules pass.

    Outputs flagged `isDefault` are only considered when nothing else matches.
    Returns None when no output applies.
    """
    fallback: Optional[ConditionOutput] = None
    for output in condition.outputs:
        if output.isDefault:
            if fallback is None:
                fallback = output
            continue
        if _output_matches(output, variables):
            return output
    return fallback


def edge_for_handle(edges: List[FlowEdge], *handles: Optional[str]) -> Optional[FlowEdge]:
    """First edge (declaration order) whose sourceHandle equals one of `handles`."""
    wanted = [h for h in handles if isinstance(h, str) and h]
    for handle in wanted:
        for edge in edges:
            if edge.sourceHandle == handle:
                return edge
    return None


def generic_edges(edges: List[FlowEdge], reserved: Collection[str] = ()) -> List[FlowEdge]:
    return [e for e in edges if e.sourceHandle not in reserved]


def pick_generic_target(
    node_id: str,
    edges: List[FlowEdge],
    variables: Dict[str, Any],
    reserved: Collection[str] = (),
) -> str:
    """Follow the first generic edge whose guard passes (unguarded edges always pass)."""
    candidates = generic_edges(edges, reserved)
    if not candidates:
        raise BranchResolutionError("Node has no outgoing edge to follow", node_id=node_id)
    for edge in candidates:
        if evaluate(edge.condition, variables):
            return edge.target
    raise BranchResolutionError("No outgoing edge guard matched", node_id=node_id)


def create_passthrough_handler(
    *,
    node_id: str,
    edges: List[FlowEdge],
) -> Callable[[FlowState], StepPlan]:
    """Create a handler for nodes that only advance (e.g. `start`)."""

    def handler(state: FlowState) -> StepPlan:
        return StepPlan(node_id=node_id, next_node=pick_generic_target(node_id, edges, state.variables))

    return handler


def create_condition_node_handler(
    *,
    node: ConditionNode,
    edges: List[FlowEdge],
) -> Callable[[FlowState], StepPlan]:
    """Create a handler for `condition` nodes (binary or multi-output)."""
    node_id = node.id
    condition = node.data.condition
    multi = node.data.is_multi_output

    def handler(state: FlowState) -> StepPlan:
        if multi:
            output = select_output(condition, state.variables)
            if output is None:
                raise BranchResolutionError("No condition output matched the current state", node_id=node_id)
            edge = edge_for_handle(edges, output.value, output.id)
            if edge is None:
                raise BranchResolutionError(f"Condition output '{output.value}' has no outgoing edge", node_id=node_id)
            return StepPlan(node_id=node_id, next_node=edge.target)

        handle = HANDLE_TRUE if evaluate(condition, state.variables) else HANDLE_FALSE
        edge = edge_for_handle(edges, handle)
        if edge is None:
            raise BranchResolutionError(f"Condition has no '{handle}' edge", node_id=node_id)
        return StepPlan(node_id=node_id, next_node=edge.target)

    return handler
