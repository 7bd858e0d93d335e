"""FlowDefinition validation (portable host validation).

`validate_flow` is run once before any execution. It reports structural
problems as a list of `ValidationError`s with a severity: `error` entries
make the definition unusable, `warning` entries flag branches that can
only fail at runtime (e.g. an api-call node without an `error` edge).
"""

from __future__ import annotations

from collections import deque
import json
from pathlib import Path
import re
from typing import Any, Dict, Iterable, List, Mapping, Set, Union

from pydantic import ValidationError as PydanticValidationError

from ..adapters.effect_adapter import option_handles, parse_action_http_config, set_variable_name
from ..errors import DefinitionError
from .models import (
    HANDLE_ERROR,
    HANDLE_FALSE,
    HANDLE_MAX_RETRIES,
    HANDLE_SUCCESS,
    HANDLE_TRUE,
    QUESTION_NODE_TYPES,
    ActionNode,
    ApiCallNode,
    ConditionNode,
    EndNode,
    FlowDefinition,
    FlowEdge,
    HttpCallConfig,
    StartNode,
    ValidationError,
    ValidationResult,
    WebhookNode,
)


FlowSource = Union[FlowDefinition, Mapping[str, Any], str, bytes, Path]


def _schema_errors(exc: PydanticValidationError) -> List[ValidationError]:
    out: List[ValidationError] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        out.append(ValidationError(type="schema", message=f"{loc}: {err.get('msg', 'invalid value')}"))
    return out


def load_flow(source: FlowSource) -> FlowDefinition:
    """Parse a FlowDefinition from a model, mapping, JSON text/bytes or a JSON file path.

    Raises:
        DefinitionError: when the document cannot be parsed into a FlowDefinition.
    """
    if isinstance(source, FlowDefinition):
        return source
    data: Any = source
    try:
        if isinstance(source, Path):
            data = json.loads(source.read_text(encoding="utf-8"))
        elif isinstance(source, (str, bytes)):
            data = json.loads(source)
    except (OSError, ValueError) as e:
        raise DefinitionError(f"Could not read flow definition: {e}")
    if not isinstance(data, Mapping):
        raise DefinitionError("Flow definition must be a JSON object")
    try:
        return FlowDefinition.model_validate(dict(data))
    except PydanticValidationError as e:
        errors = _schema_errors(e)
        raise DefinitionError(
            f"Invalid flow definition ({len(errors)} schema errors)",
            errors=[err.model_dump(exclude_none=True) for err in errors],
        )


def _outgoing(edges: Iterable[FlowEdge]) -> Dict[str, List[FlowEdge]]:
    out: Dict[str, List[FlowEdge]] = {}
    for edge in edges:
        out.setdefault(edge.source, []).append(edge)
    return out


def _reachable(flow: FlowDefinition, start_id: str) -> Set[str]:
    adjacency: Dict[str, List[str]] = {}
    for edge in flow.edges:
        adjacency.setdefault(edge.source, []).append(edge.target)
    for node in flow.nodes:
        if isinstance(node, QUESTION_NODE_TYPES):
            for opt in node.data.options:
                if opt.nextNodeId:
                    adjacency.setdefault(node.id, []).append(opt.nextNodeId)

    seen = {start_id}
    queue = deque([start_id])
    while queue:
        current = queue.popleft()
        for nxt in adjacency.get(current, []):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


def _check_condition(node: ConditionNode, outs: List[FlowEdge], errors: List[ValidationError]) -> None:
    handles = {e.sourceHandle for e in outs}
    if node.data.is_multi_output:
        outputs = node.data.condition.outputs
        if not outputs:
            errors.append(ValidationError(type="missing_branch", nodeId=node.id, message="Multi-output condition has no outputs"))
            return
        if sum(1 for o in outputs if o.isDefault) > 1:
            errors.append(ValidationError(type="multiple_default", nodeId=node.id, message="Condition declares more than one default output"))
        covered = [o for o in outputs if o.value in handles or o.id in handles]
        if not covered:
            errors.append(ValidationError(type="missing_branch", nodeId=node.id, message="No condition output is connected to an edge"))
        for output in outputs:
            if output not in covered:
                errors.append(
                    ValidationError(
                        type="missing_branch",
                        nodeId=node.id,
                        severity="warning",
                        message=f"Condition output '{output.value}' has no outgoing edge",
                    )
                )
        if not any(o.isDefault for o in outputs):
            errors.append(
                ValidationError(
                    type="missing_default_output",
                    nodeId=node.id,
                    severity="warning",
                    message="Condition has no default output; an unmatched state will stop the session",
                )
            )
        return

    present = [h for h in (HANDLE_TRUE, HANDLE_FALSE) if h in handles]
    if not present:
        errors.append(ValidationError(type="missing_branch", nodeId=node.id, message="Condition has neither a 'true' nor a 'false' edge"))
        return
    for handle in (HANDLE_TRUE, HANDLE_FALSE):
        if handle not in handles:
            errors.append(
                ValidationError(
                    type="missing_branch",
                    nodeId=node.id,
                    severity="warning",
                    message=f"Condition has no '{handle}' edge",
                )
            )


def _is_variable_path(name: Any) -> bool:
    return any(part for part in str(name or "").split("."))


def _check_variable_name(name: Any, node_id: Any, what: str, errors: List[ValidationError]) -> None:
    if not _is_variable_path(name):
        errors.append(ValidationError(type="invalid_variable_name", nodeId=node_id, message=f"{what} '{name}' is not a valid variable name"))


def _check_http(node_id: str, config: HttpCallConfig, outs: List[FlowEdge], errors: List[ValidationError]) -> None:
    if not config.url.strip():
        errors.append(ValidationError(type="missing_url", nodeId=node_id, message="External call requires a URL"))
    for variable_name in config.responseMapping:
        _check_variable_name(variable_name, node_id, "responseMapping target", errors)
    if config.resultVariable:
        _check_variable_name(config.resultVariable, node_id, "resultVariable", errors)
    if not any(e.sourceHandle == HANDLE_ERROR for e in outs):
        errors.append(
            ValidationError(
                type="missing_error_branch",
                nodeId=node_id,
                severity="warning",
                message="External call has no 'error' edge; a failed call will stop the session",
            )
        )
    elif not any(e.sourceHandle != HANDLE_ERROR for e in outs):
        errors.append(
            ValidationError(
                type="missing_success_branch",
                nodeId=node_id,
                severity="warning",
                message=f"External call has only an 'error' edge; a successful call will stop the session (add a '{HANDLE_SUCCESS}' edge)",
            )
        )


def _check_action(node: ActionNode, outs: List[FlowEdge], errors: List[ValidationError]) -> None:
    action = node.data.action
    if action.type == "set_variable":
        name = set_variable_name(action.config)
        if not name:
            errors.append(ValidationError(type="invalid_action", nodeId=node.id, message="Set variable action requires a variable name"))
        else:
            _check_variable_name(name, node.id, "Set variable target", errors)
        return
    if action.type in ("call_api", "send_webhook"):
        try:
            config = parse_action_http_config(node)
        except PydanticValidationError as e:
            for err in _schema_errors(e):
                errors.append(ValidationError(type="invalid_action", nodeId=node.id, message=err.message))
            return
        _check_http(node.id, config, outs, errors)


def _check_default_branch(node: Any, outs: List[FlowEdge], allow_skip: bool, errors: List[ValidationError]) -> None:
    data = node.data
    reserved = set(option_handles(data.options)) | {HANDLE_MAX_RETRIES}
    if any(e.sourceHandle not in reserved for e in outs):
        return

    if data.is_choice and not data.allowFreeText:
        handled = {e.sourceHandle for e in outs}
        unrouted = [o.id for o in data.options if not o.nextNodeId and o.id not in handled and o.value not in handled]
        if unrouted:
            errors.append(
                ValidationError(
                    type="missing_default_branch",
                    nodeId=node.id,
                    message=f"Options {', '.join(unrouted)} have no route and the question has no default edge",
                )
            )
            return
        if allow_skip:
            errors.append(
                ValidationError(
                    type="missing_default_branch",
                    nodeId=node.id,
                    severity="warning",
                    message="Question has no default edge; skipping it will stop the session",
                )
            )
        return

    errors.append(ValidationError(type="missing_default_branch", nodeId=node.id, message="Question has no default (unhandled) outgoing edge"))


def _check_question(node: Any, outs: List[FlowEdge], node_ids: Set[str], allow_skip: bool, errors: List[ValidationError]) -> None:
    data = node.data
    if data.variableName:
        _check_variable_name(data.variableName, node.id, "variableName", errors)
    for rule in data.validation:
        if rule.type == "pattern":
            try:
                re.compile(str(rule.value or ""))
            except re.error as e:
                errors.append(ValidationError(type="invalid_pattern", nodeId=node.id, message=f"Invalid validation pattern: {e}"))
    for opt in data.options:
        if opt.nextNodeId and opt.nextNodeId not in node_ids:
            errors.append(
                ValidationError(
                    type="dangling_option",
                    nodeId=node.id,
                    message=f"Option '{opt.id}' points to unknown node '{opt.nextNodeId}'",
                )
            )
    if data.questionType in ("multiple-choice", "yes-no") and not data.options:
        errors.append(ValidationError(type="missing_options", nodeId=node.id, severity="warning", message="Choice question has no options"))
    if data.maxRetries is not None and not any(e.sourceHandle == HANDLE_MAX_RETRIES for e in outs):
        errors.append(
            ValidationError(
                type="missing_branch",
                nodeId=node.id,
                severity="warning",
                message="maxRetries is set but there is no 'max-retries' edge; the question will re-prompt indefinitely",
            )
        )
    _check_default_branch(node, outs, allow_skip, errors)


def validate_flow(flow: Union[FlowDefinition, Mapping[str, Any]]) -> ValidationResult:
    """Validate a flow definition.

    Returns a ValidationResult; `isValid` is False when any `error` entry exists.
    """
    if not isinstance(flow, FlowDefinition):
        try:
            flow = FlowDefinition.model_validate(dict(flow))
        except PydanticValidationError as e:
            return ValidationResult(isValid=False, errors=_schema_errors(e))

    errors: List[ValidationError] = []
    node_ids: Set[str] = set()
    for node in flow.nodes:
        if node.id in node_ids:
            errors.append(ValidationError(type="duplicate_node", nodeId=node.id, message=f"Duplicate node id '{node.id}'"))
        node_ids.add(node.id)

    for variable in flow.variables:
        _check_variable_name(variable.name, None, "Variable", errors)

    starts = [n for n in flow.nodes if isinstance(n, StartNode)]
    if not starts:
        errors.append(ValidationError(type="missing_start", message="Flow must include a start node"))
    elif len(starts) > 1:
        errors.append(ValidationError(type="multiple_start", message=f"Flow must include exactly one start node (found {len(starts)})"))

    if not any(isinstance(n, EndNode) for n in flow.nodes):
        errors.append(ValidationError(type="missing_end", severity="warning", message="Flow should have an end node"))

    for edge in flow.edges:
        for endpoint in ("source", "target"):
            ref = getattr(edge, endpoint)
            if ref not in node_ids:
                errors.append(
                    ValidationError(
                        type="dangling_edge",
                        edgeId=edge.id,
                        message=f"Edge '{edge.id}' {endpoint} '{ref}' is not a node in this flow",
                    )
                )

    start_ids = {n.id for n in starts}
    for edge in flow.edges:
        if edge.target in start_ids:
            errors.append(
                ValidationError(type="start_has_incoming", edgeId=edge.id, nodeId=edge.target, message="Start node cannot have incoming edges")
            )

    outgoing = _outgoing(flow.edges)
    for node in flow.nodes:
        outs = outgoing.get(node.id, [])
        if isinstance(node, EndNode):
            if outs:
                errors.append(ValidationError(type="end_has_outgoing", nodeId=node.id, severity="warning", message="End node edges are never followed"))
            continue

        has_option_routes = isinstance(node, QUESTION_NODE_TYPES) and any(o.nextNodeId for o in node.data.options)
        if not outs and not has_option_routes:
            errors.append(ValidationError(type="missing_edge", nodeId=node.id, message=f"Node '{node.id}' ({node.type}) has no outgoing edge"))
            continue

        if isinstance(node, ConditionNode):
            _check_condition(node, outs, errors)
        elif isinstance(node, (ApiCallNode, WebhookNode)):
            _check_http(node.id, node.data, outs, errors)
        elif isinstance(node, ActionNode):
            _check_action(node, outs, errors)
        elif isinstance(node, QUESTION_NODE_TYPES):
            _check_question(node, outs, node_ids, flow.settings.allowSkip, errors)

    if len(starts) == 1:
        reachable = _reachable(flow, starts[0].id)
        for node in flow.nodes:
            if node.id not in reachable:
                errors.append(ValidationError(type="unreachable_node", nodeId=node.id, severity="warning", message=f"Node '{node.id}' is not reachable from the start node"))

    is_valid = not any(e.severity == "error" for e in errors)
    return ValidationResult(isValid=is_valid, errors=errors)
