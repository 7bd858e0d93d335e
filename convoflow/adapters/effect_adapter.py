"""Adapter for creating effect nodes in conversational flows.

Effect nodes are the ones that touch the outside of the graph:
- `message` / `end` append assistant lines to the transcript;
- `question` / `collect-input` park the walk until the user answers;
- `wait` records an intended delay (the engine never sleeps);
- `api-call` / `webhook` and API actions go through the injected
  `ActionInvoker` and branch on `success` / `error`.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from ..errors import BranchResolutionError
from ..invoker import ActionCall, ActionInvoker, ActionResult
from ..visual.builtins import as_text, validate_answer
from ..visual.models import (
    HANDLE_ERROR,
    HANDLE_MAX_RETRIES,
    HANDLE_SUCCESS,
    ActionNode,
    ApiCallNode,
    CollectInputNode,
    EndNode,
    FlowEdge,
    FlowState,
    HttpCallConfig,
    MessageNode,
    NextQuestion,
    Option,
    QuestionData,
    QuestionNode,
    TranscriptEntry,
    ValidationRule,
    WaitNode,
    WaitRecord,
    WebhookData,
    WebhookNode,
)
from .control_adapter import StepPlan, edge_for_handle, pick_generic_target
from .variable_adapter import get_by_path, render, render_value, set_by_path

logger = logging.getLogger(__name__)

SKIP_PHRASES = ("skip", "skip this", "skip question")
SKIPPED_PLACEHOLDER = "[Skipped]"
CHOICE_MISMATCH_MESSAGE = "Please choose one of the available options."

_UNIT_TO_MS: Dict[str, float] = {"ms": 1, "seconds": 1_000, "minutes": 60_000, "hours": 3_600_000}


def _say(state: FlowState, role: str, content: str) -> None:
    state.messages.append(TranscriptEntry(role=role, content=content))


# ---------------------------------------------------------------------------
# message / end / wait
# ---------------------------------------------------------------------------


def create_message_handler(*, node: MessageNode, edges: List[FlowEdge]) -> Callable[[FlowState], StepPlan]:
    """Render the message content, append it to the transcript, then advance."""
    node_id = node.id
    template = node.data.content or node.data.label

    def handler(state: FlowState) -> StepPlan:
        content = render(template, state)
        if content:
            _say(state, "assistant", content)
        return StepPlan(node_id=node_id, next_node=pick_generic_target(node_id, edges, state.variables))

    return handler


def create_end_handler(*, node: EndNode) -> Callable[[FlowState], StepPlan]:
    node_id = node.id
    template = node.data.message

    def handler(state: FlowState) -> StepPlan:
        content = render(template, state)
        if content:
            _say(state, "assistant", content)
        return StepPlan(node_id=node_id, complete=True)

    return handler


def duration_to_ms(duration: Any, unit: Optional[str] = "ms") -> int:
    try:
        value = float(duration or 0)
    except (TypeError, ValueError):
        value = 0.0
    factor = _UNIT_TO_MS.get(str(unit or "ms"), 1)
    return max(int(value * factor), 0)


def _record_wait(state: FlowState, node_id: str, duration_ms: int) -> None:
    # Pass-through: hosts that want a real delay schedule the next call themselves.
    state.waits.append(WaitRecord(nodeId=node_id, durationMs=duration_ms))
    logger.debug(f"Node {node_id}: recorded intended delay of {duration_ms}ms")


def create_wait_handler(*, node: WaitNode, edges: List[FlowEdge]) -> Callable[[FlowState], StepPlan]:
    node_id = node.id
    duration_ms = duration_to_ms(node.data.duration, node.data.unit)

    def handler(state: FlowState) -> StepPlan:
        _record_wait(state, node_id, duration_ms)
        return StepPlan(node_id=node_id, next_node=pick_generic_target(node_id, edges, state.variables))

    return handler


# ---------------------------------------------------------------------------
# External calls
# ---------------------------------------------------------------------------


def build_action_call(config: HttpCallConfig, state: FlowState, *, default_timeout_ms: int, send_state: bool) -> ActionCall:
    body = render_value(config.body, state)
    if body is None and send_state:
        body = copy.deepcopy(state.variables)
    timeout_ms = int(config.timeout) if config.timeout and config.timeout > 0 else default_timeout_ms
    return ActionCall(
        method=str(config.method or "GET").upper(),
        url=render(config.url, state),
        headers={str(k): render(str(v), state) for k, v in config.headers.items()},
        body=body,
        timeout_ms=timeout_ms,
    )


def apply_response(config: HttpCallConfig, result: ActionResult, state: FlowState) -> None:
    """Merge a successful response into the flow state (`responseMapping`, `resultVariable`)."""
    for variable_name, path in config.responseMapping.items():
        set_by_path(state.variables, variable_name, get_by_path(result.body, path))
    if config.resultVariable:
        set_by_path(state.variables, config.resultVariable, result.body)


def _invoke(invoker: ActionInvoker, call: ActionCall) -> ActionResult:
    try:
        return invoker.invoke(call)
    except Exception as e:
        logger.exception(f"Action invoker raised for {call.method} {call.url}")
        return ActionResult(ok=False, error=str(e))


def _run_http_call(
    *,
    node_id: str,
    config: HttpCallConfig,
    edges: List[FlowEdge],
    state: FlowState,
    invoker: ActionInvoker,
    default_timeout_ms: int,
    send_state: bool,
) -> str:
    call = build_action_call(config, state, default_timeout_ms=default_timeout_ms, send_state=send_state)
    result = _invoke(invoker, call)
    reserved = (HANDLE_SUCCESS, HANDLE_ERROR)

    if result.ok:
        apply_response(config, result, state)
        edge = edge_for_handle(edges, HANDLE_SUCCESS)
        if edge is not None:
            return edge.target
        return pick_generic_target(node_id, edges, state.variables, reserved=reserved)

    logger.warning(f"Node {node_id}: external action failed: {result.error}")
    edge = edge_for_handle(edges, HANDLE_ERROR)
    if edge is None:
        raise BranchResolutionError(f"External action failed and no error edge exists: {result.error}", node_id=node_id)
    return edge.target


def create_http_call_handler(
    *,
    node: Union[ApiCallNode, WebhookNode],
    edges: List[FlowEdge],
    invoker: ActionInvoker,
    default_timeout_ms: int,
) -> Callable[[FlowState], StepPlan]:
    """Create a handler for standalone `api-call` / `webhook` nodes."""
    node_id = node.id
    config = node.data
    send_state = isinstance(node, WebhookNode)

    def handler(state: FlowState) -> StepPlan:
        target = _run_http_call(
            node_id=node_id,
            config=config,
            edges=edges,
            state=state,
            invoker=invoker,
            default_timeout_ms=default_timeout_ms,
            send_state=send_state,
        )
        return StepPlan(node_id=node_id, next_node=target)

    return handler


def set_variable_name(config: Dict[str, Any]) -> str:
    for key in ("variable", "name", "variableName"):
        raw = config.get(key)
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
    return ""


def parse_action_http_config(node: ActionNode) -> HttpCallConfig:
    if node.data.action.type == "send_webhook":
        return WebhookData.model_validate(node.data.action.config)
    return HttpCallConfig.model_validate(node.data.action.config)


def create_action_handler(
    *,
    node: ActionNode,
    edges: List[FlowEdge],
    invoker: ActionInvoker,
    default_timeout_ms: int,
) -> Callable[[FlowState], StepPlan]:
    """Create a handler for `action` nodes (set_variable / call_api / send_webhook / wait)."""
    node_id = node.id
    action = node.data.action
    config = dict(action.config)
    http_config = parse_action_http_config(node) if action.type in ("call_api", "send_webhook") else None

    def handler(state: FlowState) -> StepPlan:
        if action.type == "set_variable":
            name = set_variable_name(config)
            if not name:
                raise BranchResolutionError("Set variable action requires a variable name", node_id=node_id)
            set_by_path(state.variables, name, render_value(copy.deepcopy(config.get("value")), state))
            return StepPlan(node_id=node_id, next_node=pick_generic_target(node_id, edges, state.variables))

        if action.type == "wait":
            _record_wait(state, node_id, duration_to_ms(config.get("duration"), config.get("unit")))
            return StepPlan(node_id=node_id, next_node=pick_generic_target(node_id, edges, state.variables))

        if http_config is None:
            raise BranchResolutionError(f"Unsupported action type '{action.type}'", node_id=node_id)
        target = _run_http_call(
            node_id=node_id,
            config=http_config,
            edges=edges,
            state=state,
            invoker=invoker,
            default_timeout_ms=default_timeout_ms,
            send_state=action.type == "send_webhook",
        )
        return StepPlan(node_id=node_id, next_node=target)

    return handler


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


def effective_rules(data: QuestionData) -> List[ValidationRule]:
    """Validation rules with `required: true` folded in as a leading rule."""
    rules = list(data.validation)
    if data.required and not any(r.type == "required" for r in rules):
        rules.insert(0, ValidationRule(type="required"))
    return rules


def build_next_question(node: Union[QuestionNode, CollectInputNode], state: FlowState) -> NextQuestion:
    data = node.data
    options = [opt.model_copy(update={"label": render(opt.label, state)}) for opt in data.options]
    return NextQuestion(
        id=node.id,
        text=render(data.prompt, state),
        type=data.questionType,
        options=options,
        required=data.required,
        variableName=data.variableName,
    )


def match_option(options: List[Option], answer: str) -> Optional[Option]:
    needle = answer.strip().lower()
    if not needle:
        return None
    for opt in options:
        for candidate in (opt.value, opt.label, opt.id):
            if isinstance(candidate, str) and candidate.strip().lower() == needle:
                return opt
    return None


def option_handles(options: List[Option]) -> List[str]:
    handles: List[str] = []
    for opt in options:
        handles.extend(h for h in (opt.id, opt.value) if h)
    return handles


def create_question_handler(*, node: Union[QuestionNode, CollectInputNode]) -> Callable[[FlowState], StepPlan]:
    """Create a handler that parks the walk on a question."""
    node_id = node.id

    def handler(state: FlowState) -> StepPlan:
        question = build_next_question(node, state)
        _say(state, "assistant", question.text)
        return StepPlan(node_id=node_id, question=question)

    return handler


def create_answer_handler(
    *,
    node: Union[QuestionNode, CollectInputNode],
    edges: List[FlowEdge],
    allow_skip: bool = False,
) -> Callable[[FlowState, Any], StepPlan]:
    """Create the handler that accepts (or rejects) an answer to a question.

    A rejected answer leaves the variables untouched and re-issues the same
    question. An accepted answer is stored under `variableName` and the plan
    points at the resolved next node.
    """
    node_id = node.id
    data = node.data
    rules = effective_rules(data)
    reserved = tuple(option_handles(data.options)) + (HANDLE_MAX_RETRIES,)

    def _next_target(state: FlowState, option: Optional[Option]) -> str:
        if option is not None:
            if option.nextNodeId:
                return option.nextNodeId
            edge = edge_for_handle(edges, option.id, option.value)
            if edge is not None:
                return edge.target
        return pick_generic_target(node_id, edges, state.variables, reserved=reserved)

    def _reject(state: FlowState, message: str) -> StepPlan:
        _say(state, "assistant", message)
        failures = state.retries.get(node_id, 0) + 1
        state.retries[node_id] = failures
        if data.maxRetries is not None and failures >= data.maxRetries:
            edge = edge_for_handle(edges, HANDLE_MAX_RETRIES)
            if edge is not None:
                logger.info(f"Node {node_id}: retry limit reached after {failures} attempts")
                state.retries.pop(node_id, None)
                return StepPlan(node_id=node_id, next_node=edge.target)
        return StepPlan(node_id=node_id, question=build_next_question(node, state))

    def handler(state: FlowState, raw_answer: Any) -> StepPlan:
        answer = as_text(raw_answer) or ""

        if allow_skip and answer.strip().lower() in SKIP_PHRASES:
            _say(state, "user", "Skip")
            if data.required:
                _say(state, "assistant", "I understand you want to skip this question. Let me move to the next one.")
            else:
                _say(state, "assistant", "No problem! Let's move to the next question.")
            if data.variableName and data.required:
                set_by_path(state.variables, data.variableName, SKIPPED_PLACEHOLDER)
            state.retries.pop(node_id, None)
            return StepPlan(node_id=node_id, next_node=_next_target(state, None))

        _say(state, "user", answer)

        verdict = validate_answer(rules, answer)
        if not verdict.valid:
            return _reject(state, verdict.message or "Invalid answer.")

        option: Optional[Option] = None
        if data.is_choice:
            option = match_option(data.options, answer)
            if option is None and not data.allowFreeText:
                return _reject(state, CHOICE_MISMATCH_MESSAGE)

        if data.variableName:
            set_by_path(state.variables, data.variableName, option.value if option is not None else answer)
        state.retries.pop(node_id, None)
        return StepPlan(node_id=node_id, next_node=_next_target(state, option))

    return handler
