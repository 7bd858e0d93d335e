from __future__ import annotations

from typing import Optional

from convoflow.config import EngineConfig
from convoflow.engine import FlowEngine
from convoflow.invoker import ActionCall, ActionResult, HttpActionInvoker, NullActionInvoker
from convoflow.visual.models import FlowDefinition, SessionStatus

from conftest import FakeInvoker, edge, make_flow


def _api_flow(node: dict, *, error_edge: bool = True, success_handle: Optional[str] = "success") -> FlowDefinition:
    node = {"id": "api", **node}
    edges = [edge("start", "q"), edge("q", "api"), edge("api", "ok_end", success_handle)]
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "q", "type": "question", "data": {"text": "Email?", "variableName": "email"}},
        node,
        {"id": "ok_end", "type": "end", "data": {"message": "Welcome {{first_name}}"}},
    ]
    if error_edge:
        nodes.append({"id": "err_end", "type": "end", "data": {"message": "Service unavailable"}})
        edges.append(edge("api", "err_end", "error"))
    return FlowDefinition.model_validate(make_flow(nodes=nodes, edges=edges))


API_NODE = {
    "type": "api-call",
    "data": {
        "method": "post",
        "url": "https://crm.example.com/lookup?email={{email}}",
        "headers": {"X-Email": "{{email}}"},
        "body": {"email": "{{email}}"},
        "responseMapping": {"first_name": "person.first"},
        "resultVariable": "lookup",
    },
}


def test_success_maps_response_and_follows_success_edge() -> None:
    invoker = FakeInvoker(ActionResult(ok=True, status=200, body={"person": {"first": "Ada"}}))
    engine = FlowEngine(_api_flow(API_NODE), invoker=invoker)

    result = engine.process_user_response(engine.initialize().flowState, "ada@example.com")

    assert result.isComplete is True
    assert result.messages[-1].content == "Welcome Ada"
    assert result.flowState.variables["first_name"] == "Ada"
    assert result.flowState.variables["lookup"] == {"person": {"first": "Ada"}}

    [call] = invoker.calls
    assert call.method == "POST"
    assert call.url == "https://crm.example.com/lookup?email=ada@example.com"
    assert call.headers == {"X-Email": "ada@example.com"}
    assert call.body == {"email": "ada@example.com"}
    assert call.timeout_ms == 10_000


def test_success_falls_back_to_generic_edge() -> None:
    engine = FlowEngine(_api_flow(API_NODE, success_handle=None), invoker=FakeInvoker())
    result = engine.process_user_response(engine.initialize().flowState, "x@y.io")
    assert result.isComplete is True
    assert result.messages[-1].content == "Welcome "


def test_failure_follows_error_edge() -> None:
    invoker = FakeInvoker(ActionResult(ok=False, status=503, error="HTTP 503"))
    engine = FlowEngine(_api_flow(API_NODE), invoker=invoker)

    result = engine.process_user_response(engine.initialize().flowState, "x@y.io")

    assert result.isComplete is True
    assert result.messages[-1].content == "Service unavailable"
    assert "first_name" not in result.flowState.variables


def test_failure_without_error_edge_errors_the_session() -> None:
    invoker = FakeInvoker(ActionResult(ok=False, error="boom"))
    engine = FlowEngine(_api_flow(API_NODE, error_edge=False), invoker=invoker)

    result = engine.process_user_response(engine.initialize().flowState, "x@y.io")

    assert result.status == SessionStatus.ERRORED
    assert result.error.kind == "branch_resolution"
    assert result.error.nodeId == "api"
    assert "boom" in result.error.message


def test_invoker_exceptions_are_contained() -> None:
    class ExplodingInvoker(FakeInvoker):
        def invoke(self, call: ActionCall) -> ActionResult:
            raise RuntimeError("kaboom")

    engine = FlowEngine(_api_flow(API_NODE), invoker=ExplodingInvoker())
    result = engine.process_user_response(engine.initialize().flowState, "x@y.io")
    assert result.messages[-1].content == "Service unavailable"


def test_no_invoker_means_no_network_and_error_branch() -> None:
    engine = FlowEngine(_api_flow(API_NODE))
    assert isinstance(engine.invoker, NullActionInvoker)

    result = engine.process_user_response(engine.initialize().flowState, "x@y.io")
    assert result.messages[-1].content == "Service unavailable"


def test_webhook_without_body_sends_variable_snapshot(fake_invoker: FakeInvoker) -> None:
    node = {"type": "webhook", "data": {"url": "https://hooks.example.com/in", "timeout": 1500}}
    engine = FlowEngine(_api_flow(node), invoker=fake_invoker)

    engine.process_user_response(engine.initialize().flowState, "w@x.io")

    [call] = fake_invoker.calls
    assert call.method == "POST"
    assert call.body == {"email": "w@x.io"}
    assert call.timeout_ms == 1500


def test_action_node_call_api_uses_same_policy() -> None:
    node = {
        "type": "action",
        "data": {
            "action": {
                "type": "call_api",
                "config": {"url": "https://api.example.com/{{email}}", "responseMapping": {"first_name": "name"}},
            }
        },
    }
    ok = FakeInvoker(ActionResult(ok=True, status=200, body={"name": "Lin"}))
    engine = FlowEngine(_api_flow(node), invoker=ok, config=EngineConfig(action_timeout_ms=500))
    result = engine.process_user_response(engine.initialize().flowState, "lin")
    assert result.messages[-1].content == "Welcome Lin"
    assert ok.calls[0].method == "GET"
    assert ok.calls[0].timeout_ms == 500

    failing = FlowEngine(_api_flow(node, error_edge=False), invoker=FakeInvoker(ActionResult(ok=False, error="down")))
    assert failing.process_user_response(failing.initialize().flowState, "lin").status == SessionStatus.ERRORED


def test_unreachable_url_is_an_external_failure() -> None:
    node = {"type": "api-call", "data": {"url": "http://127.0.0.1:9/unreachable", "timeout": 10_000}}
    engine = FlowEngine(_api_flow(node), invoker=HttpActionInvoker())
    result = engine.process_user_response(engine.initialize().flowState, "x@y.io")
    assert result.isComplete is True
    assert result.messages[-1].content == "Service unavailable"

    no_error_edge = FlowEngine(_api_flow(node, error_edge=False), invoker=HttpActionInvoker())
    failed = no_error_edge.process_user_response(no_error_edge.initialize().flowState, "x@y.io")
    assert failed.status == SessionStatus.ERRORED


def test_http_invoker_normalizes_failures_without_raising() -> None:
    invoker = HttpActionInvoker()
    result = invoker.invoke(ActionCall(method="GET", url="not a url", timeout_ms=100))
    assert result.ok is False
    assert result.error


def test_numeric_header_values_are_sent_as_text(fake_invoker: FakeInvoker) -> None:
    node = {"type": "api-call", "data": {"url": "https://api.example.com", "headers": {"X-Retry": 3}}}
    engine = FlowEngine(_api_flow(node), invoker=fake_invoker)
    engine.process_user_response(engine.initialize().flowState, "x@y.io")

    assert fake_invoker.calls[0].headers == {"X-Retry": "3"}
