from __future__ import annotations

import json
from pathlib import Path

import pytest

from convoflow.errors import DefinitionError
from convoflow.visual.interfaces import load_flow, validate_flow

from conftest import edge, make_flow


def _types(result, severity: str = "error") -> set:
    return {e.type for e in result.errors if e.severity == severity}


def _linear(*middle) -> dict:
    nodes = [{"id": "start", "type": "start"}, *middle, {"id": "end", "type": "end"}]
    ids = [n["id"] for n in nodes]
    return make_flow(nodes=nodes, edges=[edge(a, b) for a, b in zip(ids, ids[1:])])


def test_minimal_flow_is_valid() -> None:
    result = validate_flow(_linear({"id": "m", "type": "message", "data": {"content": "hi"}}))
    assert result.isValid is True
    assert result.errors == []


def test_rejects_missing_start() -> None:
    doc = make_flow(nodes=[{"id": "end", "type": "end"}], edges=[])
    result = validate_flow(doc)
    assert result.isValid is False
    assert "missing_start" in _types(result)


def test_rejects_multiple_starts() -> None:
    doc = _linear()
    doc["nodes"].append({"id": "start2", "type": "start"})
    doc["edges"].append(edge("start2", "end"))
    result = validate_flow(doc)
    assert result.isValid is False
    assert "multiple_start" in _types(result)


@pytest.mark.parametrize("endpoint", ["source", "target"])
def test_rejects_dangling_edge(endpoint: str) -> None:
    doc = _linear()
    bad = edge("start", "end")
    bad["id"] = "bad"
    bad[endpoint] = "ghost"
    doc["edges"].append(bad)
    result = validate_flow(doc)
    assert result.isValid is False
    assert any(e.type == "dangling_edge" and e.edgeId == "bad" for e in result.errors)


def test_rejects_condition_without_branch_edges() -> None:
    doc = _linear({"id": "c", "type": "condition", "data": {"condition": {"rules": []}}})
    result = validate_flow(doc)
    assert result.isValid is False
    assert "missing_branch" in _types(result)


def test_half_wired_condition_is_a_warning() -> None:
    doc = make_flow(
        nodes=[{"id": "start", "type": "start"}, {"id": "c", "type": "condition"}, {"id": "end", "type": "end"}],
        edges=[edge("start", "c"), edge("c", "end", "true")],
    )
    result = validate_flow(doc)
    assert result.isValid is True
    assert "missing_branch" in _types(result, "warning")


def test_warns_on_unreachable_node_and_missing_error_edge() -> None:
    doc = _linear({"id": "api", "type": "api-call", "data": {"url": "http://example.invalid"}})
    doc["nodes"].append({"id": "orphan", "type": "message", "data": {"content": "never"}})
    doc["edges"].append(edge("orphan", "end"))
    result = validate_flow(doc)
    assert result.isValid is True
    assert {"unreachable_node", "missing_error_branch"} <= _types(result, "warning")
    assert {w.nodeId for w in result.warnings if w.type == "unreachable_node"} == {"orphan"}


def test_rejects_invalid_pattern_and_unknown_node_type() -> None:
    bad_pattern = _linear({"id": "q", "type": "question", "data": {"validation": [{"type": "pattern", "value": "("}]}})
    assert "invalid_pattern" in _types(validate_flow(bad_pattern))

    unknown = _linear({"id": "x", "type": "teleport"})
    result = validate_flow(unknown)
    assert result.isValid is False
    assert "schema" in _types(result)


def test_load_flow_reads_json_file(tmp_path: Path) -> None:
    path = tmp_path / "flow.json"
    path.write_text(json.dumps(_linear()), encoding="utf-8")
    flow = load_flow(path)
    assert [n.id for n in flow.nodes] == ["start", "end"]


def test_load_flow_raises_definition_error_on_bad_json() -> None:
    with pytest.raises(DefinitionError):
        load_flow("{not json")
    with pytest.raises(DefinitionError) as exc:
        load_flow({"name": "x", "nodes": [{"id": "a", "type": "teleport"}]})
    assert exc.value.errors


def test_round_trip_preserves_editor_keys_and_decisions() -> None:
    doc = _linear({"id": "m", "type": "message", "data": {"content": "hi"}, "style": {"color": "red"}})
    flow = load_flow(doc)
    again = load_flow(flow.model_dump(mode="json", exclude_none=True))
    assert again == flow
    assert again.get_node("m").model_dump()["style"] == {"color": "red"}


def _question_flow(question_data: dict, edges: list) -> dict:
    return make_flow(
        nodes=[
            {"id": "start", "type": "start"},
            {"id": "q", "type": "question", "data": question_data},
            {"id": "end", "type": "end"},
            {"id": "other", "type": "end"},
        ],
        edges=[edge("start", "q"), *edges],
    )


def test_rejects_question_whose_only_edge_is_max_retries() -> None:
    doc = _question_flow({"text": "Hi?", "variableName": "x", "maxRetries": 2}, [edge("q", "end", "max-retries")])
    result = validate_flow(doc)
    assert result.isValid is False
    assert any(e.type == "missing_default_branch" and e.nodeId == "q" for e in result.errors)


def test_choice_question_needs_route_for_every_option_or_default_edge() -> None:
    data = {
        "text": "Pick",
        "questionType": "multiple-choice",
        "options": [{"id": "a", "value": "A"}, {"id": "b", "value": "B"}],
    }
    partial = validate_flow(_question_flow(data, [edge("q", "end", "a")]))
    assert partial.isValid is False
    assert "missing_default_branch" in _types(partial)

    covered = validate_flow(_question_flow(data, [edge("q", "end", "a"), edge("q", "other", "B")]))
    assert covered.isValid is True

    free_text = validate_flow(_question_flow({**data, "allowFreeText": True}, [edge("q", "end", "a"), edge("q", "other", "B")]))
    assert free_text.isValid is False


@pytest.mark.parametrize(
    "doc_patch",
    [
        {"variables": [{"name": ".", "defaultValue": "x"}]},
        {"question": {"variableName": ".."}},
        {"action": {"type": "set_variable", "config": {"variable": ".", "value": 1}}},
    ],
)
def test_rejects_variable_names_without_path_segments(doc_patch: dict) -> None:
    middle = []
    if "question" in doc_patch:
        middle.append({"id": "q", "type": "question", "data": {"text": "?", **doc_patch["question"]}})
    if "action" in doc_patch:
        middle.append({"id": "act", "type": "action", "data": {"action": doc_patch["action"]}})
    doc = _linear(*middle)
    doc["variables"] = doc_patch.get("variables", [])

    result = validate_flow(doc)

    assert result.isValid is False
    assert "invalid_variable_name" in _types(result)


def test_warns_when_external_call_has_only_an_error_edge() -> None:
    doc = make_flow(
        nodes=[
            {"id": "start", "type": "start"},
            {"id": "api", "type": "api-call", "data": {"url": "https://example.com"}},
            {"id": "end", "type": "end"},
        ],
        edges=[edge("start", "api"), edge("api", "end", "error")],
    )
    result = validate_flow(doc)
    assert result.isValid is True
    assert "missing_success_branch" in _types(result, "warning")


def test_numeric_header_values_are_accepted() -> None:
    doc = _linear({"id": "api", "type": "api-call", "data": {"url": "https://example.com", "headers": {"X-Retry": 3}}})
    flow = load_flow(doc)
    assert flow.get_node("api").data.headers == {"X-Retry": 3}
