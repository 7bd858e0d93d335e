from __future__ import annotations

import pytest

from convoflow.engine import FlowEngine
from convoflow.runner import FlowRunner
from convoflow.visual.models import FlowDefinition

from conftest import edge, make_flow


def _two_questions() -> FlowDefinition:
    return FlowDefinition.model_validate(
        make_flow(
            nodes=[
                {"id": "start", "type": "start"},
                {"id": "q1", "type": "question", "data": {"text": "Name?", "variableName": "name", "required": True}},
                {"id": "q2", "type": "collect-input", "data": {"text": "City, {{name}}?", "variableName": "city"}},
                {"id": "end", "type": "end", "data": {"message": "Bye {{name}} from {{city}}"}},
            ],
            edges=[edge("start", "q1"), edge("q1", "q2"), edge("q2", "end")],
        )
    )


def test_runner_drives_session_step_by_step() -> None:
    runner = FlowRunner(_two_questions())
    assert runner.get_state() is None
    assert "not started" in repr(runner)

    first = runner.initialize()
    assert runner.is_waiting()
    assert first.nextQuestion.id == "q1"

    second = runner.process_user_response("Ana")
    assert second.nextQuestion.text == "City, Ana?"

    done = runner.process_user_response("Lisbon")
    assert runner.is_complete()
    assert not runner.is_failed()
    assert done.messages[-1].content == "Bye Ana from Lisbon"
    assert runner.last_result is done


def test_get_state_returns_a_copy() -> None:
    runner = FlowRunner(_two_questions())
    runner.initialize()
    snapshot = runner.get_state()
    snapshot.variables["name"] = "tampered"

    assert runner.get_state().variables == {}


def test_reset_restarts_from_start_node() -> None:
    runner = FlowRunner(_two_questions())
    runner.run(["Ana", "Lisbon"])
    assert runner.is_complete()

    result = runner.reset()

    assert runner.is_waiting()
    assert result.nextQuestion.id == "q1"
    assert result.flowState.variables == {}
    assert len(result.messages) == 1


def test_run_ignores_answers_after_completion() -> None:
    result = FlowRunner(_two_questions()).run(["Ana", "Lisbon", "extra", "more"])
    assert result.isComplete is True
    assert result.flowState.variables == {"name": "Ana", "city": "Lisbon"}


def test_process_before_initialize_raises() -> None:
    with pytest.raises(ValueError):
        FlowRunner(_two_questions()).process_user_response("x")


def test_runners_sharing_an_engine_are_isolated() -> None:
    flow = _two_questions()
    engine = FlowEngine(flow)
    a = FlowRunner(flow, engine=engine)
    b = FlowRunner(flow, engine=engine)

    a.run(["Ana", "Lisbon"])
    b.initialize()
    b.process_user_response("Ben")

    assert a.get_state().variables == {"name": "Ana", "city": "Lisbon"}
    assert b.get_state().variables == {"name": "Ben"}
    assert b.is_waiting()
