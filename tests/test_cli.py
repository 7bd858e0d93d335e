from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from convoflow.cli import main

from conftest import edge, make_flow


def _write_flow(tmp_path: Path, doc: dict) -> str:
    path = tmp_path / "flow.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    return str(path)


def _greeting_flow() -> dict:
    return make_flow(
        nodes=[
            {"id": "start", "type": "start"},
            {"id": "q", "type": "question", "data": {"text": "Name?", "variableName": "name", "required": True}},
            {"id": "end", "type": "end", "data": {"message": "Hello {{name}}!"}},
        ],
        edges=[edge("start", "q"), edge("q", "end")],
    )


def test_validate_command_reports_valid_flow(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    rc = main(["validate", _write_flow(tmp_path, _greeting_flow())])
    out = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert out["isValid"] is True


def test_validate_command_fails_on_invalid_flow(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    doc = _greeting_flow()
    doc["edges"].append(edge("q", "nowhere"))
    rc = main(["validate", _write_flow(tmp_path, doc)])
    out = json.loads(capsys.readouterr().out)
    assert rc == 1
    assert out["isValid"] is False
    assert any(e["type"] == "dangling_edge" for e in out["errors"])


def test_run_command_with_scripted_answers(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    rc = main(["run", _write_flow(tmp_path, _greeting_flow()), "--answer", "", "--answer", "Ada"])
    out = capsys.readouterr().out
    assert rc == 0
    assert "bot> Name?" in out
    assert "bot> This field is required." in out
    assert "bot> Hello Ada!" in out


def test_run_command_reads_stdin_and_prints_json(tmp_path: Path, capsys: pytest.CaptureFixture, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("Ada\n"))
    rc = main(["run", _write_flow(tmp_path, _greeting_flow()), "--json"])
    captured = capsys.readouterr()
    result = json.loads(captured.out)
    assert rc == 0
    assert result["isComplete"] is True
    assert result["flowState"]["variables"] == {"name": "Ada"}
    assert "bot> Name?" in captured.err


def test_run_command_exits_nonzero_on_errored_session(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    doc = make_flow(
        nodes=[
            {"id": "start", "type": "start"},
            {"id": "api", "type": "api-call", "data": {"url": "https://example.invalid"}},
            {"id": "end", "type": "end"},
        ],
        edges=[edge("start", "api"), edge("api", "end", "success")],
    )
    rc = main(["run", _write_flow(tmp_path, doc)])
    assert rc == 1
    assert "Session failed" in capsys.readouterr().err
