"""Command-line interface for convoflow.

Commands:
- validate: check a flow JSON document and print the ValidationResult
- run: drive a session from stdin (or from scripted `--answer` values)
- serve: run the dev backend (FastAPI)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
import sys
from typing import List, Optional, TextIO

from .config import EngineConfig, resolve_log_level_from_env
from .errors import DefinitionError
from .invoker import HttpActionInvoker
from .runner import FlowRunner
from .visual.interfaces import load_flow, validate_flow
from .visual.models import ExecutionResult, SessionStatus


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="convoflow", add_help=True)
    p.add_argument("--log-level", default=resolve_log_level_from_env())
    sub = p.add_subparsers(dest="command")

    val = sub.add_parser("validate", help="Validate a flow JSON document")
    val.add_argument("flow", help="Path to a flow JSON file")

    run = sub.add_parser("run", help="Run a flow interactively")
    run.add_argument("flow", help="Path to a flow JSON file")
    run.add_argument(
        "--answer",
        action="append",
        default=None,
        help="Scripted answer (repeatable). When given, stdin is not read.",
    )
    run.add_argument("--http", action="store_true", help="Allow api-call/webhook nodes to reach the network")
    run.add_argument("--json", action="store_true", help="Print the final ExecutionResult as JSON")

    serve = sub.add_parser("serve", help="Run the dev backend (FastAPI)")
    serve.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")))
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload (dev)")

    return p


def _print_new_messages(result: ExecutionResult, seen: int, out: TextIO) -> int:
    for entry in result.messages[seen:]:
        if entry.role == "assistant":
            out.write(f"bot> {entry.content}\n")
    return len(result.messages)


def _cmd_validate(path: str) -> int:
    try:
        flow = load_flow(Path(path))
    except DefinitionError as e:
        sys.stdout.write(json.dumps({"isValid": False, "errors": e.errors or [{"type": "schema", "message": e.message}]}, indent=2) + "\n")
        return 1
    result = validate_flow(flow)
    sys.stdout.write(result.model_dump_json(indent=2, exclude_none=True) + "\n")
    return 0 if result.isValid else 1


def _cmd_run(path: str, answers: Optional[List[str]], use_http: bool, as_json: bool) -> int:
    try:
        flow = load_flow(Path(path))
    except DefinitionError as e:
        sys.stderr.write(f"{e}\n")
        return 2

    config = EngineConfig.from_env()
    invoker = HttpActionInvoker() if (use_http or config.http_actions_enabled) else None
    runner = FlowRunner(flow, invoker=invoker, config=config)
    out = sys.stderr if as_json else sys.stdout

    result = runner.initialize()
    seen = _print_new_messages(result, 0, out)
    scripted = list(answers) if answers is not None else None

    while result.status == SessionStatus.AWAITING_ANSWER:
        if scripted is not None:
            if not scripted:
                break
            answer = scripted.pop(0)
            out.write(f"you> {answer}\n")
        else:
            out.write("you> ")
            out.flush()
            line = sys.stdin.readline()
            if not line:
                break
            answer = line.rstrip("\n")
        result = runner.process_user_response(answer)
        seen = _print_new_messages(result, seen + 1, out)

    if as_json:
        sys.stdout.write(result.model_dump_json(indent=2, exclude_none=True) + "\n")
    if result.status == SessionStatus.ERRORED:
        sys.stderr.write(f"Session failed: {result.error.message if result.error else 'unknown error'}\n")
        return 1
    return 0


def _cmd_serve(host: str, port: int, reload: bool, log_level: str) -> int:
    try:
        import uvicorn  # type: ignore
    except Exception:
        sys.stderr.write(
            "Server dependencies are not installed.\n"
            "Install with: pip install \"convoflow[server]\"\n"
        )
        return 2

    # The dev backend lives next to the package (`web/backend`), not inside it.
    web_root = Path(__file__).resolve().parents[1] / "web"
    if web_root.is_dir() and str(web_root) not in sys.path:
        sys.path.insert(0, str(web_root))

    try:
        import backend.main  # noqa: F401
    except Exception as e:
        sys.stderr.write(f"Failed to import the dev backend.\nError: {e}\n")
        return 2

    uvicorn.run("backend.main:app", host=host, port=port, reload=reload, log_level=log_level.lower())
    return 0


def main(args: Optional[List[str]] = None) -> int:
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    ns = parser.parse_args(args)

    logging.basicConfig(
        level=str(ns.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if ns.command == "validate":
        return _cmd_validate(ns.flow)
    if ns.command == "run":
        return _cmd_run(ns.flow, ns.answer, ns.http, ns.json)
    if ns.command == "serve":
        return _cmd_serve(ns.host, ns.port, ns.reload, ns.log_level)

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
