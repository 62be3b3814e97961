"""Command line entrypoint.

Operator tooling over the same engine the HTTP API uses: start and resume runs
from a terminal, inspect stored runs, and sweep expired ones.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from draft_orchestrator import __version__
from draft_orchestrator.orchestrator.config import OrchestratorSettings
from draft_orchestrator.orchestrator.logging import configure_logging
from draft_orchestrator.orchestrator.workflow.engine import WorkflowEngine, WorkflowResponse
from draft_orchestrator.orchestrator.workflow.errors import WorkflowError
from draft_orchestrator.orchestrator.workflow.state_machine import RunStatus
from draft_orchestrator.orchestrator.workflow.sweeper import sweep_expired_runs
from draft_orchestrator.state import open_run_store

logger = logging.getLogger(__name__)


def _parse_json_object(value: str | None, *, flag: str) -> dict[str, object]:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"{flag} must be a JSON object: {e}") from e
    if not isinstance(parsed, dict):
        raise argparse.ArgumentTypeError(f"{flag} must be a JSON object")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="draft-orchestrator",
        description="Resumable drafting workflows: start, resume, inspect and sweep runs",
    )
    parser.add_argument("--version", action="version", version=f"draft-orchestrator {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    start = subparsers.add_parser("start", help="Start a workflow for a document")
    start.add_argument("--owner", required=True, help="Owner (user) id")
    start.add_argument("--document", required=True, help="Document id")
    start.add_argument(
        "--kind",
        default="guided",
        help="Pipeline kind: guided | autonomous | coaching",
    )
    start.add_argument("--topic", default=None, help="Research topic")
    start.add_argument(
        "--input",
        dest="initial_input",
        default=None,
        help="Initial input as a JSON object (overrides --topic)",
    )

    resume = subparsers.add_parser("resume", help="Resume a suspended workflow")
    resume.add_argument("--owner", required=True, help="Owner (user) id")
    resume.add_argument("--step", required=True, help="Step id the run is suspended at")
    target = resume.add_mutually_exclusive_group(required=True)
    target.add_argument("--run-id", default=None, help="Run id")
    target.add_argument("--document", default=None, help="Document id (active run)")
    resume.add_argument("--kind", default=None, help="Pipeline kind when resuming by document")
    resume.add_argument(
        "--data",
        default=None,
        help='Resume data as a JSON object, e.g. \'{"approved": true}\'',
    )

    show = subparsers.add_parser("show", help="Print stored runs")
    show_target = show.add_mutually_exclusive_group(required=True)
    show_target.add_argument("--run-id", default=None, help="Run id")
    show_target.add_argument("--owner", default=None, help="List every run of an owner")

    subparsers.add_parser("sweep", help="Delete expired runs now")

    return parser


def _print_response(response: WorkflowResponse) -> int:
    print(json.dumps(response.to_json(), indent=2, ensure_ascii=False))
    return 4 if response.status == RunStatus.FAILED else 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = OrchestratorSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "sweep":
            store = open_run_store(settings.resolved_run_store_url)
            removed = sweep_expired_runs(store)
            print(f"Deleted {removed} expired run(s)")
            return 0

        if args.command == "show":
            store = open_run_store(settings.resolved_run_store_url)
            if args.run_id:
                run = store.get(args.run_id)
                if run is None:
                    print(f"Run {args.run_id} not found", file=sys.stderr)
                    return 1
                runs = [run]
            else:
                runs = store.list_by_owner(args.owner)
            payload = [r.model_dump(mode="json") for r in runs]
            print(json.dumps(payload, indent=2, ensure_ascii=False))
            return 0

        if args.command == "start":
            if args.initial_input is not None:
                initial_input = _parse_json_object(args.initial_input, flag="--input")
            elif args.topic:
                initial_input = {"topic": args.topic}
            else:
                parser.error("start requires --topic or --input")
            engine = WorkflowEngine.from_settings(settings)
            return _print_response(
                engine.start(
                    owner_id=args.owner,
                    pipeline_kind=args.kind,
                    initial_input=initial_input,
                    document_id=args.document,
                )
            )

        if args.command == "resume":
            resume_data = _parse_json_object(args.data, flag="--data")
            engine = WorkflowEngine.from_settings(settings)
            return _print_response(
                engine.resume(
                    owner_id=args.owner,
                    step_id=args.step,
                    resume_data=resume_data,
                    run_id=args.run_id,
                    document_id=args.document,
                    pipeline_kind=args.kind,
                )
            )

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except argparse.ArgumentTypeError as e:
        print(str(e), file=sys.stderr)
        return 2

    except WorkflowError as e:
        logger.warning(str(e), extra={"reason": e.reason})
        print(f"{e.reason}: {e}", file=sys.stderr)
        return 1

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
