"""
CLI tool for running and inspecting workflows locally.

Provides terminal access to:
- Running a workflow JSON file
- Sanitizing a workflow file to its durable form
- Minting a Transloadit upload signature
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from mediaflow.errors import ConfigurationError, GraphCycleError, InvalidEdgeError, InvalidWorkflowError
from mediaflow.integrations import create_upload_signature
from mediaflow.observability import setup_logging
from mediaflow.runtime import RunStatus, WorkflowExecutor
from mediaflow.services import load_store, parse_workflow
from mediaflow.storage import to_durable


def _load_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _emit(data: Any, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    workflow = parse_workflow(_load_json(args.file))
    store = load_store(workflow)
    executor = WorkflowExecutor()
    if not args.no_prepass:
        await executor.materialize(store)
    run = await executor.execute(store, workflow.id)
    return run.to_wire()


def cmd_run(args: argparse.Namespace) -> int:
    """Execute a workflow file and print the run."""
    setup_logging(sys.stderr)
    try:
        run = asyncio.run(_run(args))
    except GraphCycleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except (InvalidWorkflowError, InvalidEdgeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _emit(run, args.output)
    return 0 if run["status"] == RunStatus.SUCCEEDED.value else 1


def cmd_sanitize(args: argparse.Namespace) -> int:
    """Print the durable form of a workflow file."""
    data = _load_json(args.file)
    durable = to_durable(data)
    for key in ("id", "name"):
        if key in data:
            durable[key] = data[key]
    _emit(durable, args.output)
    return 0


def cmd_signature(args: argparse.Namespace) -> int:
    """Print signed upload parameters."""
    try:
        signature = create_upload_signature()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    _emit(signature.model_dump(), None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediaflow",
        description="mediaflow CLI - run and inspect media workflows",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    run_parser = subparsers.add_parser("run", help="Run a workflow JSON file")
    run_parser.add_argument("file", help="Workflow file ({name, nodes, edges})")
    run_parser.add_argument("--output", "-o", help="Write the run JSON here instead of stdout")
    run_parser.add_argument(
        "--no-prepass",
        action="store_true",
        help="Skip frame pre-extraction for extract nodes",
    )

    sanitize_parser = subparsers.add_parser("sanitize", help="Print the durable form of a workflow")
    sanitize_parser.add_argument("file", help="Workflow file")
    sanitize_parser.add_argument("--output", "-o", help="Write here instead of stdout")

    subparsers.add_parser("signature", help="Mint a Transloadit upload signature")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "sanitize":
        return cmd_sanitize(args)
    elif args.command == "signature":
        return cmd_signature(args)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
