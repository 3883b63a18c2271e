"""Entry point: python -m warden"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from warden.errors import WardenError
from warden.infrastructure.logger import logger


async def serve() -> None:
    from warden.app import Orchestrator

    orchestrator = Orchestrator()

    # Handle graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await orchestrator.start()
        await shutdown_event.wait()
    finally:
        await orchestrator.shutdown()


async def ask(args: argparse.Namespace) -> int:
    """Run a single prompt against a group and print the reply."""
    from warden.app import Orchestrator, format_reply

    orchestrator = Orchestrator()
    try:
        result = await orchestrator.handle_message(args.group, args.prompt, args.session, context_mode=args.context_mode)
    finally:
        await orchestrator.shutdown()

    print(format_reply(result))
    return 0 if result.success else 1


def schedule(args: argparse.Namespace) -> int:
    from warden.app import Orchestrator

    orchestrator = Orchestrator()
    orchestrator.init()
    assert orchestrator.tasks is not None
    task_id = orchestrator.tasks.create(
        args.group,
        args.chat or args.group,
        args.prompt,
        args.kind,
        args.value,
        context_mode=args.context_mode,
    )
    task = orchestrator.tasks.get_by_id(task_id)
    print(f"{task_id} next run {task.next_run.isoformat() if task and task.next_run else '-'}")
    return 0


def list_tasks(args: argparse.Namespace) -> int:
    from warden.app import Orchestrator

    orchestrator = Orchestrator()
    orchestrator.init()
    assert orchestrator.tasks is not None
    tasks = orchestrator.tasks.get_for_group(args.group) if args.group else orchestrator.tasks.get_all()
    for task in tasks:
        next_run = task.next_run.isoformat() if task.next_run else "-"
        print(f"{task.id}\t{task.group_id}\t{task.status}\t{task.schedule_kind} {task.schedule_value!r}\t{next_run}")
    return 0


def maintain(args: argparse.Namespace) -> int:
    """Snapshot oversized memory artifacts and expire old group logs once."""
    from warden.groups.maintenance import WorkspaceMaintenance
    from warden.groups.workspace import WorkspaceManager

    workspace = WorkspaceManager()
    maintenance = WorkspaceMaintenance(workspace)
    reports = [maintenance.run_for_group(workspace.paths_for(args.group))] if args.group else maintenance.run()
    for report in reports:
        print(f"{report.group_id}\tarchived {len(report.archives)}\tcleaned {report.cleaned}")
        for error in report.errors:
            print(f"  {error}", file=sys.stderr)
    return 1 if any(report.errors for report in reports) else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="warden", description="Agent execution and task scheduling service")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the scheduler until interrupted (default)")

    ask_parser = sub.add_parser("ask", help="Run one prompt for a group")
    ask_parser.add_argument("group")
    ask_parser.add_argument("prompt")
    ask_parser.add_argument("--session", help="Session id to continue")
    ask_parser.add_argument("--context-mode", choices=["append", "replace", "isolated"], default="append")

    schedule_parser = sub.add_parser("schedule", help="Create a scheduled task")
    schedule_parser.add_argument("group")
    schedule_parser.add_argument("kind", choices=["once", "interval", "cron"])
    schedule_parser.add_argument("value", help="ISO timestamp, seconds, or cron expression")
    schedule_parser.add_argument("prompt")
    schedule_parser.add_argument("--chat", help="Chat that receives the results")
    schedule_parser.add_argument("--context-mode", choices=["append", "replace", "isolated"], default="isolated")

    tasks_parser = sub.add_parser("tasks", help="List scheduled tasks")
    tasks_parser.add_argument("--group")

    maintain_parser = sub.add_parser("maintain", help="Archive large memory files and delete old group logs")
    maintain_parser.add_argument("--group")
    return parser


def run() -> None:
    args = build_parser().parse_args()

    try:
        if args.command == "ask":
            sys.exit(asyncio.run(ask(args)))
        if args.command == "schedule":
            sys.exit(schedule(args))
        if args.command == "tasks":
            sys.exit(list_tasks(args))
        if args.command == "maintain":
            sys.exit(maintain(args))
        asyncio.run(serve())
    except WardenError as err:
        print(f"error: {err}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
