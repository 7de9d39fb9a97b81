"""
vitalcheck -- command-line entry point.

Usage:
    vitalcheck init-db
    vitalcheck run
    vitalcheck scheduler
    vitalcheck status
    vitalcheck history [--limit N]
    vitalcheck schedule show
    vitalcheck schedule set FILE
    vitalcheck register-token --subject-id ID --token TOKEN [--status ACTIVE]

Global options ``--config PATH`` (else ``$VITALCHECK_CONFIG``) and
``--log-level LEVEL`` apply to every command.
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
from dataclasses import asdict
from typing import Any, Sequence

from vitalcheck_config.loader import load_schedule_file, load_settings
from vitalcheck_config.schema import ScheduleWindowDef
from vitalcheck_kernel.db.engine import create_tables
from vitalcheck_kernel.exceptions import ConfigurationError, ScheduleError
from vitalcheck_kernel.logging_config import configure_logging, get_logger

from vitalcheck_batch.orchestrator import VitalCheckOrchestrator

logger = get_logger("batch.cli")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vitalcheck",
        description="Scheduled vital-status verification batch.",
    )
    parser.add_argument("--config", help="Path to the YAML settings file")
    parser.add_argument("--log-level", help="Override logging.level (DEBUG, INFO, ...)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and seed the run state")
    sub.add_parser("run", help="Run once now, without a schedule window")
    sub.add_parser("scheduler", help="Run the window scheduler until interrupted")
    sub.add_parser("status", help="Show the persisted run state")

    history = sub.add_parser("history", help="List past runs, newest first")
    history.add_argument("--limit", type=int, default=None)

    schedule = sub.add_parser("schedule", help="Show or replace schedule windows")
    schedule_sub = schedule.add_subparsers(dest="schedule_command", required=True)
    schedule_sub.add_parser("show", help="Print the stored windows")
    schedule_set = schedule_sub.add_parser("set", help="Replace all windows from a file")
    schedule_set.add_argument("file")

    token = sub.add_parser("register-token", help="Store a civil-registry credential token")
    token.add_argument("--subject-id", required=True)
    token.add_argument("--token", required=True)
    token.add_argument("--status", default="ACTIVE")

    return parser.parse_args(argv)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


# =============================================================================
# Commands
# =============================================================================


def _cmd_init_db(orch: VitalCheckOrchestrator, args: argparse.Namespace) -> int:
    create_tables()
    state = orch.store.ensure_state()
    print(f"Database ready (phase={state.phase}).")
    return 0


def _cmd_run(orch: VitalCheckOrchestrator, args: argparse.Namespace) -> int:
    result = orch.create_executor().run_process(trigger="manual")
    _print_json(result.to_dict())
    return 0 if result.ok else 1


def _cmd_scheduler(orch: VitalCheckOrchestrator, args: argparse.Namespace) -> int:
    scheduler = orch.create_scheduler()
    scheduler.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("Stopping scheduler...")
    finally:
        scheduler.stop()
    return 0


def _cmd_status(orch: VitalCheckOrchestrator, args: argparse.Namespace) -> int:
    _print_json(asdict(orch.status()))
    return 0


def _cmd_history(orch: VitalCheckOrchestrator, args: argparse.Namespace) -> int:
    _print_json([asdict(run) for run in orch.store.list_log_runs(limit=args.limit)])
    return 0


def _cmd_schedule(orch: VitalCheckOrchestrator, args: argparse.Namespace) -> int:
    if args.schedule_command == "set":
        windows = load_schedule_file(args.file)
        count = orch.store.replace_schedule_windows(windows)
        print(f"Stored {count} window(s).")
        return 0

    _print_json([
        ScheduleWindowDef(
            month=w.month,
            day=w.day,
            start_time=w.start_time,
            duration_hours=w.duration_hours,
        ).to_input()
        for w in orch.store.list_schedule_windows()
    ])
    return 0


def _cmd_register_token(orch: VitalCheckOrchestrator, args: argparse.Namespace) -> int:
    orch.store.upsert_credential_token(args.subject_id, args.token, status=args.status)
    print(f"Token stored for {args.subject_id} ({args.status}).")
    return 0


_COMMANDS = {
    "init-db": _cmd_init_db,
    "run": _cmd_run,
    "scheduler": _cmd_scheduler,
    "status": _cmd_status,
    "history": _cmd_history,
    "schedule": _cmd_schedule,
    "register-token": _cmd_register_token,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        settings = load_settings(args.config)
        configure_logging(
            level=args.log_level or settings.logging.level,
            fmt=settings.logging.format,
        )
        orch = VitalCheckOrchestrator.from_settings(settings)
        return _COMMANDS[args.command](orch, args)
    except (ConfigurationError, ScheduleError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
