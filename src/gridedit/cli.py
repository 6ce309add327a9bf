"""
Command-line interface for project history logs.
"""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from .batch import ParseError, load_grid_request
from .changelog import HistoryLog
from .config import WorkspaceConfig, load_config
from .exceptions import GridEditError
from .history import History
from .project import Project


LOG_HELP = "History log file, or a project id in the configured workspace"


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the gridedit CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except ParseError as e:
        print(f"\n  [PARSE ERROR] {e}")
        if e.line:
            print(f"               Line: {e.line}")
        return 1
    except (GridEditError, OSError) as e:
        print(f"\n  [ERROR] {e}")
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gridedit",
        description="Inspect, replay and edit project history logs",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s (gridedit)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Workspace configuration file (YAML)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--tolerate-truncated-tail",
        action="store_true",
        help="Discard an incomplete final record instead of failing",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command")

    show_parser = subparsers.add_parser("show", help="List history entries")
    show_parser.add_argument("log", type=Path, help=LOG_HELP)
    show_parser.set_defaults(func=cmd_show)

    replay_parser = subparsers.add_parser(
        "replay",
        help="Replay a history log and print the resulting grid",
    )
    replay_parser.add_argument("log", type=Path, help=LOG_HELP)
    replay_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of rows to print (default: 10)",
    )
    replay_parser.set_defaults(func=cmd_replay)

    apply_parser = subparsers.add_parser(
        "apply",
        help="Replace the grid with one described in a YAML file",
    )
    apply_parser.add_argument("log", type=Path, help=LOG_HELP)
    apply_parser.add_argument("file", type=Path, help="YAML grid request")
    apply_parser.add_argument(
        "--description",
        type=str,
        help="Override the description from the file",
    )
    apply_parser.set_defaults(func=cmd_apply)

    undo_parser = subparsers.add_parser("undo", help="Undo the newest done entry")
    undo_parser.add_argument("log", type=Path, help=LOG_HELP)
    undo_parser.set_defaults(func=cmd_undo)

    redo_parser = subparsers.add_parser("redo", help="Redo the oldest undone entry")
    redo_parser.add_argument("log", type=Path, help=LOG_HELP)
    redo_parser.set_defaults(func=cmd_redo)

    compact_parser = subparsers.add_parser(
        "compact",
        help="Rewrite a history log with one record per entry",
    )
    compact_parser.add_argument("log", type=Path, help=LOG_HELP)
    compact_parser.set_defaults(func=cmd_compact)

    return parser


def _recover(args: argparse.Namespace, must_exist: bool = True) -> History:
    """Replay the log named on the command line onto a fresh project."""
    config = load_config(args.config)
    path = _log_path(args.log, config)
    if must_exist and not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    project = Project(args.log.stem)
    log = HistoryLog(path, fsync=config.fsync)
    return History.recover(
        project, log, tolerate_truncated_tail=args.tolerate_truncated_tail
    )


def _log_path(log: Path, config: WorkspaceConfig) -> Path:
    """Resolve a bare project id (no directory, no suffix) in the workspace."""
    if log.suffix or log.parent != Path("."):
        return log
    return config.log_path(log.name)


def cmd_show(args: argparse.Namespace) -> int:
    """Handle show command."""
    history = _recover(args)
    entries = history.past + history.future

    if not entries:
        print("No history entries.")
        return 0

    done_ids = {e.id for e in history.past}
    print(f"\nHistory of {history.project.id} ({len(entries)} entries):\n")
    print(f"{'':<2}{'ID':<6} {'Date':<20} {'Description'}")
    print("-" * 60)
    for entry in entries:
        marker = "*" if entry.id in done_ids else " "
        when = entry.time.strftime("%Y-%m-%d %H:%M:%S")
        print(f"{marker:<2}{entry.id:<6} {when:<20} {entry.description}")

    print(f"\nLast done entry: {history.last_done_entry_id}")
    return 0


def cmd_replay(args: argparse.Namespace) -> int:
    """Handle replay command."""
    history = _recover(args)
    snapshot = history.project.snapshot()

    print("\t".join(snapshot.column_names))
    for values in snapshot.values()[: max(args.limit, 0)]:
        print("\t".join(_format_value(v) for v in values))

    print(f"\n{len(snapshot.columns)} column(s), {len(snapshot.rows)} row(s)")
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    """Handle apply command."""
    request = load_grid_request(args.file)
    history = _recover(args, must_exist=False)

    description = args.description or request.description
    entry = history.add_entry(description, request.to_change())

    print(f"Applied entry {entry.id}: {description}")
    print(f"  Columns: {len(request.columns)}")
    print(f"  Rows:    {len(request.rows)}")
    return 0


def cmd_undo(args: argparse.Namespace) -> int:
    """Handle undo command."""
    entry = _recover(args).undo()
    if entry is None:
        print("Nothing to undo.")
        return 1
    print(f"Undid entry {entry.id}: {entry.description}")
    return 0


def cmd_redo(args: argparse.Namespace) -> int:
    """Handle redo command."""
    entry = _recover(args).redo()
    if entry is None:
        print("Nothing to redo.")
        return 1
    print(f"Redid entry {entry.id}: {entry.description}")
    return 0


def cmd_compact(args: argparse.Namespace) -> int:
    """Handle compact command."""
    history = _recover(args)
    history.compact()
    print(f"Compacted {history.log.path}: {len(history.past) + len(history.future)} entries")
    return 0


def _format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


if __name__ == "__main__":
    sys.exit(main())
