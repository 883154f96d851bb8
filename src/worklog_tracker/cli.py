"""Command line interface for the worklog tracker."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date

from .config import TrackerSettings
from .git import GitRunnerError
from .maintenance import mark_synced, reset_repository
from .repos import ConfigLoadError, ConfigLoader
from .scanner import ScanOrchestrator, ScanReport
from .server import configure_logging
from .storage import ActivityLogStore, RepoStateStore, ScanLock, StoreError
from .summary import format_hours, summarize_day, summarize_month

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REPO_ERRORS = 2


def load_settings() -> TrackerSettings:
    return TrackerSettings()


def _lock(settings: TrackerSettings) -> ScanLock:
    return ScanLock(settings.resolved_lock_path, timeout=settings.lock_timeout)


def _print_report(report: ScanReport) -> None:
    for result in report.results:
        if result.ok:
            line = f"{result.repository}: ok, {result.added} added"
            if result.duplicates:
                line += f", {result.duplicates} duplicates dropped"
        else:
            line = f"{result.repository}: ERROR {result.error}"
        print(line)
    if report.log_written:
        print(f"Activity log updated ({report.added} entries)")
    else:
        print("No new activity")


def cmd_scan(args: argparse.Namespace) -> int:
    settings = load_settings()
    try:
        config = ConfigLoader(settings.config_path).load()
        orchestrator = ScanOrchestrator.from_settings(settings, config)
        report = orchestrator.scan(config.repositories)
    except (ConfigLoadError, StoreError, GitRunnerError) as exc:
        print(f"Scan aborted: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)
    return EXIT_REPO_ERRORS if report.any_errors else EXIT_OK


def cmd_summary(args: argparse.Namespace) -> int:
    settings = load_settings()
    try:
        log = ActivityLogStore(settings.log_path).load()
    except StoreError as exc:
        print(f"Cannot read activity log: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if args.month:
        try:
            year_text, month_text = args.month.split("-", 1)
            year, month = int(year_text), int(month_text)
            if not 1 <= month <= 12:
                raise ValueError(args.month)
        except ValueError:
            print(f"Invalid month '{args.month}', expected YYYY-MM", file=sys.stderr)
            return EXIT_FAILURE
        summary = summarize_month(log, year, month)
        if args.json:
            print(json.dumps(summary.to_dict(), indent=2))
            return EXIT_OK
        print(f"{summary.name}: {format_hours(summary.total)}")
        for week, hours in sorted(summary.weeks.items()):
            print(f"  Week {week}: {format_hours(hours)}")
        for line in summary.tasks:
            print(f"  • {line.task_id}: {line.hours:.2f} hours")
        return EXIT_OK

    try:
        day = date.fromisoformat(args.date) if args.date else date.today()
    except ValueError:
        print(f"Invalid date '{args.date}', expected YYYY-MM-DD", file=sys.stderr)
        return EXIT_FAILURE
    summary = summarize_day(log, day)
    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
        return EXIT_OK
    if not summary.lines:
        print(f"{day.isoformat()}: no time logged")
        return EXIT_OK
    print(f"{day.isoformat()} summary:")
    for line in summary.lines:
        print(f"  • {line.task_id} ({line.repository}): {line.hours:.2f} hours")
    print(f"  Total: {summary.total:.2f} hours")
    return EXIT_OK


def cmd_state(args: argparse.Namespace) -> int:
    settings = load_settings()
    try:
        state = RepoStateStore(settings.state_path).load()
    except StoreError as exc:
        print(f"Cannot read repo state: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if args.json:
        payload = {repo_id: cursor.model_dump(mode="json") for repo_id, cursor in sorted(state.items())}
        print(json.dumps(payload, indent=2))
        return EXIT_OK
    for repo_id, cursor in sorted(state.items()):
        status = cursor.status if cursor.status == "ok" else f"error: {cursor.error}"
        print(f"{repo_id} [{status}]")
        for branch, sha in sorted(cursor.branches.items()):
            print(f"  {branch} -> {sha[:12]}")
    return EXIT_OK


def cmd_reset(args: argparse.Namespace) -> int:
    settings = load_settings()
    try:
        removed = reset_repository(
            RepoStateStore(settings.state_path), args.repository, lock=_lock(settings)
        )
    except StoreError as exc:
        print(f"Reset failed: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    if removed:
        print(f"Cursor for {args.repository} reset")
    else:
        print(f"No cursor stored for {args.repository}")
    return EXIT_OK


def cmd_mark_synced(args: argparse.Namespace) -> int:
    settings = load_settings()
    try:
        changed = mark_synced(
            ActivityLogStore(settings.log_path), args.entry_ids, lock=_lock(settings)
        )
    except StoreError as exc:
        print(f"Update failed: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"{changed} entries marked as synced")
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    from .server import main as serve

    serve()
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Track work across local git repositories")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="cmd")

    p_scan = sub.add_parser("scan", help="Run one scan over all configured repositories")
    p_scan.add_argument("--json", action="store_true", help="Output the scan report as JSON")
    p_scan.set_defaults(func=cmd_scan)

    p_summary = sub.add_parser("summary", help="Summarize logged hours")
    p_summary.add_argument("--date", help="Day to summarize (YYYY-MM-DD, default today)")
    p_summary.add_argument("--month", help="Month to summarize (YYYY-MM)")
    p_summary.add_argument("--json", action="store_true", help="Output JSON")
    p_summary.set_defaults(func=cmd_summary)

    p_state = sub.add_parser("state", help="Show stored repository cursors")
    p_state.add_argument("--json", action="store_true", help="Output JSON")
    p_state.set_defaults(func=cmd_state)

    p_reset = sub.add_parser("reset", help="Forget the cursor of one repository")
    p_reset.add_argument("repository", help="Repository id")
    p_reset.set_defaults(func=cmd_reset)

    p_mark = sub.add_parser("mark-synced", help="Mark log entries as sent to the issue tracker")
    p_mark.add_argument("entry_ids", nargs="+", metavar="ENTRY_ID")
    p_mark.set_defaults(func=cmd_mark_synced)

    p_serve = sub.add_parser("serve", help="Run the MCP server")
    p_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    if args.cmd != "serve":
        configure_logging("DEBUG" if args.verbose else load_settings().log_level)
    exit_code = args.func(args)
    if exit_code:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
