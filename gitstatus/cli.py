"""
Command-line interface for gitstatus.

Provides the user-facing commands for collecting repositories into the
cache and reading the cached results back.

I'm the part you actually type. Everything else just does what I say.
"""

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from gitstatus import __version__
from gitstatus.config import GitStatusConfig

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI output."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s" if not verbose else "%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _get_config(args: argparse.Namespace) -> GitStatusConfig:
    """Build GitStatusConfig from CLI args."""
    base_path = getattr(args, "base_path", None)
    if base_path:
        return GitStatusConfig(base_path=Path(base_path))
    return GitStatusConfig()


def _print_json(data: object) -> None:
    """Print data as formatted JSON to stdout."""
    print(json.dumps(data, indent=2, default=str))


def _first_line(message: str) -> str:
    return message.splitlines()[0] if message else ""


def _format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


# ─── Command Handlers ────────────────────────────────────────────────

def cmd_check(args: argparse.Namespace) -> int:
    """Collect every repository under a path and save it to the cache."""
    from gitstatus.discovery import NoRepositoryFoundError
    from gitstatus.inventory import Inventory

    config = _get_config(args)
    config.ensure_directories()
    inventory = Inventory(config=config)

    path = Path(args.path)
    print(f"🤖 Checking repositories under {path}...")

    def on_progress(repo_path, success, completed, total):
        icon = "✅" if success else "❌"
        print(f"  {icon} [{completed}/{total}] {repo_path}")

    try:
        report = inventory.collect(
            path,
            detail_level=args.detail_level,
            max_workers=getattr(args, "parallel", None),
            on_progress=on_progress,
        )
    except NoRepositoryFoundError as e:
        print(f"  ❌ {e}")
        return 1

    for snapshot in report.snapshots:
        logger.debug("Status:\n%s", snapshot.status)
        logger.debug("Unpushed commits:\n%s", snapshot.unpushed_commits)
        logger.debug("Updates from remote:\n%s", snapshot.remote_updates)

    for error in report.errors:
        print(f"  ❌ {error}")

    print(f"\n  Done: {len(report.snapshots)} collected, {len(report.errors)} failed")

    slowest = report.slowest()
    if slowest:
        print("  Slowest:")
        for repo_path, elapsed in slowest:
            print(f"    {elapsed:6.2f}s  {repo_path}")

    return 0 if not report.errors else 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show one cached repository, or the summary of all of them."""
    from gitstatus.inventory import Inventory

    config = _get_config(args)
    inventory = Inventory(config=config)
    json_output = getattr(args, "json_output", False)

    if args.path:
        snapshot = inventory.get(args.path)
        if snapshot is None:
            print(f"Not in cache: {args.path}. Run 'gitstatus check {args.path}' first.")
            return 1

        if json_output:
            _print_json(snapshot.to_dict())
            return 0

        print(f"  Path:      {snapshot.path}")
        print(f"  Origin:    {snapshot.origin_url or '(none)'}")
        print(f"  Version:   {snapshot.schema_version}")
        print(f"  Changes:   {snapshot.status.count(chr(10))}")
        print(f"  Unpushed:  {snapshot.unpushed_commits.count(chr(10))}")
        print(f"  Updates:   {snapshot.remote_updates.count(chr(10))}")

        if snapshot.commits is None:
            print("\n  History not collected. Run 'gitstatus check -L 1' to collect it.")
        else:
            print(f"\n  Commits ({len(snapshot.commits)}):")
            for commit in snapshot.commits:
                print(f"    {commit.hash[:12]} {_format_time(commit.time)} "
                      f"{commit.author_email}: {_first_line(commit.message)}")
                print(f"      {commit.files_changed} | {commit.insertions} | {commit.deletions}")
        return 0

    summaries = inventory.rebuild_and_list_summaries()
    if json_output:
        _print_json([s.to_dict() for s in summaries])
        return 0

    if not summaries:
        print("No repositories cached. Run 'gitstatus check <path>' first.")
        return 0

    for summary in summaries:
        print(
            f"{summary.path} | {summary.status_lines} | "
            f"{summary.unpushed_commits_lines} | {summary.remote_updates_lines}"
        )
    return 0


def cmd_commits(args: argparse.Namespace) -> int:
    """Print the live commit history of a repository."""
    from gitstatus.git import GitCollaborator

    config = _get_config(args)
    git = GitCollaborator(command_timeout=config.command_timeout)
    path = Path(args.path).resolve()

    if not git.is_repository_root(path):
        print(f"Not a git repository root: {path}")
        return 1

    for commit in git.walk_history(path):
        print(
            f"{commit.hash} - {commit.author_email}: {_first_line(commit.message)} "
            f"({commit.files_changed} - {commit.insertions} - {commit.deletions})"
        )
    return 0


def cmd_languages(args: argparse.Namespace) -> int:
    """Print cached language statistics for a repository."""
    from gitstatus.inventory import Inventory

    config = _get_config(args)
    inventory = Inventory(config=config)

    snapshot = inventory.get(args.path)
    if snapshot is None:
        print(f"Not in cache: {args.path}")
        return 1
    if snapshot.languages is None:
        print("Language statistics not collected. Run 'gitstatus check -L 1' first.")
        return 1

    print(f"  {'Language':15s} {'Files':>7s} {'Lines':>9s} {'Code':>9s} {'Comments':>9s} {'Blanks':>9s}")
    for name, stats in snapshot.languages.items():
        print(
            f"  {name:15s} {stats.files:7d} {stats.lines:9d} {stats.code:9d} "
            f"{stats.comments:9d} {stats.blanks:9d}"
        )
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Show configuration status."""
    config = _get_config(args)
    status = config.get_status()

    print("🤖 gitstatus Configuration")
    print("=" * 50)
    print(f"\n  Base Path:       {status['base_path']}")
    print(f"  Config Exists:   {'✅' if status['config_exists'] else '❌'}")
    print(f"  Database:        {status['database_path']}")
    print(f"  Workers:         {status['max_workers'] or 'one per repository'}")
    print(f"  Command Timeout: {status['command_timeout']}s")
    print(f"  Fetch Timeout:   {status['fetch_timeout']}s")
    print()
    return 0


# ─── Argument Parser ─────────────────────────────────────────────────

def _detail_level(value: str) -> int:
    if value not in ("0", "1"):
        raise argparse.ArgumentTypeError("Detail level must be a number between 0 and 1")
    return int(value)


def _worker_count(value: str) -> int:
    try:
        count = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid worker count: {value!r}") from None
    if count < 1:
        raise argparse.ArgumentTypeError("Worker count must be at least 1")
    return count


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gitstatus",
        description="🤖 gitstatus — Checks the status of git repositories.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  gitstatus check ~/git-repos        # Collect every repo under a directory\n"
            "  gitstatus check -L 1 ~/git-repos   # Also collect history and languages\n"
            "  gitstatus status                   # Summary of all cached repos\n"
            "  gitstatus status ~/git-repos/app   # Details of one cached repo\n"
            "  gitstatus commits                  # Live history of the current repo\n"
        ),
    )

    parser.add_argument(
        "--version", action="version", version=f"gitstatus {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--base-path", dest="base_path", help="Override gitstatus base directory"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ─── check ────────────────────────────────
    check_parser = subparsers.add_parser(
        "check", help="Check the status of git repositories and save it to the database"
    )
    check_parser.add_argument("path", help="Repository or directory of repositories")
    check_parser.add_argument(
        "-L", "--detail-level", dest="detail_level", type=_detail_level, default=0,
        help="0: reuse cached history (default), 1: collect history and languages"
    )
    check_parser.add_argument(
        "-p", "--parallel", type=_worker_count, help="Maximum repositories checked at once"
    )

    # ─── status ───────────────────────────────
    status_parser = subparsers.add_parser(
        "status", help="Load the status of git repositories from the database"
    )
    status_parser.add_argument("path", nargs="?", help="Show one repository in detail")
    status_parser.add_argument("-j", "--json", dest="json_output", action="store_true")

    # ─── commits ──────────────────────────────
    commits_parser = subparsers.add_parser("commits", help="Print the history of a repository")
    commits_parser.add_argument("path", nargs="?", default=".", help="Repository (default: .)")

    # ─── languages ────────────────────────────
    languages_parser = subparsers.add_parser(
        "languages", help="Show cached language statistics of a repository"
    )
    languages_parser.add_argument("path", help="Repository path")

    # ─── config ───────────────────────────────
    subparsers.add_parser("config", help="Show configuration")

    return parser


# ─── Main Entry Point ────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    _setup_logging(verbose=getattr(args, "verbose", False))

    command = args.command

    if not command:
        parser.print_help()
        return 0

    handlers = {
        "check": cmd_check,
        "status": cmd_status,
        "commits": cmd_commits,
        "languages": cmd_languages,
        "config": cmd_config,
    }

    handler = handlers.get(command)
    if not handler:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted.")
        return 130
    except Exception as e:
        if getattr(args, "verbose", False):
            logger.exception("Error: %s", e)
        else:
            print(f"\n❌ Error: {e}")
            print("   Run with -v for details.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
