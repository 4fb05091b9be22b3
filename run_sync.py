#!/usr/bin/env python3
"""
CLI interface for the open-issue sync.

Commands:
  sync        - Run one sync across all targets
  watch       - Run the sync on a schedule (at least hourly)
  stats       - Show stored issue statistics
  issues      - List stored issues
  rate-limit  - Show the current GitHub API quota
  targets     - Show the configured repository targets

Examples:
  # Run one sync and print the summary
  python run_sync.py sync

  # Sync a single repository, print JSON
  python run_sync.py sync --target vuejs/vue --json

  # Sync every 4 hours
  python run_sync.py watch --interval 14400

  # Show beginner issues estimated under an hour
  python run_sync.py issues --difficulty beginner --time "<1h"
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from classification.difficulty import DifficultyLevel
from classification.time_estimate import TimeBucket
from services.config_loader import ConfigLoader
from services.targets import RepositoryTarget, targets_by_language
from storage.issue_store import IssueStore
from workflows.pipeline import IssueSyncPipeline, SyncConfig, SyncStats
from workflows.scheduler import run_scheduled_sync


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(verbose: bool = False):
    """Configure logging for the sync"""
    level = logging.DEBUG if verbose else logging.INFO

    # Format with colors if terminal supports it
    if sys.stdout.isatty():
        colors = {
            "DEBUG": "\033[36m",
            "INFO": "\033[32m",
            "WARNING": "\033[33m",
            "ERROR": "\033[31m",
            "CRITICAL": "\033[35m",
            "RESET": "\033[0m",
        }

        class ColoredFormatter(logging.Formatter):
            def format(self, record):
                levelname = record.levelname
                if levelname in colors:
                    record.levelname = f"{colors[levelname]}{levelname}{colors['RESET']}"
                return super().format(record)

        formatter = ColoredFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=[handler])

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def build_config(args) -> SyncConfig:
    """Environment config with command line overrides applied"""
    config = SyncConfig.from_env()

    if getattr(args, "db_path", None):
        config.db_path = args.db_path
    if getattr(args, "config", None):
        config.config_path = args.config
    if getattr(args, "max_pages", None):
        config.max_pages = args.max_pages
    if getattr(args, "page_delay", None) is not None:
        config.page_delay_seconds = args.page_delay

    return config


def select_targets(
    targets: List[RepositoryTarget],
    names: Optional[List[str]],
) -> List[RepositoryTarget]:
    """Keep only the named targets; unknown names raise ValueError."""
    if not names:
        return list(targets)

    by_name = {t.full_name.lower(): t for t in targets}
    selected = []
    for name in names:
        target = by_name.get(name.lower())
        if target is None:
            raise ValueError(f"Unknown target: {name}")
        selected.append(target)
    return selected


async def cmd_sync(args):
    """Run one sync"""
    config = build_config(args)
    pipeline = IssueSyncPipeline(config)

    try:
        await pipeline.initialize()

        targets = None
        if args.target:
            targets = select_targets(list(pipeline.config_loader.get_targets()), args.target)

        if not args.json:
            print("=" * 70)
            print("OPEN ISSUE SYNC - RUN")
            print("=" * 70)
            print(f"\nDatabase: {config.db_path}")
            print(f"Config: {config.config_path or 'defaults'}")
            print(f"Max pages per target: {config.max_pages}")
            print()

        stats = await pipeline.run(targets)

        if args.json:
            print(json.dumps(stats.to_dict(), indent=2))
            return

        print()
        print("=" * 70)
        print("SYNC RESULTS")
        print("=" * 70)
        print()
        _print_stats(stats)

        if args.output:
            output_path = Path(args.output)
            output_path.write_text(json.dumps(stats.to_dict(), indent=2))
            print(f"\nResults saved to: {output_path}")

    finally:
        await pipeline.close()


async def cmd_watch(args):
    """Run the sync on a schedule"""
    print("=" * 70)
    print("OPEN ISSUE SYNC - WATCH")
    print("=" * 70)

    config = build_config(args)
    interval = args.interval or config.sync_interval_seconds
    pipeline = IssueSyncPipeline(config)

    try:
        await pipeline.initialize()
        await run_scheduled_sync(pipeline, interval, max_runs=args.max_runs)
    finally:
        await pipeline.close()


async def cmd_stats(args):
    """Show stored issue statistics"""
    print("=" * 70)
    print("OPEN ISSUE SYNC - STATISTICS")
    print("=" * 70)

    config = build_config(args)
    store = IssueStore(config.db_path)

    try:
        await store.initialize()
        stats = await store.get_stats()

        print()
        print("STORAGE")
        print("-" * 70)
        print(f"Database: {stats.get('database_path', 'Unknown')}")
        print(f"Repositories: {stats.get('total_repositories', 0)}")
        print(f"Issues: {stats.get('total_issues', 0)}")
        print(f"Labels: {stats.get('total_labels', 0)}")
        print()

        print("Issues by difficulty:")
        for level, count in stats.get("issues_by_difficulty", {}).items():
            print(f"  {level}: {count}")
        print()

        print("Issues by estimated time:")
        for bucket, count in stats.get("issues_by_estimated_time", {}).items():
            print(f"  {bucket}: {count}")
        print()

        print("Issues by repository:")
        for repository, count in stats.get("issues_by_repository", {}).items():
            print(f"  {repository}: {count}")

    finally:
        await store.close()


async def cmd_issues(args):
    """List stored issues"""
    config = build_config(args)
    store = IssueStore(config.db_path)

    try:
        await store.initialize()
        issues = await store.list_issues(
            repository=args.repository,
            difficulty=DifficultyLevel(args.difficulty) if args.difficulty else None,
            estimated_time=TimeBucket(args.time) if args.time else None,
            limit=args.limit,
        )

        if not issues:
            print("No issues found")
            return

        for issue in issues:
            print(
                f"[{issue.difficulty_level.value:>12}] [{issue.estimated_time.value:>4}] "
                f"{issue.title}"
            )
            print(f"         {issue.html_url or ''}")
            if issue.label_names:
                print(f"         labels: {', '.join(issue.label_names)}")

        print(f"\n{len(issues)} issue(s)")

    finally:
        await store.close()


async def cmd_rate_limit(args) -> int:
    """Show the current GitHub API quota"""
    config = build_config(args)
    pipeline = IssueSyncPipeline(config)

    try:
        data = await pipeline.check_rate_limit()
    finally:
        await pipeline.close()

    if data is None:
        print("Could not read the GitHub rate limit")
        return 1

    resources = data.get("resources") or {}
    for name in ("core", "search"):
        quota = resources.get(name) or {}
        print(f"{name}: {quota.get('remaining', '?')}/{quota.get('limit', '?')}")
    return 0


async def cmd_targets(args):
    """Show configured targets"""
    config = build_config(args)
    loader = ConfigLoader(config.config_path)
    active = loader.get_active_config()

    targets = list(active.targets)
    if args.language:
        targets = targets_by_language(targets, args.language)

    print(f"Source: {active.source}")
    print()
    for target in targets:
        size = " (large)" if target.large_project else ""
        print(f"{target.full_name} [{target.language}]{size}")
        for label in target.labels:
            print(f"  - {label}")


# =============================================================================
# HELPERS
# =============================================================================

def _print_stats(stats: Optional[SyncStats]):
    """Pretty-print sync statistics"""
    if stats is None:
        print("A sync run was already in progress; nothing done")
        return

    print("TARGETS")
    print("-" * 70)
    print(f"Targets run: {stats.targets_run}")
    print(f"Succeeded: {stats.targets_succeeded}")
    print(f"Failed: {stats.targets_failed}")
    print()

    for target_result in stats.target_results:
        print(
            f"  {target_result.target}: {target_result.status.value} "
            f"({target_result.pages_fetched} pages, {target_result.result.summary()})"
        )
    print()

    print("ISSUES")
    print("-" * 70)
    print(f"Processed: {stats.issues_processed}")
    print(f"Skipped: {stats.issues_skipped}")
    if stats.issues_invalid:
        print(f"Invalid: {stats.issues_invalid}")
    print(stats.result.summary())
    print()

    if stats.errors:
        print("ERRORS")
        print("-" * 70)
        for error in stats.errors:
            print(f"  • {error}")
        print()

    print("TIMING")
    print("-" * 70)
    print(f"Started: {stats.started_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    if stats.completed_at:
        print(f"Completed: {stats.completed_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        print(f"Duration: {stats.duration_seconds:.2f}s")


# =============================================================================
# CLI ARGUMENT PARSER
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""

    parser = argparse.ArgumentParser(
        description="Open issue sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables:
  GITHUB_TOKEN               - GitHub API token
  ISSUE_DB_PATH              - Path to SQLite database (default: issues.db)
  SYNC_CONFIG_PATH           - JSON file with targets and difficulty weights
  SYNC_CONFIG_TTL_SECONDS    - Config cache lifetime (default: 300)
  SYNC_INTERVAL_SECONDS      - Interval for watch (default: 14400, minimum 3600)
  PAGE_DELAY_SECONDS         - Pause after each page (default: 30)
  RECOVERY_DELAY_SECONDS     - Pause after an empty page (default: 120)
  MAX_PAGES                  - Page cap per target (default: 10)
  PAGE_SIZE                  - Items per page, 1-100 (default: 100)
  REFRESH_STARS              - Refresh star counts each run (default: true)
        """,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--db-path",
        type=str,
        help="Path to SQLite database (overrides ISSUE_DB_PATH)",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="Path to targets/difficulty JSON (overrides SYNC_CONFIG_PATH)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Run one sync across all targets")
    sync_parser.add_argument(
        "--target",
        action="append",
        help="Only sync this owner/name (repeatable)",
    )
    sync_parser.add_argument(
        "--max-pages",
        type=int,
        help="Page cap per target",
    )
    sync_parser.add_argument(
        "--page-delay",
        type=float,
        help="Seconds to pause after each page",
    )
    sync_parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )
    sync_parser.add_argument(
        "--output",
        type=str,
        help="Save results to JSON file",
    )

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Run the sync on a schedule")
    watch_parser.add_argument(
        "--interval",
        type=int,
        help="Seconds between runs (minimum 3600)",
    )
    watch_parser.add_argument(
        "--max-runs",
        type=int,
        help="Stop after this many runs",
    )

    # Stats command
    subparsers.add_parser("stats", help="Show stored issue statistics")

    # Issues command
    issues_parser = subparsers.add_parser("issues", help="List stored issues")
    issues_parser.add_argument(
        "--repository",
        type=str,
        help="Filter by owner/name",
    )
    issues_parser.add_argument(
        "--difficulty",
        choices=[level.value for level in DifficultyLevel],
        help="Filter by difficulty",
    )
    issues_parser.add_argument(
        "--time",
        choices=[bucket.value for bucket in TimeBucket],
        help="Filter by estimated time",
    )
    issues_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum issues to show (default: 20)",
    )

    # Rate limit command
    subparsers.add_parser("rate-limit", help="Show the current GitHub API quota")

    # Targets command
    targets_parser = subparsers.add_parser("targets", help="Show configured targets")
    targets_parser.add_argument(
        "--language",
        type=str,
        help="Only show targets in this language",
    )

    return parser


# =============================================================================
# MAIN
# =============================================================================

async def main():
    """Main entry point"""
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args()

    setup_logging(verbose=args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = 0
        if args.command == "sync":
            await cmd_sync(args)
        elif args.command == "watch":
            await cmd_watch(args)
        elif args.command == "stats":
            await cmd_stats(args)
        elif args.command == "issues":
            await cmd_issues(args)
        elif args.command == "rate-limit":
            exit_code = await cmd_rate_limit(args)
        elif args.command == "targets":
            await cmd_targets(args)
        else:
            print(f"Unknown command: {args.command}")
            parser.print_help()
            sys.exit(1)

        if exit_code != 0:
            sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.exception("Fatal error")
        print(f"\nFatal error: {e}")
        sys.exit(1)


def cli():
    """Console script entry point"""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
