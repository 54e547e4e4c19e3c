"""Command-line interface for regwatch."""

import asyncio
import json
import sys
from typing import Any, Dict, List, Tuple

import yaml

from regwatch.change_detector import DocumentChangeDetector
from regwatch.config import CrawlConfigError, settings
from regwatch.database import AbstractStore, get_store
from regwatch.logging_config import get_logger, setup_logging
from regwatch.multi_page_crawler import run_crawl_job
from regwatch.robots import RobotsPolicyCache

logger = get_logger(__name__)


def load_sources_file(path: str) -> List[Dict[str, Any]]:
    """Read source definitions from a YAML file.

    The file holds a top-level ``sources`` list (or a bare list) of
    mappings with ``name``, ``url`` and optional ``type`` and
    ``crawler_config`` keys.

    Args:
        path: YAML file path

    Returns:
        List of source definitions

    Raises:
        ValueError: If the file does not describe a list of sources
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("sources", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of sources")

    for entry in data:
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("url"):
            raise ValueError(f"{path}: every source needs a name and a url, got {entry!r}")
    return data


async def seed_sources(store: AbstractStore, entries: List[Dict[str, Any]]) -> Tuple[int, int]:
    """Register sources that are not already present by name.

    Returns:
        Tuple of (created, skipped) counts
    """
    created = skipped = 0
    for entry in entries:
        existing = await store.find_source_by_name(entry["name"])
        if existing is not None:
            logger.info(f"Source already exists: {entry['name']} ({existing.id})")
            skipped += 1
            continue

        source = await store.add_source(
            entry["name"],
            entry["url"],
            source_type=entry.get("type", "news"),
            crawler_config=entry.get("crawler_config"),
        )
        logger.info(f"✓ Created source: {source.name} ({source.id})")
        created += 1
    return created, skipped


def _crawl_overrides(args) -> Dict[str, Any]:
    overrides = {
        "max_depth": args.max_depth,
        "max_pages": args.max_pages,
        "concurrency": args.concurrency,
        "politeness_delay": args.delay,
    }
    if args.skip_category_pages:
        overrides["skip_category_pages"] = True
    if args.track_changes:
        overrides["track_changes"] = True
    return {k: v for k, v in overrides.items() if v is not None}


def init_db_command(args):
    store = get_store(db_url=args.db)
    store.close()
    print(f"Database ready: {store.db_url}")


def add_source_command(args):
    crawler_config = json.loads(args.config) if args.config else None
    store = get_store(db_url=args.db)
    try:
        source = asyncio.run(store.add_source(args.name, args.url, args.type, crawler_config))
    finally:
        store.close()
    print(f"Added source {source.id}: {source.name} ({source.type}) {source.url}")


def seed_sources_command(args):
    entries = load_sources_file(args.file)
    store = get_store(db_url=args.db)
    try:
        created, skipped = asyncio.run(seed_sources(store, entries))
    finally:
        store.close()
    print(f"Sources created: {created}, already present: {skipped}")


def crawl_command(args):
    store = get_store(db_url=args.db)
    robots = RobotsPolicyCache()
    try:
        job, stats = asyncio.run(
            run_crawl_job(store, robots, args.source_id, overrides=_crawl_overrides(args))
        )
    except (CrawlConfigError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        print(f"Crawl failed: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        store.close()

    print(json.dumps({"job_id": job.id, "status": job.status.value, **stats.to_dict()}, indent=2))


def changes_command(args):
    store = get_store(db_url=args.db)
    detector = DocumentChangeDetector(store)
    try:
        if args.review:
            changes = asyncio.run(detector.get_changes_for_review(limit=args.limit))
        else:
            changes = asyncio.run(detector.get_recent_changes(args.source, limit=args.limit))
    finally:
        store.close()

    if not changes:
        print("No changes recorded.")
        return

    for change in changes:
        flag = " [REVIEW]" if change.requires_review else ""
        print(
            f"{change.detected_at}  {change.change_type:<16} {change.significance_score:.2f}{flag}  "
            f"{change.document_url}"
        )


def history_command(args):
    store = get_store(db_url=args.db)
    detector = DocumentChangeDetector(store)
    try:
        versions = asyncio.run(detector.get_version_history(args.source_id, args.url))
    finally:
        store.close()

    if not versions:
        print("No versions recorded.")
        return

    for version in versions:
        marker = "*" if version.is_current else " "
        print(f"{marker} v{version.version_number}  {version.change_type or '-':<16} {version.first_seen_at}  {version.document_title}")


def main():
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="regwatch - Crawl regulatory and news sources and track document changes"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper(),
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )
    parser.add_argument(
        "--db",
        default=settings.DATABASE_URL,
        help=f"Database URL (default: {settings.DATABASE_URL})",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Create the database schema.")
    init_parser.set_defaults(func=init_db_command)

    add_parser = subparsers.add_parser("add-source", help="Register a source to crawl.")
    add_parser.add_argument("name", help="Unique source name")
    add_parser.add_argument("url", help="Base URL to start crawling from")
    add_parser.add_argument(
        "--type",
        default="news",
        help="Source type; 'policy' sources produce alert documents (default: news)",
    )
    add_parser.add_argument(
        "--config",
        help='Crawler config as JSON, e.g. \'{"maxDepth": 3, "skipCategoryPages": true}\'',
    )
    add_parser.set_defaults(func=add_source_command)

    seed_parser = subparsers.add_parser("seed-sources", help="Register sources from a YAML file.")
    seed_parser.add_argument("file", type=str, help="YAML file with a 'sources' list")
    seed_parser.set_defaults(func=seed_sources_command)

    crawl_parser = subparsers.add_parser("crawl", help="Run a crawl job for a source.")
    crawl_parser.add_argument("source_id", type=int, help="Source id")
    crawl_parser.add_argument("--max-depth", type=int, help="Maximum link depth")
    crawl_parser.add_argument("--max-pages", type=int, help="Maximum pages to fetch")
    crawl_parser.add_argument("--concurrency", type=int, help="Simultaneous fetches")
    crawl_parser.add_argument(
        "--delay",
        type=float,
        help="Seconds to wait after each page (default: source config, else REGWATCH_POLITENESS_DELAY)",
    )
    crawl_parser.add_argument(
        "--skip-category-pages",
        action="store_true",
        help="Only persist pages classified as articles",
    )
    crawl_parser.add_argument(
        "--track-changes",
        action="store_true",
        help="Record document versions and changes for crawled pages",
    )
    crawl_parser.set_defaults(func=crawl_command)

    changes_parser = subparsers.add_parser("changes", help="List recent document changes.")
    changes_parser.add_argument("--source", type=int, help="Only changes for this source id")
    changes_parser.add_argument("--review", action="store_true", help="Only changes flagged for review")
    changes_parser.add_argument("--limit", type=int, default=50, help="Maximum rows (default: 50)")
    changes_parser.set_defaults(func=changes_command)

    history_parser = subparsers.add_parser("history", help="Show the version history of a document.")
    history_parser.add_argument("source_id", type=int, help="Source id")
    history_parser.add_argument("url", help="Document URL")
    history_parser.set_defaults(func=history_command)

    args = parser.parse_args()

    # Configure logging based on flags
    setup_logging(
        level=args.log_level,
        log_file=getattr(args, 'log_file', None),
    )

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
