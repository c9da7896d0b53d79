"""Main entry point with CLI."""
import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional
import orjson

from modwatch.cache.resolver import PageCacheResolver
from modwatch.config import DB_PATH, SAVED_PAGES_DIR, SNAPSHOT_DIR, Config, config, ensure_data_dirs
from modwatch.errors import ModwatchError
from modwatch.fetch.client import FetchClient
from modwatch.jobs.detector import UpdateDetector
from modwatch.jobs.runner import UpdateChecker
from modwatch.logging_conf import setup_logging
from modwatch.notify.service import NotificationService
from modwatch.parse.extractor import extract, preview_selector
from modwatch.parse.models import dump_record
from modwatch.store.database import Database
from modwatch.store.legacy_pages import LegacyPageStore
from modwatch.store.notifications import NotificationStore
from modwatch.store.records import SqliteRecordStore
from modwatch.store.sites import SiteStore
from modwatch.store.snapshots import SqliteSnapshotStore

logger = logging.getLogger(__name__)


class App:
    """Long-lived components wired around one database handle."""

    def __init__(self, db: Database, fetcher: FetchClient, snapshot_dir: Path, saved_pages_dir: Path):
        self.db = db
        self.fetcher = fetcher
        self.sites = SiteStore(db)
        self.records = SqliteRecordStore(db)
        self.snapshots = SqliteSnapshotStore(db, snapshot_dir)
        self.notifications = NotificationStore(db)
        self.resolver = PageCacheResolver(self.snapshots, fetcher, LegacyPageStore(saved_pages_dir))
        self.detector = UpdateDetector(self.records)
        self.notifier = NotificationService(self.notifications)
        self.checker = UpdateChecker(self.sites, self.resolver, self.detector, self.notifier, config.CONCURRENCY)


@asynccontextmanager
async def open_app(
    db_path: Path = DB_PATH,
    snapshot_dir: Path = SNAPSHOT_DIR,
    saved_pages_dir: Path = SAVED_PAGES_DIR,
) -> AsyncIterator[App]:
    async with Database(db_path) as db, FetchClient() as fetcher:
        yield App(db, fetcher, snapshot_dir, saved_pages_dir)


def emit(data: Any) -> None:
    """Print JSON to stdout."""
    sys.stdout.write(orjson.dumps(data, option=orjson.OPT_INDENT_2, default=str).decode() + "\n")


def load_config_arg(raw: str) -> dict:
    """Parser config given inline as JSON or as @path/to/file.json."""
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    return orjson.loads(raw)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Mod release watcher")
    parser.add_argument("--log-level", default=None, help=f"Log level (default: {config.LOG_LEVEL})")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Check sites for new and updated mods")
    check.add_argument("--site", type=int, default=None, help="Check a single site id")
    check.add_argument("--force-refresh", action="store_true", help="Bypass the page cache")

    watch = sub.add_parser("watch", help="Check all sites periodically")
    watch.add_argument(
        "--interval",
        type=int,
        default=config.CHECK_INTERVAL,
        help=f"Seconds between checks (default: {config.CHECK_INTERVAL})",
    )
    watch.add_argument("--use-cache", action="store_true", help="Serve listings from the page cache when possible")

    resolve = sub.add_parser("resolve", help="Get a page through the cache")
    resolve.add_argument("url")
    resolve.add_argument("--site", type=int, default=None)
    resolve.add_argument("--force-refresh", action="store_true")
    resolve.add_argument("--output", type=Path, default=None, help="Write HTML here instead of stdout")

    preview = sub.add_parser("preview", help="Show what a selector matches")
    preview.add_argument("selector")
    source = preview.add_mutually_exclusive_group(required=True)
    source.add_argument("--html-file", type=Path)
    source.add_argument("--url")

    versions = sub.add_parser("versions", help="List stored versions of a page")
    versions.add_argument("url")
    versions.add_argument("--site", type=int, default=None)

    delete_version = sub.add_parser("delete-version", help="Delete one stored page version")
    delete_version.add_argument("version_id", type=int)

    sites = sub.add_parser("sites", help="Manage watched sites")
    sites_sub = sites.add_subparsers(dest="sites_command", required=True)
    sites_sub.add_parser("list")
    add = sites_sub.add_parser("add")
    add.add_argument("name")
    add.add_argument("url")
    add.add_argument("parser_config", help="JSON object or @file.json")
    update = sites_sub.add_parser("update")
    update.add_argument("site_id", type=int)
    update.add_argument("name")
    update.add_argument("url")
    update.add_argument("parser_config", help="JSON object or @file.json")
    remove = sites_sub.add_parser("delete")
    remove.add_argument("site_id", type=int)
    test = sites_sub.add_parser("test", help="Extract a site's listing without storing mods")
    test.add_argument("site_id", type=int)
    test.add_argument("--force-refresh", action="store_true")

    mods = sub.add_parser("mods", help="List stored mods")
    mods.add_argument("--site", type=int, default=None)

    notifications = sub.add_parser("notifications", help="List notifications")
    notifications.add_argument("--unread", action="store_true")
    notifications.add_argument("--mark-read", type=int, default=None, metavar="ID")

    return parser.parse_args(argv)


async def run_command(args: argparse.Namespace, app: App) -> int:
    """Execute one CLI command. Returns the process exit code."""
    if args.command == "check":
        report = await app.checker.check_updates(site_id=args.site, force_refresh=args.force_refresh)
        emit(
            {
                "run_id": report.run_id,
                "summary": report.summary,
                "updates": [dump_record(event) for event in report.events],
                "failed_sites": {str(site_id): error for site_id, error in report.failed.items()},
            }
        )
        return 1 if report.failed and not report.results else 0

    if args.command == "watch":
        await app.checker.run_forever(interval_seconds=args.interval, force_refresh=not args.use_cache)
        return 0

    if args.command == "resolve":
        page = await app.resolver.resolve_page(args.url, site_id=args.site, force_refresh=args.force_refresh)
        logger.info(f"Served {page.url} from {page.tier.value} (version {page.version})")
        if args.output:
            args.output.write_text(page.html, encoding="utf-8")
        else:
            sys.stdout.write(page.html)
        return 0

    if args.command == "preview":
        if args.html_file:
            html = args.html_file.read_text(encoding="utf-8", errors="replace")
        else:
            html = await app.resolver.resolve(args.url)
        emit(preview_selector(html, args.selector))
        return 0

    if args.command == "versions":
        emit([dump_record(snapshot) for snapshot in await app.resolver.versions(args.url, site_id=args.site)])
        return 0

    if args.command == "delete-version":
        deleted = await app.resolver.delete_version(args.version_id)
        emit({"version_id": args.version_id, "deleted": deleted})
        return 0 if deleted else 1

    if args.command == "sites":
        return await run_sites_command(args, app)

    if args.command == "mods":
        emit([dump_record(mod) for mod in await app.records.list_mods(args.site)])
        return 0

    if args.command == "notifications":
        if args.mark_read is not None:
            marked = await app.notifications.mark_read(args.mark_read)
            emit({"id": args.mark_read, "read": marked})
            return 0 if marked else 1
        emit([dump_record(n) for n in await app.notifications.recent(unread_only=args.unread)])
        return 0

    raise ValueError(f"Unknown command {args.command}")


async def run_sites_command(args: argparse.Namespace, app: App) -> int:
    if args.sites_command == "list":
        emit([dump_record(site) for site in await app.sites.list_sites()])
    elif args.sites_command == "add":
        site = await app.sites.add_site(args.name, args.url, load_config_arg(args.parser_config))
        emit(dump_record(site))
    elif args.sites_command == "update":
        await app.sites.update_site(args.site_id, args.name, args.url, load_config_arg(args.parser_config))
        emit(dump_record(await app.sites.get_site(args.site_id)))
    elif args.sites_command == "delete":
        deleted = await app.sites.delete_site(args.site_id)
        emit({"site_id": args.site_id, "deleted": deleted})
        return 0 if deleted else 1
    elif args.sites_command == "test":
        site = await app.sites.get_site(args.site_id)
        if site is None:
            logger.error(f"No site with id {args.site_id}")
            return 1
        html = await app.resolver.resolve(site.listing_url, site_id=site.id, force_refresh=args.force_refresh)
        emit([dump_record(mod) for mod in extract(html, site.parser_config, site_id=site.id)])
    return 0


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    ensure_data_dirs()

    async def _run() -> int:
        async with open_app() as app:
            return await run_command(args, app)

    try:
        exit_code = asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except ModwatchError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
