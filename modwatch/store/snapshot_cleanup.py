"""Script to prune old page snapshot versions."""
import argparse
import asyncio
import logging

from modwatch.config import DB_PATH, SNAPSHOT_DIR, ensure_data_dirs
from modwatch.logging_conf import setup_logging
from modwatch.store.database import Database
from modwatch.store.snapshots import SqliteSnapshotStore

logger = logging.getLogger(__name__)


async def cleanup_snapshots(keep_latest: int = 5, dry_run: bool = False) -> int:
    """Keep the newest keep_latest versions of every page, delete the rest."""
    async with Database(DB_PATH) as db:
        store = SqliteSnapshotStore(db, SNAPSHOT_DIR)
        doomed = await store.prune(keep_latest, dry_run=dry_run)

    for snapshot in doomed:
        action = "Would delete" if dry_run else "Deleted"
        logger.info(f"{action} snapshot {snapshot.id}: {snapshot.url}@{snapshot.version}")
    logger.info(f"Cleanup complete: {len(doomed)} versions")
    return len(doomed)


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Prune old page snapshot versions")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    parser.add_argument(
        "--keep-latest",
        type=int,
        default=5,
        help="Versions to keep per page (default: 5)",
    )
    args = parser.parse_args()
    if args.keep_latest < 1:
        parser.error("--keep-latest must be at least 1")

    setup_logging()
    ensure_data_dirs()
    asyncio.run(cleanup_snapshots(args.keep_latest, args.dry_run))


if __name__ == "__main__":
    main()
