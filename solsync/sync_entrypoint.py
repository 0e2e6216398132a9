"""Sync entrypoint - Standalone script for running one sync.

Usage:
    python -m solsync.sync_entrypoint                 # Run all configured sources
    python -m solsync.sync_entrypoint perseverance    # Run a single source
"""

import asyncio
import sys
from typing import List, Optional

from solsync.core.config import settings
from solsync.core.db import SessionLocal
from solsync.core.logging import get_logger
from solsync.schemas.sync import RunResult
from solsync.services.sync_service import SyncService

logger = get_logger("sync_entrypoint")


async def run_sync(sources: Optional[List[str]] = None) -> RunResult:
    """Run one sync for ``sources`` (default: every configured source)."""
    with SessionLocal() as db:
        return await SyncService(db).run_all(sources)


def report(result: RunResult) -> None:
    for source in result.sources:
        if not source.success:
            logger.error(f"{source.source}: FAILED - {source.error_message}")
            continue
        logger.info(
            f"{source.source}: {source.records_written} records added, "
            f"{source.units_succeeded} units succeeded, {source.units_failed} units failed"
        )

    if result.partial_sources:
        logger.warning(f"Sources with partial success: {', '.join(result.partial_sources)}")


def main(argv: Optional[List[str]] = None) -> RunResult:
    """Main entry point for the sync job. Exits 1 if any source failed outright."""
    argv = sys.argv[1:] if argv is None else argv
    logger.info("Sync job starting...")

    sources = None
    if argv:
        source = argv[0].lower()
        if source not in settings.active_sources:
            logger.error(f"Invalid source: {source}. Must be one of: {', '.join(settings.active_sources)}")
            sys.exit(1)
        sources = [source]

    try:
        result = asyncio.run(run_sync(sources))
    except Exception as exc:
        logger.exception(f"Sync job failed: {exc}")
        sys.exit(1)

    report(result)
    logger.info(f"Sync job completed: status={result.status} records={result.records_written}")

    if result.failed_sources:
        sys.exit(1)

    return result


if __name__ == "__main__":
    main()
