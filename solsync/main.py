from pathlib import Path
from contextlib import asynccontextmanager
import asyncio
from datetime import datetime, timedelta
from typing import Optional

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from solsync.api.routes import health_router, sync_router
from solsync.core.config import settings
from solsync.core.db import SessionLocal
from solsync.core.logging import get_logger
from solsync.models.base import utcnow
from solsync.services.sync_service import SyncService


log = get_logger("app")

# Background task handle
_sync_task: Optional[asyncio.Task] = None

ERROR_BACKOFF_SECONDS = 300


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


def next_run_time(now: datetime, hour: int, interval_hours: int) -> datetime:
    """Today at ``hour``:00 UTC if still ahead of ``now``, otherwise that time plus the interval."""
    scheduled = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if scheduled <= now:
        scheduled += timedelta(hours=interval_hours)
    return scheduled


async def run_sync_pipeline() -> None:
    """Run one sync for all configured sources."""
    log.info("Starting scheduled sync for all sources...")
    with SessionLocal() as db:
        result = await SyncService(db).run_all()

    for source in result.sources:
        if source.success:
            log.info(
                f"Sync {source.source}: {source.records_written} records added, "
                f"{source.units_succeeded}/{source.units_attempted} units succeeded"
            )
        else:
            log.error(f"Sync {source.source}: failed - {source.error_message or 'unknown error'}")

    log.info(f"Scheduled sync completed with status {result.status}")


async def scheduled_sync_task() -> None:
    """Background task that runs the sync once per interval at the configured UTC hour."""
    log.info(
        f"Scheduled sync task started (daily at {settings.SYNC_RUN_AT_UTC_HOUR:02d}:00 UTC, "
        f"interval: {settings.SYNC_INTERVAL_HOURS}h)"
    )

    while True:
        try:
            now = utcnow()
            scheduled = next_run_time(now, settings.SYNC_RUN_AT_UTC_HOUR, settings.SYNC_INTERVAL_HOURS)
            log.info(f"Next sync scheduled for {scheduled.isoformat()}")
            await asyncio.sleep((scheduled - now).total_seconds())
            await run_sync_pipeline()
        except asyncio.CancelledError:
            log.info("Scheduled sync task cancelled")
            break
        except Exception as exc:
            log.exception(f"Scheduled sync task error: {exc}")
            try:
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
            except asyncio.CancelledError:
                log.info("Scheduled sync task cancelled")
                break


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _sync_task

    # Log environment mode
    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    # Startup
    try:
        run_migrations()
    except Exception:
        log.exception("Failed to apply migrations on startup")
        raise

    log.info(f"Active sources: {', '.join(settings.active_sources)}")

    if settings.SYNC_ENABLED:
        log.info("Starting scheduled sync background task...")
        _sync_task = asyncio.create_task(scheduled_sync_task())
    else:
        log.info("Scheduled sync is disabled (SYNC_ENABLED=false)")

    yield

    # Shutdown
    log.info("Shutting down services...")

    if _sync_task:
        log.info("Cancelling scheduled sync task...")
        _sync_task.cancel()
        try:
            await _sync_task
        except asyncio.CancelledError:
            pass
        _sync_task = None

    log.info("Application shutdown complete")


# Configure FastAPI based on environment
app = FastAPI(
    title="Solsync",
    description="Incremental sync of per-sol rover image feeds into a local store",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    # Debug mode only in development
    debug=settings.debug_enabled,
)


app.include_router(health_router)
app.include_router(sync_router)
