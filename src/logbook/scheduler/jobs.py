"""
APScheduler jobs for background sync.

A daily sync catches anything missed between on-demand triggers. The
scheduler runs inside the same process as the CLI loop (wired in
__main__.py).
"""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logbook.config import get_settings

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the sync engine's store.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _scheduled_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="scheduled_sync",
        replace_existing=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _scheduled_sync(engine) -> None:
    """
    Daily job: one full sync cycle with the saved sync settings.

    Skipped while another cycle holds the store.
    """
    from logbook.db.store import RecordStore
    from logbook.sync.engine import SyncEngine, sync_in_progress
    from logbook.sync.settings_store import SyncSettingsStore
    from logbook.sync.transport import RemoteTransport

    settings = get_settings()
    logger.info("Scheduled sync starting at %s", datetime.now(timezone.utc).isoformat())

    if sync_in_progress():
        logger.info("Sync already running, skipping scheduled run")
        return

    sync_settings = SyncSettingsStore().load()
    if not sync_settings.url:
        logger.warning("No sync server configured. Run `python -m logbook setup`.")
        return

    sync_engine = SyncEngine(
        sync_settings,
        RecordStore(engine),
        transport=RemoteTransport(sync_settings, timeout=settings.request_timeout),
        airports_chunk_size=settings.airports_chunk_size,
    )
    reports = await sync_engine.sync()
    for report in reports:
        if report.ok:
            logger.info(
                "Synced %s: %d pulled, %d changed, %d pushed",
                report.category, report.pulled, report.changed, report.pushed,
            )
        else:
            logger.error("Scheduled sync failed: %s", report.error)
