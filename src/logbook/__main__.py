"""
Main entrypoint: one-shot sync commands, or the scheduler loop.

FastAPI runs separately under uvicorn.

Usage:
    python -m logbook setup         # one-time sync server setup
    python -m logbook sync          # run one full sync cycle now
    python -m logbook airports      # refresh the airports table
    python -m logbook               # run the daily scheduled sync
    uvicorn logbook.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_setup() -> None:
    from logbook.scripts.setup import run_setup
    run_setup()


def _build_sync_engine():
    from logbook.config import get_settings
    from logbook.db.engine import get_engine
    from logbook.db.store import RecordStore
    from logbook.sync.engine import SyncEngine
    from logbook.sync.settings_store import SyncSettingsStore
    from logbook.sync.transport import RemoteTransport

    settings = get_settings()
    store = SyncSettingsStore()
    if not store.exists() and not settings.sync_url:
        logger.error("No sync server configured. Run `python -m logbook setup` first.")
        sys.exit(1)

    sync_settings = store.load()
    return SyncEngine(
        sync_settings,
        RecordStore(get_engine()),
        transport=RemoteTransport(sync_settings, timeout=settings.request_timeout),
        notify=print,
        airports_chunk_size=settings.airports_chunk_size,
    )


async def _run_sync() -> int:
    reports = await _build_sync_engine().sync()
    return 0 if all(r.ok for r in reports) else 1


async def _run_airports() -> int:
    report = await _build_sync_engine().update_airports_db()
    return 0 if report.ok else 1


async def _run_scheduler() -> None:
    from logbook.config import get_settings
    from logbook.db.engine import get_engine
    from logbook.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info(
        "Scheduler started (daily sync at %02d:00 UTC). Press Ctrl+C to stop.",
        settings.sync_hour,
    )

    try:
        await asyncio.Event().wait()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down...")
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument
    command = sys.argv[1] if len(sys.argv) > 1 else ""
    if command == "setup":
        _run_setup()
    elif command == "sync":
        sys.exit(asyncio.run(_run_sync()))
    elif command == "airports":
        sys.exit(asyncio.run(_run_airports()))
    else:
        asyncio.run(_run_scheduler())
