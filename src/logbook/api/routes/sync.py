"""Sync trigger and status routes."""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from logbook.config import get_settings
from logbook.db.engine import get_engine, get_store
from logbook.db.store import RecordStore
from logbook.sync.engine import SyncEngine, sync_in_progress
from logbook.sync.settings_store import SyncSettingsStore
from logbook.sync.transport import RemoteTransport

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncStatusResponse(BaseModel):
    category: Optional[str]
    status: str
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    pulled: Optional[int]
    updated: Optional[int]
    pushed: Optional[int]
    error_message: Optional[str]


def _build_engine() -> SyncEngine:
    settings = SyncSettingsStore().load()
    transport = RemoteTransport(settings, timeout=get_settings().request_timeout)
    return SyncEngine(
        settings,
        RecordStore(get_engine()),
        transport=transport,
        airports_chunk_size=get_settings().airports_chunk_size,
    )


async def _do_sync() -> None:
    """Background task: one full sync cycle."""
    reports = await _build_engine().sync()
    for report in reports:
        logger.info("Sync %s: %s", report.category, report.error or "ok")


async def _do_airports() -> None:
    """Background task: refresh the airports table."""
    report = await _build_engine().update_airports_db()
    logger.info("Airports refresh: %s", report.error or "ok")


def _ensure_idle() -> None:
    if sync_in_progress():
        raise HTTPException(status_code=409, detail="A sync is already running")


@router.post("/trigger")
async def trigger_sync(background_tasks: BackgroundTasks):
    """
    Trigger a full sync cycle (deletions, records, licenses, attachments).
    Returns immediately; sync runs in background.
    """
    _ensure_idle()
    background_tasks.add_task(_do_sync)
    return {"message": "Sync started"}


@router.post("/airports")
async def trigger_airports(background_tasks: BackgroundTasks):
    """Refresh the airports table from the sync server in the background."""
    _ensure_idle()
    background_tasks.add_task(_do_airports)
    return {"message": "Airports update started"}


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(
    category: Optional[str] = None,
    store: RecordStore = Depends(get_store),
):
    """Return the status of the most recent sync run."""
    log = store.latest_sync_log(category)
    if not log:
        return SyncStatusResponse(
            category=category,
            status="never_run",
            started_at=None,
            finished_at=None,
            pulled=None,
            updated=None,
            pushed=None,
            error_message=None,
        )
    return SyncStatusResponse(
        category=log.category,
        status=log.status,
        started_at=log.started_at,
        finished_at=log.finished_at,
        pulled=log.pulled,
        updated=log.updated,
        pushed=log.pushed,
        error_message=log.error_message,
    )
