"""Sync audit log model."""
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncLog(SQLModel, table=True):
    """Records each sync category run for audit and the status endpoint."""

    id: Optional[int] = Field(default=None, primary_key=True)
    category: str = "records"  # "records", "tombstones", "licenses", "attachments", "airports"
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "error"
    pulled: int = 0
    updated: int = 0
    pushed: int = 0
    error_message: Optional[str] = None
