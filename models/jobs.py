"""
Scheduler job schemas.
"""

from datetime import datetime
from typing import Optional

from models.base import BaseSchema


class JobStatus(BaseSchema):
    """Reporting view of one periodic job."""

    name: str
    interval_seconds: float
    running: bool = False
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None


class JobRunResponse(BaseSchema):
    """Response of a manual job trigger."""

    name: str
    executed: bool
