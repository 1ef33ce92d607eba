"""Common schemas used across the API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SchedulerLastRepair(BaseModel):
    """Last repair result from scheduler."""
    success: Optional[bool] = None
    timestamp: Optional[str] = None
    error: Optional[str] = None
    fixed: int = 0
    consecutive_failures: int = 0


class SchedulerStatus(BaseModel):
    """Scheduler status for health check."""
    running: bool
    next_repair: Optional[str] = None
    job_count: int = 0
    last_repair: Optional[SchedulerLastRepair] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    storage: str
    derivation_api: str
    accounts: int = 0
    incomplete_accounts: int = 0
    last_saved: Optional[datetime] = None
    scheduler: Optional[SchedulerStatus] = None
