"""
Scheduler control-plane API schemas.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class QueueStats(BaseModel):
    """Admission queue statistics."""

    queue_size: int = Field(..., description="Number of QUEUED jobs")
    max_queue_size: int
    high_priority: int = Field(default=0, description="QUEUED jobs with priority 8-10")
    medium_priority: int = Field(default=0, description="QUEUED jobs with priority 4-7")
    low_priority: int = Field(default=0, description="QUEUED jobs with priority 1-3")
    oldest_job: Optional[str] = Field(default=None, description="Oldest queued_at timestamp")


class TickStats(BaseModel):
    """Outcome of one supervision pass."""

    jobs_requeued: int = 0
    jobs_failed: int = 0
    nodes_offline: int = 0


class SchedulerStatusResponse(BaseModel):
    """Response from scheduler status endpoint."""

    ticker_running: bool = Field(..., description="Whether periodic supervision is active")
    tick_interval_seconds: float
    ticks_run: int = 0
    ticks_failed: int = 0
    last_tick: Optional[TickStats] = None
    queue: QueueStats
    jobs: Dict[str, int] = Field(default_factory=dict, description="Job counts by status")


class CleanupRequest(BaseModel):
    """Request to prune old terminal jobs."""

    retention_days: Optional[int] = Field(
        default=None,
        ge=0,
        description="Override JOB_RETENTION_DAYS for this run",
    )


class CleanupResponse(BaseModel):
    """Response from cleanup."""

    deleted: int
    retention_days: int
