"""
Scheduler router for scheduler control APIs.

Endpoints under /scheduler/*:
- GET /scheduler/status - Ticker state, queue statistics, job counts
- POST /scheduler/tick - Run one supervision pass now
- POST /scheduler/cleanup - Prune old terminal jobs
- GET /scheduler/queue - Queued jobs in claim order

The scheduler is a system-level control plane, not a sub-resource of Job.
Handlers must stay plain functions (run in the threadpool): the service
blocks on SQLite.
"""

from typing import List, Optional

from fastapi import APIRouter, Query

from ..schemas.jobs import JobResponse
from ..schemas.scheduler import (
    CleanupRequest,
    CleanupResponse,
    SchedulerStatusResponse,
    TickStats,
)
from .._errors import to_http_exception
from .._scheduler_state import get_scheduler_service


router = APIRouter()


@router.get("/status", response_model=SchedulerStatusResponse)
def get_scheduler_status():
    """
    Get comprehensive scheduler status.

    Returns:
    - ticker_running: Whether periodic supervision is active
    - queue: Queue size, capacity, per-band counts and oldest job
    - jobs: Job counts by status
    """
    service = get_scheduler_service()

    try:
        status = service.get_status()
    except Exception as e:
        raise to_http_exception(e, "get scheduler status")

    return SchedulerStatusResponse(**status)


@router.post("/tick", response_model=TickStats)
def run_tick():
    """
    Run one supervision pass immediately.

    Idempotent: a pass with nothing to reclaim changes nothing.
    """
    service = get_scheduler_service()

    try:
        stats = service.tick()
    except Exception as e:
        raise to_http_exception(e, "run tick")

    return TickStats(**stats)


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_jobs(request: CleanupRequest = CleanupRequest()):
    """Delete COMPLETED/FAILED/CANCELED jobs older than the retention window."""
    service = get_scheduler_service()

    retention_days = (
        service.settings.job_retention_days
        if request.retention_days is None
        else request.retention_days
    )

    try:
        deleted = service.cleanup_old_jobs(retention_days)
    except Exception as e:
        raise to_http_exception(e, "clean up jobs")

    return CleanupResponse(deleted=deleted, retention_days=retention_days)


@router.get("/queue", response_model=List[JobResponse])
def peek_queue(
    limit: int = Query(default=20, ge=1, le=500),
    job_type: Optional[List[str]] = Query(default=None, description="Restrict to these job types"),
):
    """Queued jobs in the order nodes would claim them; nothing is claimed."""
    service = get_scheduler_service()

    try:
        jobs = service.peek_queue(limit=limit, job_types=job_type)
    except Exception as e:
        raise to_http_exception(e, "peek queue")

    return [JobResponse.from_job(job) for job in jobs]
