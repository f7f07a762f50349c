"""
Jobs router for job management API.

Submitter endpoints:
- POST /jobs - Submit job
- GET /jobs - List jobs
- GET /jobs/{job_id} - Get job details
- DELETE /jobs/{job_id} - Cancel job

Node endpoints:
- POST /jobs/request - Claim queued jobs
- POST /jobs/{job_id}/result - Report result
- POST /jobs/{job_id}/progress - Report progress

The submitter identity is taken from the X-User-Id header
("anonymous" when absent).
Handlers are plain functions so FastAPI runs them in its threadpool.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from src.scheduler.entities import JobOutcome, JobStatus

from ..schemas.jobs import (
    JobCreateRequest,
    JobResponse,
    JobListResponse,
    JobClaimRequest,
    JobClaimResponse,
    JobResultRequest,
    JobProgressRequest,
)
from .._errors import to_http_exception
from .._scheduler_state import get_scheduler_service
from ..dependencies.auth import get_requester


router = APIRouter()


@router.post("", response_model=JobResponse, status_code=201)
def submit_job(
    request: JobCreateRequest,
    requester: str = Depends(get_requester),
):
    """
    Submit a new job to the admission queue.

    Returns 422 for an invalid submission and 503 when the queue is full.
    """
    service = get_scheduler_service()

    try:
        job = service.submit_job(
            job_type=request.job_type,
            parameters=request.parameters,
            submitted_by=requester,
            priority=request.priority,
            max_retries=request.max_retries,
            timeout_seconds=request.timeout_seconds,
            tags=request.tags,
        )
    except Exception as e:
        raise to_http_exception(e, "submit job")

    return JobResponse.from_job(job)


@router.get("", response_model=JobListResponse)
def list_jobs(
    status: Optional[List[JobStatus]] = Query(default=None, description="Filter by status"),
    job_type: Optional[str] = Query(default=None),
    submitted_by: Optional[str] = Query(default=None),
    tag: Optional[List[str]] = Query(default=None, description="Match jobs carrying any of these tags"),
    assigned_node_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    """List jobs, newest first."""
    service = get_scheduler_service()

    try:
        jobs, total = service.list_jobs(
            statuses=status,
            job_type=job_type,
            submitted_by=submitted_by,
            tags=tag,
            assigned_node_id=assigned_node_id,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        raise to_http_exception(e, "list jobs")

    return JobListResponse(
        jobs=[JobResponse.from_job(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/request", response_model=JobClaimResponse)
def request_jobs(request: JobClaimRequest):
    """
    Claim up to ``capacity`` queued jobs for a node.

    A node never receives a job another node has claimed. Returns 409
    when the node is not ONLINE/IDLE or is outside its availability windows.
    """
    service = get_scheduler_service()

    try:
        jobs = service.claim_jobs(
            node_id=request.node_id,
            capacity=request.capacity,
            capabilities=request.capabilities,
        )
    except Exception as e:
        raise to_http_exception(e, "claim jobs")

    return JobClaimResponse(jobs=[JobResponse.from_job(job) for job in jobs], count=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str):
    """Get job details."""
    service = get_scheduler_service()

    try:
        job = service.get_job(job_id)
    except Exception as e:
        raise to_http_exception(e, "get job")

    return JobResponse.from_job(job)


@router.delete("/{job_id}", response_model=JobResponse)
def cancel_job(
    job_id: str,
    requester: str = Depends(get_requester),
):
    """
    Cancel a QUEUED, ASSIGNED or PROCESSING job.

    Returns 409 if the job is already terminal.
    """
    service = get_scheduler_service()

    try:
        job = service.cancel_job(job_id, requester=requester)
    except Exception as e:
        raise to_http_exception(e, "cancel job")

    return JobResponse.from_job(job)


@router.post("/{job_id}/result", response_model=JobResponse)
def report_result(job_id: str, request: JobResultRequest):
    """
    Report a result from the node that owns the job.

    Returns 409 when the reporting node is not the current owner or the
    job is no longer active.
    """
    service = get_scheduler_service()

    try:
        job = service.report_result(
            job_id,
            request.node_id,
            JobOutcome(request.status),
            result=request.result,
            error=request.error,
            processing_time_seconds=request.processing_time_seconds,
        )
    except Exception as e:
        raise to_http_exception(e, "report result")

    return JobResponse.from_job(job)


@router.post("/{job_id}/progress", response_model=JobResponse)
def report_progress(job_id: str, request: JobProgressRequest):
    """Record advisory progress from the owning node."""
    service = get_scheduler_service()

    try:
        job = service.update_progress(job_id, request.node_id, request.progress, request.message)
    except Exception as e:
        raise to_http_exception(e, "update progress")

    return JobResponse.from_job(job)
