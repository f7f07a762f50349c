"""
Job API schemas.

Request/response models for submission, querying, cancellation,
claiming, result reporting and progress updates.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from src.scheduler.entities import Job


class JobCreateRequest(BaseModel):
    """Request to submit a new job."""

    job_type: str = Field(..., description="Registered job type (e.g. 'ocr', 'pdf_parse')")
    parameters: dict = Field(default_factory=dict, description="Opaque job parameters")
    priority: Optional[int] = Field(
        default=None,
        description="Priority 1-10, higher is claimed sooner (default from DEFAULT_PRIORITY)",
    )
    max_retries: Optional[int] = Field(
        default=None,
        description="Reclaims allowed before the job fails (default from DEFAULT_MAX_RETRIES)",
    )
    timeout_seconds: Optional[int] = Field(
        default=None,
        description="Seconds from assignment before the job is reclaimed",
    )
    tags: List[str] = Field(default_factory=list, description="Free-form labels")


class JobResponse(BaseModel):
    """Response representing a Job."""

    job_id: str = Field(..., description="Unique job identifier")
    job_type: str
    priority: int
    status: str = Field(..., description="QUEUED/ASSIGNED/PROCESSING/COMPLETED/FAILED/CANCELED")
    parameters: dict = Field(default_factory=dict)
    submitted_by: str
    result: Optional[dict] = None
    error: Optional[dict] = None
    status_message: Optional[str] = None
    assigned_node_id: Optional[str] = None
    progress: float = 0.0
    retry_count: int = 0
    max_retries: int
    timeout_seconds: int
    tags: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    queued_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        data = job.to_dict()
        data.pop("position", None)
        return cls(**data)


class JobListResponse(BaseModel):
    """Response for job list endpoint."""

    jobs: List[JobResponse] = Field(default_factory=list)
    total: int = Field(..., description="Total number of matching jobs")
    limit: int
    offset: int


class JobClaimRequest(BaseModel):
    """Request from a node to claim queued work."""

    node_id: str
    capacity: int = Field(default=1, description="Maximum number of jobs to claim")
    capabilities: Optional[List[str]] = Field(
        default=None,
        description="Job types to consider; defaults to the node's declared capabilities",
    )


class JobClaimResponse(BaseModel):
    """Jobs claimed by a node, in queue order."""

    jobs: List[JobResponse] = Field(default_factory=list)
    count: int


class JobResultRequest(BaseModel):
    """Result reported by the node that owns a job."""

    node_id: str
    status: Literal["COMPLETED", "FAILED", "PARTIAL"]
    result: Optional[dict] = None
    error: Optional[dict] = None
    processing_time_seconds: Optional[float] = Field(default=None, ge=0)


class JobProgressRequest(BaseModel):
    """Advisory progress update from the owning node."""

    node_id: str
    progress: float = Field(..., description="Percent complete, 0-100")
    message: Optional[str] = None
