"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .jobs import (
    JobCreateRequest,
    JobResponse,
    JobListResponse,
    JobClaimRequest,
    JobClaimResponse,
    JobResultRequest,
    JobProgressRequest,
)
from .nodes import (
    TimeRestriction,
    NodeRegisterRequest,
    NodeHeartbeatRequest,
    NodeResponse,
    NodeListResponse,
)
from .scheduler import (
    QueueStats,
    TickStats,
    SchedulerStatusResponse,
    CleanupRequest,
    CleanupResponse,
)

__all__ = [
    "JobCreateRequest",
    "JobResponse",
    "JobListResponse",
    "JobClaimRequest",
    "JobClaimResponse",
    "JobResultRequest",
    "JobProgressRequest",
    "TimeRestriction",
    "NodeRegisterRequest",
    "NodeHeartbeatRequest",
    "NodeResponse",
    "NodeListResponse",
    "QueueStats",
    "TickStats",
    "SchedulerStatusResponse",
    "CleanupRequest",
    "CleanupResponse",
]
