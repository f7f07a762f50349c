"""
Scheduler Domain Entities.

- Job: Single unit of work submitted for distributed execution
- Node: Worker that pulls jobs matching its declared capabilities
- JobSpec / NodeRegistration: Validated inputs for submit and register
- TimeWindow: Availability window restricting when a node may claim work

Timestamps are naive UTC datetimes, persisted as fixed-width ISO strings
(``YYYY-MM-DDTHH:MM:SS.ffffffZ``) so that they sort lexicographically.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Optional
import uuid


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

MIN_PRIORITY = 1
MAX_PRIORITY = 10
DEFAULT_PRIORITY = 5
DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT_SECONDS = 3600


class JobStatus(str, Enum):
    """
    Job lifecycle states.

    QUEUED -> ASSIGNED -> PROCESSING -> {COMPLETED | FAILED}
    {QUEUED, ASSIGNED, PROCESSING} -> CANCELED
    {ASSIGNED, PROCESSING} -> QUEUED (retry, supervisor only)
    """

    QUEUED = "QUEUED"
    ASSIGNED = "ASSIGNED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"


ACTIVE_STATUSES = (JobStatus.ASSIGNED, JobStatus.PROCESSING)
CANCELABLE_STATUSES = (JobStatus.QUEUED, JobStatus.ASSIGNED, JobStatus.PROCESSING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED)


class JobOutcome(str, Enum):
    """Outcome reported by a node for an assigned job."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


class NodeStatus(str, Enum):
    """
    Node states.

    MAINTENANCE and ERROR are administrative: the liveness sweep never
    overrides them.
    """

    ONLINE = "ONLINE"
    BUSY = "BUSY"
    IDLE = "IDLE"
    OFFLINE = "OFFLINE"
    ERROR = "ERROR"
    MAINTENANCE = "MAINTENANCE"


ASSIGNABLE_NODE_STATUSES = (NodeStatus.ONLINE, NodeStatus.IDLE)
LIVE_NODE_STATUSES = (NodeStatus.ONLINE, NodeStatus.IDLE, NodeStatus.BUSY)


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_timestamp(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def now_iso() -> str:
    """Get current time as ISO format string."""
    return format_timestamp(utc_now())


# =============================================================================
# Availability Windows
# =============================================================================


WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
DAY_GROUPS = {
    "Weekdays": frozenset(range(0, 5)),
    "Weekends": frozenset((5, 6)),
    "All": frozenset(range(0, 7)),
}


def _parse_clock_time(value: str) -> time:
    try:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid time of day (expected HH:MM): {value!r}")


@dataclass(frozen=True)
class TimeWindow:
    """
    A recurring window during which a node may claim work.

    Bounds are inclusive. A window whose end precedes its start wraps
    past midnight and belongs to the day on which it starts.
    """

    day_of_week: str
    start_time: str
    end_time: str

    def __post_init__(self):
        if self.day_of_week not in WEEKDAY_NAMES and self.day_of_week not in DAY_GROUPS:
            raise ValueError(f"Invalid day_of_week: {self.day_of_week!r}")
        _parse_clock_time(self.start_time)
        _parse_clock_time(self.end_time)

    @classmethod
    def from_dict(cls, data: dict) -> "TimeWindow":
        return cls(
            day_of_week=data["day_of_week"],
            start_time=data["start_time"],
            end_time=data["end_time"],
        )

    def _days(self) -> frozenset:
        if self.day_of_week in DAY_GROUPS:
            return DAY_GROUPS[self.day_of_week]
        return frozenset((WEEKDAY_NAMES.index(self.day_of_week),))

    def contains(self, moment: datetime) -> bool:
        start = _parse_clock_time(self.start_time)
        end = _parse_clock_time(self.end_time)
        current = moment.time().replace(second=0, microsecond=0)
        days = self._days()

        if start <= end:
            return moment.weekday() in days and start <= current <= end

        # Overnight window: the tail after midnight belongs to the previous day
        if moment.weekday() in days and current >= start:
            return True
        previous_day = (moment.weekday() - 1) % 7
        return previous_day in days and current <= end


def is_within_windows(windows: Optional[Iterable[dict]], moment: datetime) -> bool:
    """No declared windows means the node is always available."""
    if not windows:
        return True
    return any(TimeWindow.from_dict(window).contains(moment) for window in windows)


# =============================================================================
# Inputs
# =============================================================================


@dataclass
class JobSpec:
    """Submission request for a new job."""

    job_type: str
    parameters: dict = field(default_factory=dict)
    submitted_by: str = "anonymous"
    priority: int = DEFAULT_PRIORITY
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    tags: list = field(default_factory=list)


@dataclass
class NodeRegistration:
    """Registration payload sent by a node agent."""

    hostname: str
    capabilities: list
    resource_info: dict = field(default_factory=dict)
    node_id: Optional[str] = None
    ip_address: Optional[str] = None
    version: Optional[str] = None
    time_restrictions: Optional[list] = None


# =============================================================================
# Entities
# =============================================================================


@dataclass
class Job:
    """
    Single unit of work queued for execution.

    Invariants:
    - assigned_node_id is set iff status is ASSIGNED or PROCESSING
    - completed_at is set iff status is terminal
    - retry_count <= max_retries

    ``queued_at`` is the ordering timestamp: set on creation and refreshed
    whenever the job is requeued. ``position`` breaks ties between jobs
    queued at the same instant.
    """

    job_id: str
    job_type: str
    priority: int
    status: JobStatus
    parameters: dict
    submitted_by: str
    result: Optional[dict] = None
    error: Optional[dict] = None
    status_message: Optional[str] = None
    assigned_node_id: Optional[str] = None
    progress: float = 0.0
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    retry_count: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    tags: list = field(default_factory=list)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    queued_at: str = field(default_factory=now_iso)
    position: int = 0

    @classmethod
    def create(cls, spec: JobSpec, now: Optional[datetime] = None) -> "Job":
        """Create a new QUEUED Job with generated ID."""
        timestamp = format_timestamp(now or utc_now())
        return cls(
            job_id=generate_uuid(),
            job_type=spec.job_type,
            priority=spec.priority,
            status=JobStatus.QUEUED,
            parameters=dict(spec.parameters),
            submitted_by=spec.submitted_by,
            max_retries=spec.max_retries,
            timeout_seconds=spec.timeout_seconds,
            tags=sorted(set(spec.tags)),
            created_at=timestamp,
            updated_at=timestamp,
            queued_at=timestamp,
        )

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def deadline(self) -> Optional[datetime]:
        """Moment after which an active job is considered timed out."""
        started = parse_timestamp(self.started_at)
        if started is None:
            return None
        return started + timedelta(seconds=self.timeout_seconds)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class Node:
    """
    Worker node registered with the scheduler.

    OFFLINE nodes are never assignment targets.
    total_jobs_processed only ever increases.
    """

    node_id: str
    hostname: str
    capabilities: list
    resource_info: dict
    status: NodeStatus
    ip_address: Optional[str] = None
    version: Optional[str] = None
    current_load: Optional[dict] = None
    time_restrictions: Optional[list] = None
    last_heartbeat_at: Optional[str] = None
    last_job_completed_at: Optional[str] = None
    total_jobs_processed: int = 0
    failed_jobs: int = 0
    average_processing_time_seconds: float = 0.0
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def has_capabilities(self, required: Iterable[str]) -> bool:
        return set(required) <= set(self.capabilities)

    def is_assignable(self) -> bool:
        return self.status in ASSIGNABLE_NODE_STATUSES

    def is_available_at(self, moment: datetime) -> bool:
        return is_within_windows(self.time_restrictions, moment)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data
