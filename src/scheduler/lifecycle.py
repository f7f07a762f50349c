"""
Job Lifecycle Manager.

Owns every Job status transition:

    QUEUED -> ASSIGNED -> PROCESSING -> {COMPLETED | FAILED}
    {QUEUED, ASSIGNED, PROCESSING} -> CANCELED
    {ASSIGNED, PROCESSING} -> QUEUED          (retry, supervisor only)

Each transition is a compare-and-swap on the status the caller observed,
so concurrent callers acting on the same job resolve to exactly one winner.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Tuple

from .entities import (
    ACTIVE_STATUSES,
    MAX_PRIORITY,
    MIN_PRIORITY,
    Job,
    JobOutcome,
    JobSpec,
    JobStatus,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from .errors import (
    ConcurrencyViolationError,
    ForbiddenError,
    InvalidSpecError,
    InvalidStateError,
    JobNotFoundError,
    NodeMismatchError,
)
from .events import EventEmitter
from .persistence import PersistenceAdapter
from .queue_manager import QueueManager
from .registry import NodeRegistry


logger = logging.getLogger(__name__)


JOB_TIMEOUT_CODE = "JOB_TIMEOUT"

# (job, requester) -> allowed
CancelPolicy = Callable[[Job, str], bool]


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class JobLifecycleManager:
    """
    Validates requests and applies job state transitions.

    Authorization is not decided here: an optional ``cancel_policy`` hook
    supplied by the outer surface is consulted before cancelling.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter,
        queue_manager: QueueManager,
        node_registry: NodeRegistry,
        events: EventEmitter,
        job_types: Iterable[str],
        clock: Callable[[], datetime] = utc_now,
        cancel_policy: Optional[CancelPolicy] = None,
    ):
        self.persistence = persistence
        self.queue_manager = queue_manager
        self.node_registry = node_registry
        self.events = events
        self.job_types = frozenset(job_types)
        self.clock = clock
        self.cancel_policy = cancel_policy

    # =========================================================================
    # Submission
    # =========================================================================

    def validate_spec(self, spec: JobSpec) -> None:
        """
        Check submission fields.

        Raises:
            InvalidSpecError: On the first out-of-range or malformed field
        """
        if spec.job_type not in self.job_types:
            raise InvalidSpecError(
                f"Unknown job type {spec.job_type!r}; expected one of {sorted(self.job_types)}"
            )
        if not _is_int(spec.priority) or not MIN_PRIORITY <= spec.priority <= MAX_PRIORITY:
            raise InvalidSpecError(
                f"priority must be an integer in [{MIN_PRIORITY}, {MAX_PRIORITY}], got {spec.priority!r}"
            )
        if not _is_int(spec.max_retries) or spec.max_retries < 0:
            raise InvalidSpecError(f"max_retries must be a non-negative integer, got {spec.max_retries!r}")
        if not _is_int(spec.timeout_seconds) or spec.timeout_seconds < 1:
            raise InvalidSpecError(f"timeout_seconds must be a positive integer, got {spec.timeout_seconds!r}")
        if not isinstance(spec.parameters, dict):
            raise InvalidSpecError("parameters must be an object")
        if not spec.submitted_by:
            raise InvalidSpecError("submitted_by must not be empty")
        if any(not isinstance(tag, str) for tag in spec.tags):
            raise InvalidSpecError("tags must be strings")

    def submit(self, spec: JobSpec) -> Job:
        """
        Create a QUEUED job.

        Raises:
            InvalidSpecError: If the spec fails validation
            QueueFullError: If the admission queue is at capacity
        """
        self.validate_spec(spec)

        job = Job.create(spec, now=self.clock())
        job = self.queue_manager.admit(job)

        logger.info(
            f"Job {job.job_id} submitted by {job.submitted_by} "
            f"(type={job.job_type}, priority={job.priority})"
        )
        self.events.job_created(job)
        return job

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, job_id: str) -> Job:
        job = self.persistence.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(
        self,
        statuses: Optional[Iterable[JobStatus]] = None,
        job_type: Optional[str] = None,
        submitted_by: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        assigned_node_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[list[Job], int]:
        return self.persistence.list_jobs(
            statuses=statuses,
            job_type=job_type,
            submitted_by=submitted_by,
            tags=tags,
            assigned_node_id=assigned_node_id,
            limit=limit,
            offset=offset,
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(self, job_id: str, requester: str) -> Job:
        """
        Cancel a non-terminal job.

        Cancellation is cooperative: the core records CANCELED; a node
        still working on the job stops when it observes the update.

        Raises:
            JobNotFoundError: If job doesn't exist
            ForbiddenError: If the cancel policy rejects the requester
            InvalidStateError: If the job is terminal, or changed status
                concurrently (re-read and retry)
        """
        job = self.get(job_id)

        if job.is_terminal():
            raise InvalidStateError(f"Cannot cancel job {job_id} in {job.status.value} status")

        if self.cancel_policy is not None and not self.cancel_policy(job, requester):
            raise ForbiddenError(f"{requester} may not cancel job {job_id}")

        now = format_timestamp(self.clock())
        try:
            canceled = self.persistence.compare_and_set_job(
                job_id,
                expected_statuses=(job.status,),
                changes={
                    "status": JobStatus.CANCELED,
                    "assigned_node_id": None,
                    "completed_at": now,
                    "updated_at": now,
                    "status_message": f"Canceled by {requester}",
                },
            )
        except ConcurrencyViolationError as e:
            raise InvalidStateError(
                f"Job {job_id} changed status concurrently ({e.actual_status}); retry against the new state"
            )

        if job.status == JobStatus.QUEUED:
            logger.info(f"Job {job_id} canceled by {requester} and removed from queue")
        else:
            logger.info(
                f"Job {job_id} canceled by {requester} while {job.status.value} "
                f"on node {job.assigned_node_id}"
            )
        self.events.job_updated(canceled)
        return canceled

    # =========================================================================
    # Assignment (Assignment Engine only)
    # =========================================================================

    def mark_assigned(self, job_id: str, node_id: str) -> Job:
        """
        QUEUED -> ASSIGNED for ``node_id``.

        Raises:
            ConcurrencyViolationError: If the job is no longer QUEUED
        """
        now = format_timestamp(self.clock())
        job = self.persistence.compare_and_set_job(
            job_id,
            expected_statuses=(JobStatus.QUEUED,),
            changes={
                "status": JobStatus.ASSIGNED,
                "assigned_node_id": node_id,
                "started_at": now,
                "updated_at": now,
                "status_message": None,
            },
        )
        self.events.job_updated(job)
        return job

    # =========================================================================
    # Node Reports
    # =========================================================================

    def _check_owner(self, job: Job, node_id: str) -> None:
        if job.assigned_node_id != node_id:
            raise NodeMismatchError(job.job_id, node_id, job.assigned_node_id)

    def _conflict(self, job_id: str, node_id: str) -> Exception:
        """Explain a lost CAS on a node report."""
        current = self.get(job_id)
        if current.assigned_node_id != node_id:
            return NodeMismatchError(job_id, node_id, current.assigned_node_id)
        return InvalidStateError(
            f"Job {job_id} changed status concurrently ({current.status.value})"
        )

    def report_result(
        self,
        job_id: str,
        node_id: str,
        outcome: JobOutcome,
        result: Optional[dict] = None,
        error: Optional[dict] = None,
        processing_time_seconds: Optional[float] = None,
    ) -> Job:
        """
        Record a node's result for a job it owns.

        - COMPLETED / FAILED: terminal; node statistics are updated
        - PARTIAL: checkpoint, stores ``result`` without changing status

        Raises:
            JobNotFoundError: If job doesn't exist
            NodeMismatchError: If ``node_id`` does not own the job (e.g. a
                late report after the job was reassigned); the job is untouched
        """
        job = self.get(job_id)
        self._check_owner(job, node_id)

        now = self.clock()
        timestamp = format_timestamp(now)

        if outcome == JobOutcome.PARTIAL:
            changes = {"result": result or {}, "updated_at": timestamp}
        elif outcome == JobOutcome.COMPLETED:
            changes = {
                "status": JobStatus.COMPLETED,
                "result": result or {},
                "progress": 100.0,
                "assigned_node_id": None,
                "completed_at": timestamp,
                "updated_at": timestamp,
            }
        else:
            changes = {
                "status": JobStatus.FAILED,
                "error": error or {"message": "Unknown error"},
                "assigned_node_id": None,
                "completed_at": timestamp,
                "updated_at": timestamp,
            }
            if result is not None:
                changes["result"] = result

        try:
            updated = self.persistence.compare_and_set_job(
                job_id,
                expected_statuses=ACTIVE_STATUSES,
                changes=changes,
                expected_node_id=node_id,
            )
        except ConcurrencyViolationError:
            raise self._conflict(job_id, node_id)

        if outcome != JobOutcome.PARTIAL:
            if processing_time_seconds is None:
                started = parse_timestamp(job.started_at)
                processing_time_seconds = (now - started).total_seconds() if started else 0.0
            self.node_registry.record_job_outcome(
                node_id,
                success=outcome == JobOutcome.COMPLETED,
                processing_time_seconds=processing_time_seconds,
            )
            logger.info(f"Job {job_id} {updated.status.value} on node {node_id}")
        else:
            logger.debug(f"Job {job_id} checkpointed partial result from node {node_id}")

        self.events.job_result(updated)
        return updated

    def update_progress(
        self,
        job_id: str,
        node_id: str,
        progress: float,
        message: Optional[str] = None,
    ) -> Job:
        """
        Record advisory progress from the owning node.

        The first progress report on an ASSIGNED job moves it to PROCESSING.

        Raises:
            InvalidSpecError: If progress is outside [0, 100]
            JobNotFoundError: If job doesn't exist
            NodeMismatchError: If ``node_id`` does not own the job
        """
        if not 0 <= progress <= 100:
            raise InvalidSpecError(f"progress must be in [0, 100], got {progress}")

        job = self.get(job_id)
        self._check_owner(job, node_id)

        timestamp = format_timestamp(self.clock())
        changes = {
            "status": JobStatus.PROCESSING,
            "progress": float(progress),
            "updated_at": timestamp,
        }
        if message is not None:
            changes["status_message"] = message

        try:
            updated = self.persistence.compare_and_set_job(
                job_id,
                expected_statuses=ACTIVE_STATUSES,
                changes=changes,
                expected_node_id=node_id,
            )
        except ConcurrencyViolationError:
            raise self._conflict(job_id, node_id)

        if job.status == JobStatus.ASSIGNED:
            logger.info(f"Job {job_id} started processing on node {node_id}")

        self.events.job_updated(updated)
        return updated

    # =========================================================================
    # Retry Transition (Supervisor only)
    # =========================================================================

    def requeue_or_fail(self, job: Job, reason: str) -> Optional[Job]:
        """
        Reclaim an ASSIGNED/PROCESSING job that stalled or lost its node.

        - retry_count < max_retries: back to QUEUED, retry_count += 1,
          node/start/progress cleared, ordering timestamp refreshed
        - otherwise: FAILED with a JOB_TIMEOUT error

        The transition is conditional on the job still being held by the
        node observed in ``job`` with the same retry count: if a result
        report, a cancel, or an overlapping reclaim won the race, nothing
        happens.

        Returns:
            The updated Job, or None if another caller changed it first
        """
        now = format_timestamp(self.clock())

        if job.retry_count < job.max_retries:
            changes = {
                "status": JobStatus.QUEUED,
                "retry_count": job.retry_count + 1,
                "assigned_node_id": None,
                "started_at": None,
                "progress": 0.0,
                "queued_at": now,
                "updated_at": now,
                "status_message": f"Requeued: {reason}",
            }
            assign_position = True
        else:
            changes = {
                "status": JobStatus.FAILED,
                "error": {
                    "code": JOB_TIMEOUT_CODE,
                    "message": f"Job timed out after {job.retry_count} retries: {reason}",
                    "retryCount": job.retry_count,
                },
                "assigned_node_id": None,
                "completed_at": now,
                "updated_at": now,
                "status_message": reason,
            }
            assign_position = False

        try:
            updated = self.persistence.compare_and_set_job(
                job.job_id,
                expected_statuses=ACTIVE_STATUSES,
                changes=changes,
                expected_node_id=job.assigned_node_id,
                expected_retry_count=job.retry_count,
                assign_position=assign_position,
            )
        except (ConcurrencyViolationError, JobNotFoundError) as e:
            logger.debug(f"Skipping reclaim of job {job.job_id}: {e}")
            return None

        if updated.status == JobStatus.QUEUED:
            logger.info(
                f"Job {job.job_id} requeued (retry {updated.retry_count}/{updated.max_retries}): {reason}"
            )
        else:
            logger.warning(
                f"Job {job.job_id} failed after {updated.retry_count} retries: {reason}"
            )
        self.events.job_updated(updated)
        return updated
