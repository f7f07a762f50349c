"""
Admission Queue for Job Scheduler.

- Ordered view of QUEUED jobs: priority DESC, then FIFO within a tier
- Bounded by max_queue_size; admission beyond capacity fails explicitly

What QueueManager MUST NOT do:
- Change job status (Lifecycle Manager's responsibility)
- Assign jobs to nodes (Assignment Engine's responsibility)
- Decide on retries (Supervisor's responsibility)
"""

import logging
from typing import Iterable, Optional

from .entities import Job, JobStatus
from .persistence import PersistenceAdapter


logger = logging.getLogger(__name__)


DEFAULT_MAX_QUEUE_SIZE = 1000

# Priority bands reported in queue statistics
HIGH_PRIORITY_BAND = (8, 10)
MEDIUM_PRIORITY_BAND = (4, 7)
LOW_PRIORITY_BAND = (1, 3)


class QueueManager:
    """
    Admission queue with priority-based ordering.

    The queue is not a separate structure: it is the ordered set of jobs
    whose status is QUEUED, read through the store's range scan.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
    ):
        """
        Initialize QueueManager.

        Args:
            persistence: PersistenceAdapter for storage operations
            max_queue_size: Maximum number of QUEUED jobs
        """
        self.persistence = persistence
        self.max_queue_size = max_queue_size

    def admit(self, job: Job) -> Job:
        """
        Persist a new QUEUED job if the queue has room.

        Raises:
            QueueFullError: If the queue is at capacity (nothing is persisted)
        """
        job = self.persistence.create_job(job, max_queued=self.max_queue_size)
        logger.debug(
            f"Admitted job {job.job_id} to queue "
            f"(priority={job.priority}, position={job.position})"
        )
        return job

    def candidates(
        self,
        job_types: Iterable[str],
        limit: int,
        exclude_ids: Iterable[str] = (),
    ) -> list[Job]:
        """Next QUEUED jobs of the given types, in claim order."""
        return self.persistence.list_queued_jobs(
            job_types=job_types,
            limit=limit,
            exclude_ids=exclude_ids,
        )

    def list_queued(
        self,
        limit: int = 100,
        job_types: Optional[Iterable[str]] = None,
    ) -> list[Job]:
        """
        Peek at queued jobs in claim order without claiming them.

        Returns:
            Jobs ordered by (priority DESC, queued_at ASC, position ASC)
        """
        return self.persistence.list_queued_jobs(job_types=job_types, limit=limit)

    def count_queued(self) -> int:
        """Get the count of queued jobs."""
        return self.persistence.count_jobs_by_status(JobStatus.QUEUED)

    def is_full(self) -> bool:
        return self.count_queued() >= self.max_queue_size

    def get_stats(self) -> dict:
        """
        Queue statistics.

        Returns:
            Dict with queue_size, max_queue_size, high/medium/low priority
            counts and the oldest queued timestamp
        """
        return {
            "queue_size": self.count_queued(),
            "max_queue_size": self.max_queue_size,
            "high_priority": self.persistence.count_queued_in_priority_range(*HIGH_PRIORITY_BAND),
            "medium_priority": self.persistence.count_queued_in_priority_range(*MEDIUM_PRIORITY_BAND),
            "low_priority": self.persistence.count_queued_in_priority_range(*LOW_PRIORITY_BAND),
            "oldest_job": self.persistence.get_oldest_queued_at(),
        }
