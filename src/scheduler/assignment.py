"""
Assignment Engine for Job Scheduler.

Matches queued jobs to a requesting node:
- Scans the admission queue in claim order
- Claims each candidate with a QUEUED -> ASSIGNED compare-and-swap
- Skips candidates that lose the race; never retries them in the same call

The CAS is the only thing that keeps two concurrent claimers from
receiving the same job.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from .entities import Job, utc_now
from .errors import (
    ConcurrencyViolationError,
    InvalidSpecError,
    JobNotFoundError,
    NodeUnavailableError,
)
from .lifecycle import JobLifecycleManager
from .queue_manager import QueueManager
from .registry import NodeRegistry


logger = logging.getLogger(__name__)


class AssignmentEngine:
    """
    Pull-based assignment of queued jobs to nodes.

    Each call makes a bounded number of passes over the queue: every pass
    fetches the next ``capacity - claimed`` candidates it has not seen yet,
    so a candidate lost to a concurrent claimer is replaced by the next one
    in order until the queue runs out of matching jobs.
    """

    def __init__(
        self,
        queue_manager: QueueManager,
        node_registry: NodeRegistry,
        lifecycle: JobLifecycleManager,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.queue_manager = queue_manager
        self.node_registry = node_registry
        self.lifecycle = lifecycle
        self.clock = clock

    def claim(
        self,
        node_id: str,
        capacity: int,
        capabilities: Optional[Iterable[str]] = None,
    ) -> list[Job]:
        """
        Atomically acquire up to ``capacity`` queued jobs for a node.

        Only jobs whose type is in ``capabilities`` (restricted to what the
        node declared at registration) are considered. When
        ``capabilities`` is omitted the node's declared set is used.

        Args:
            node_id: Requesting node
            capacity: Maximum number of jobs to claim
            capabilities: Job types the node is asking for

        Returns:
            Exactly the jobs claimed, in queue order; may be fewer than capacity

        Raises:
            InvalidSpecError: If capacity is not positive
            NodeNotFoundError: If the node is not registered
            NodeUnavailableError: If the node is not ONLINE/IDLE or is
                outside its availability windows
        """
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise InvalidSpecError(f"capacity must be a positive integer, got {capacity!r}")

        node = self.node_registry.get(node_id)
        if not node.is_assignable():
            raise NodeUnavailableError(node_id, f"status is {node.status.value}")
        if not node.is_available_at(self.clock()):
            raise NodeUnavailableError(node_id, "outside availability windows")

        declared = set(node.capabilities)
        job_types = declared if capabilities is None else set(capabilities) & declared
        if not job_types:
            return []

        claimed: list[Job] = []
        seen: set[str] = set()

        while len(claimed) < capacity:
            candidates = self.queue_manager.candidates(
                job_types=sorted(job_types),
                limit=capacity - len(claimed),
                exclude_ids=seen,
            )
            if not candidates:
                break

            for candidate in candidates:
                seen.add(candidate.job_id)
                try:
                    job = self.lifecycle.mark_assigned(candidate.job_id, node_id)
                except (ConcurrencyViolationError, JobNotFoundError) as e:
                    logger.debug(f"Lost claim race for job {candidate.job_id}: {e}")
                    continue
                claimed.append(job)

        if claimed:
            logger.info(
                f"Node {node_id} claimed {len(claimed)}/{capacity} jobs: "
                f"{[job.job_id for job in claimed]}"
            )
        return claimed
