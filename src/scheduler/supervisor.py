"""
Retry & Timeout Supervisor for Job Scheduler.

One idempotent entry point, ``tick()``, invoked by an external timer.
Each tick runs three sweeps:

1. Job timeout: ASSIGNED/PROCESSING jobs past started_at + timeout_seconds
   are requeued (while retries remain) or failed with JOB_TIMEOUT.
2. Node liveness: silent nodes go OFFLINE and every job they hold is
   reclaimed immediately, without waiting for the job's own timeout.
3. Orphans: active jobs whose node is gone or OFFLINE
   (e.g. left behind by a tick that crashed between 2's flip and reclaim)
   are reclaimed the same way.

Every reclaim is a single conditional transition, so the sweeps are safe
to run concurrently with claim/report/cancel and safe to resume after a
crash. Errors from the store propagate to the caller; the next tick
retries.
"""

import logging
from datetime import datetime
from typing import Callable

from .entities import (
    ACTIVE_STATUSES,
    Job,
    JobStatus,
    Node,
    NodeStatus,
    utc_now,
)
from .lifecycle import JobLifecycleManager
from .persistence import PersistenceAdapter
from .registry import DEFAULT_HEARTBEAT_TIMEOUT_SECONDS, NodeRegistry


logger = logging.getLogger(__name__)


class RetryTimeoutSupervisor:
    """
    Guarantees forward progress when a job stalls or its node disappears.

    The only built-in retry in the system is applied here: a reclaimed job
    is requeued while ``retry_count < max_retries`` and failed otherwise.
    Malformed requests are never retried.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter,
        lifecycle: JobLifecycleManager,
        node_registry: NodeRegistry,
        heartbeat_timeout_seconds: float = DEFAULT_HEARTBEAT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the supervisor.

        Args:
            persistence: PersistenceAdapter for scans
            lifecycle: Lifecycle manager applying the retry transition
            node_registry: Registry owning node liveness
            heartbeat_timeout_seconds: Silence after which a node is OFFLINE
            clock: Time source
        """
        self.persistence = persistence
        self.lifecycle = lifecycle
        self.node_registry = node_registry
        self.heartbeat_timeout_seconds = heartbeat_timeout_seconds
        self.clock = clock

    def tick(self) -> dict:
        """
        Run one supervision pass.

        Returns:
            Tick statistics
        """
        stats = {
            "jobs_requeued": 0,
            "jobs_failed": 0,
            "nodes_offline": 0,
        }

        self._sweep_job_timeouts(stats)
        self._sweep_node_liveness(stats)
        self._sweep_orphaned_jobs(stats)

        if stats["jobs_requeued"] or stats["jobs_failed"] or stats["nodes_offline"]:
            logger.info(
                f"Tick complete: "
                f"{stats['jobs_requeued']} jobs requeued, "
                f"{stats['jobs_failed']} jobs failed, "
                f"{stats['nodes_offline']} nodes marked offline"
            )
        else:
            logger.debug("Tick complete: nothing to reclaim")

        return stats

    def _reclaim(self, job: Job, reason: str, stats: dict) -> None:
        updated = self.lifecycle.requeue_or_fail(job, reason)
        if updated is None:
            return
        if updated.status == JobStatus.QUEUED:
            stats["jobs_requeued"] += 1
        else:
            stats["jobs_failed"] += 1

    # =========================================================================
    # Sweeps
    # =========================================================================

    def _sweep_job_timeouts(self, stats: dict) -> None:
        """Reclaim active jobs whose own timeout has elapsed."""
        now = self.clock()

        for job in self.persistence.list_jobs_by_status(ACTIVE_STATUSES):
            deadline = job.deadline()
            if deadline is None or now <= deadline:
                continue

            self._reclaim(
                job,
                f"exceeded timeout of {job.timeout_seconds}s on node {job.assigned_node_id}",
                stats,
            )

    def _sweep_node_liveness(self, stats: dict) -> None:
        """Flip silent nodes OFFLINE and reclaim their jobs right away."""

        def reclaim_node_jobs(node: Node) -> None:
            for job in self.persistence.list_jobs_for_node(node.node_id, ACTIVE_STATUSES):
                self._reclaim(job, f"node {node.node_id} went offline", stats)

        stats["nodes_offline"] = self.node_registry.sweep_liveness(
            self.heartbeat_timeout_seconds,
            on_offline=reclaim_node_jobs,
        )

    def _sweep_orphaned_jobs(self, stats: dict) -> None:
        """
        Reclaim active jobs whose node is missing or OFFLINE.

        Node removal never cascades to jobs; this sweep is what picks them up.
        """
        node_status = {}

        for job in self.persistence.list_jobs_by_status(ACTIVE_STATUSES):
            node_id = job.assigned_node_id
            if node_id not in node_status:
                node = self.persistence.get_node(node_id) if node_id else None
                node_status[node_id] = node.status if node is not None else None

            status = node_status[node_id]
            if status is not None and status != NodeStatus.OFFLINE:
                continue

            if status is None:
                reason = f"assigned node {node_id} no longer exists"
            else:
                reason = f"assigned node {node_id} is {status.value}"
            self._reclaim(job, reason, stats)
