"""
Scheduler Service - Main entry point for the Job Scheduler.

This service wires all scheduler components together:
- PersistenceAdapter (storage)
- QueueManager (admission queue)
- NodeRegistry (node records and liveness)
- JobLifecycleManager (job state machine)
- AssignmentEngine (pull-based claims)
- RetryTimeoutSupervisor (timeouts, node loss, retries)
- SupervisorTicker (periodic tick trigger)

Usage:
    service = SchedulerService.create(SchedulerSettings.from_env())
    service.start_ticker()
    # ... nodes claim and report through the service ...
    service.stop_ticker()
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Tuple

from src.infra.settings import SchedulerSettings
from src.infra.webhook import WebhookEventSink

from .assignment import AssignmentEngine
from .entities import (
    Job,
    JobOutcome,
    JobSpec,
    JobStatus,
    Node,
    NodeRegistration,
    NodeStatus,
    format_timestamp,
    utc_now,
)
from .events import CompositeEventSink, EventEmitter, EventSink, LoggingEventSink
from .errors import InvalidSpecError
from .lifecycle import CancelPolicy, JobLifecycleManager
from .persistence import PersistenceAdapter
from .queue_manager import QueueManager
from .registry import NodeRegistry
from .supervisor import RetryTimeoutSupervisor
from .ticker import SupervisorTicker


logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Main service that coordinates all scheduler components.

    Provides:
    - Component initialization and wiring
    - Ticker start/stop
    - API-friendly methods for job and node operations
    """

    def __init__(
        self,
        settings: SchedulerSettings,
        persistence: PersistenceAdapter,
        queue_manager: QueueManager,
        node_registry: NodeRegistry,
        lifecycle: JobLifecycleManager,
        assignment: AssignmentEngine,
        supervisor: RetryTimeoutSupervisor,
        ticker: SupervisorTicker,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize SchedulerService with all components.

        Use SchedulerService.create() for convenient construction.
        """
        self.settings = settings
        self.persistence = persistence
        self.queue_manager = queue_manager
        self.node_registry = node_registry
        self.lifecycle = lifecycle
        self.assignment = assignment
        self.supervisor = supervisor
        self.ticker = ticker
        self.clock = clock

    @classmethod
    def create(
        cls,
        settings: Optional[SchedulerSettings] = None,
        event_sink: Optional[EventSink] = None,
        clock: Callable[[], datetime] = utc_now,
        cancel_policy: Optional[CancelPolicy] = None,
    ) -> "SchedulerService":
        """
        Create a SchedulerService with all components wired together.

        Args:
            settings: Configuration; defaults are used when omitted
            event_sink: Event consumer; when omitted events are logged and,
                if ``event_webhook_url`` is set, POSTed to it
            clock: Time source shared by every component
            cancel_policy: Optional authorization hook for cancellation

        Returns:
            Configured SchedulerService
        """
        settings = settings or SchedulerSettings()

        if event_sink is None:
            event_sink = CompositeEventSink(LoggingEventSink())
            if settings.event_webhook_url:
                event_sink.add(WebhookEventSink(settings.event_webhook_url))
        events = EventEmitter(event_sink)

        persistence = PersistenceAdapter(settings.db_path)
        queue_manager = QueueManager(persistence, max_queue_size=settings.max_queue_size)
        node_registry = NodeRegistry(persistence, events, clock=clock)
        lifecycle = JobLifecycleManager(
            persistence=persistence,
            queue_manager=queue_manager,
            node_registry=node_registry,
            events=events,
            job_types=settings.job_types,
            clock=clock,
            cancel_policy=cancel_policy,
        )
        assignment = AssignmentEngine(queue_manager, node_registry, lifecycle, clock=clock)
        supervisor = RetryTimeoutSupervisor(
            persistence=persistence,
            lifecycle=lifecycle,
            node_registry=node_registry,
            heartbeat_timeout_seconds=settings.heartbeat_timeout_seconds,
            clock=clock,
        )
        ticker = SupervisorTicker(supervisor.tick, interval=settings.tick_interval_seconds)

        return cls(
            settings=settings,
            persistence=persistence,
            queue_manager=queue_manager,
            node_registry=node_registry,
            lifecycle=lifecycle,
            assignment=assignment,
            supervisor=supervisor,
            ticker=ticker,
            clock=clock,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_ticker(self) -> None:
        """Start periodic supervision in the background."""
        logger.info("Starting scheduler supervisor ticker...")
        self.ticker.start()

    def stop_ticker(self, timeout: float = 30.0) -> None:
        logger.info("Stopping scheduler supervisor ticker...")
        self.ticker.stop(timeout=timeout)

    @property
    def is_running(self) -> bool:
        return self.ticker.is_running()

    # =========================================================================
    # Job Operations
    # =========================================================================

    def submit_job(
        self,
        job_type: str,
        parameters: Optional[dict] = None,
        submitted_by: str = "anonymous",
        priority: Optional[int] = None,
        max_retries: Optional[int] = None,
        timeout_seconds: Optional[int] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Job:
        """
        Submit a new job; omitted fields take the configured defaults.

        Raises:
            InvalidSpecError: If the spec fails validation
            QueueFullError: If the admission queue is at capacity
        """
        spec = JobSpec(
            job_type=job_type,
            parameters=parameters if parameters is not None else {},
            submitted_by=submitted_by,
            priority=self.settings.default_priority if priority is None else priority,
            max_retries=self.settings.default_max_retries if max_retries is None else max_retries,
            timeout_seconds=(
                self.settings.default_timeout_seconds if timeout_seconds is None else timeout_seconds
            ),
            tags=list(tags or []),
        )
        return self.lifecycle.submit(spec)

    def get_job(self, job_id: str) -> Job:
        return self.lifecycle.get(job_id)

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
        return self.lifecycle.list_jobs(
            statuses=statuses,
            job_type=job_type,
            submitted_by=submitted_by,
            tags=tags,
            assigned_node_id=assigned_node_id,
            limit=limit,
            offset=offset,
        )

    def cancel_job(self, job_id: str, requester: str = "anonymous") -> Job:
        return self.lifecycle.cancel(job_id, requester)

    def claim_jobs(
        self,
        node_id: str,
        capacity: int,
        capabilities: Optional[Iterable[str]] = None,
    ) -> list[Job]:
        return self.assignment.claim(node_id, capacity, capabilities)

    def report_result(
        self,
        job_id: str,
        node_id: str,
        outcome: JobOutcome,
        result: Optional[dict] = None,
        error: Optional[dict] = None,
        processing_time_seconds: Optional[float] = None,
    ) -> Job:
        return self.lifecycle.report_result(
            job_id,
            node_id,
            outcome,
            result=result,
            error=error,
            processing_time_seconds=processing_time_seconds,
        )

    def update_progress(
        self,
        job_id: str,
        node_id: str,
        progress: float,
        message: Optional[str] = None,
    ) -> Job:
        return self.lifecycle.update_progress(job_id, node_id, progress, message)

    # =========================================================================
    # Node Operations
    # =========================================================================

    def register_node(self, registration: NodeRegistration) -> Node:
        return self.node_registry.register(registration)

    def heartbeat(
        self,
        node_id: str,
        status: NodeStatus,
        current_load: Optional[dict] = None,
    ) -> Node:
        return self.node_registry.heartbeat(node_id, status, current_load)

    def get_node(self, node_id: str) -> Node:
        return self.node_registry.get(node_id)

    def list_nodes(
        self,
        statuses: Optional[Iterable[NodeStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[list[Node], int]:
        return self.node_registry.list_nodes(statuses=statuses, limit=limit, offset=offset)

    def list_available_nodes(self, capabilities: Iterable[str] = ()) -> list[Node]:
        return self.node_registry.list_available(capabilities)

    # =========================================================================
    # Supervision and Maintenance
    # =========================================================================

    def tick(self) -> dict:
        """Run one supervision pass immediately."""
        return self.supervisor.tick()

    def cleanup_old_jobs(self, retention_days: Optional[int] = None) -> int:
        """
        Delete terminal jobs older than the retention window.

        Returns:
            Number of jobs deleted
        """
        days = self.settings.job_retention_days if retention_days is None else retention_days
        if days < 0:
            raise InvalidSpecError(f"retention_days must be non-negative, got {days}")

        cutoff = format_timestamp(self.clock() - timedelta(days=days))
        deleted = self.persistence.delete_terminal_jobs_before(cutoff)
        logger.info(f"Cleanup removed {deleted} terminal jobs older than {days} days")
        return deleted

    def get_queue_stats(self) -> dict:
        return self.queue_manager.get_stats()

    def peek_queue(self, limit: int = 20, job_types: Optional[Iterable[str]] = None) -> list[Job]:
        """Queued jobs in the order nodes would claim them."""
        return self.queue_manager.list_queued(limit=limit, job_types=job_types)

    def get_status(self) -> dict:
        """
        Get scheduler status.

        Returns:
            Dict with ticker state, queue statistics and per-status counts
        """
        return {
            "ticker_running": self.ticker.is_running(),
            "tick_interval_seconds": self.ticker.interval,
            "ticks_run": self.ticker.ticks_run,
            "ticks_failed": self.ticker.ticks_failed,
            "last_tick": self.ticker.last_stats,
            "queue": self.get_queue_stats(),
            "jobs": {
                status.value: self.persistence.count_jobs_by_status(status)
                for status in JobStatus
            },
        }
