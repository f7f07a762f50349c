"""
Scheduler Test Fixtures.

Base fixtures:
  - Empty database in a temporary file
  - Mocked clock at fixed time, shared by every component
  - In-memory event sink for asserting emitted events

Factories:
  - submit_job: submit through the lifecycle manager
  - register_node: register through the node registry
"""

import pytest
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Generator

from src.scheduler import (
    AssignmentEngine,
    EventEmitter,
    InMemoryEventSink,
    Job,
    JobLifecycleManager,
    JobSpec,
    JobStatus,
    Node,
    NodeRegistration,
    NodeRegistry,
    PersistenceAdapter,
    QueueManager,
    RetryTimeoutSupervisor,
)


# Monday, fixed for deterministic tests
FIXED_DATETIME = datetime(2026, 1, 5, 12, 0, 0)

JOB_TYPES = ("ocr", "pdf_parse", "render")
HEARTBEAT_TIMEOUT = 180


class MockClock:
    """
    Mock clock for deterministic time control.

    - Starts at fixed epoch
    - Advances only when explicitly ticked
    - Callable, so it can be injected wherever a clock is expected
    """

    def __init__(self, start_time: datetime = FIXED_DATETIME):
        self._current = start_time

    def __call__(self) -> datetime:
        return self._current

    def now(self) -> datetime:
        return self._current

    def tick(self, seconds: float = 1) -> None:
        """Advance time by specified seconds."""
        self._current += timedelta(seconds=seconds)

    def set(self, time: datetime) -> None:
        """Set time to specific value."""
        self._current = time


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup, including WAL and SHM files
    Path(db_path).unlink(missing_ok=True)
    Path(f"{db_path}-wal").unlink(missing_ok=True)
    Path(f"{db_path}-shm").unlink(missing_ok=True)


@pytest.fixture
def persistence(temp_db_path: str) -> PersistenceAdapter:
    """Create a fresh PersistenceAdapter with empty database."""
    return PersistenceAdapter(temp_db_path)


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def mock_clock() -> MockClock:
    """Create a mock clock at fixed time."""
    return MockClock()


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def events(event_sink: InMemoryEventSink) -> EventEmitter:
    return EventEmitter(event_sink)


@pytest.fixture
def max_queue_size() -> int:
    """Queue capacity; override in a test module to exercise QueueFull."""
    return 1000


@pytest.fixture
def queue_manager(persistence: PersistenceAdapter, max_queue_size: int) -> QueueManager:
    """Create a QueueManager with the test database."""
    return QueueManager(persistence, max_queue_size=max_queue_size)


@pytest.fixture
def node_registry(
    persistence: PersistenceAdapter,
    events: EventEmitter,
    mock_clock: MockClock,
) -> NodeRegistry:
    return NodeRegistry(persistence, events, clock=mock_clock)


@pytest.fixture
def lifecycle(
    persistence: PersistenceAdapter,
    queue_manager: QueueManager,
    node_registry: NodeRegistry,
    events: EventEmitter,
    mock_clock: MockClock,
) -> JobLifecycleManager:
    return JobLifecycleManager(
        persistence=persistence,
        queue_manager=queue_manager,
        node_registry=node_registry,
        events=events,
        job_types=JOB_TYPES,
        clock=mock_clock,
    )


@pytest.fixture
def assignment(
    queue_manager: QueueManager,
    node_registry: NodeRegistry,
    lifecycle: JobLifecycleManager,
    mock_clock: MockClock,
) -> AssignmentEngine:
    return AssignmentEngine(queue_manager, node_registry, lifecycle, clock=mock_clock)


@pytest.fixture
def supervisor(
    persistence: PersistenceAdapter,
    lifecycle: JobLifecycleManager,
    node_registry: NodeRegistry,
    mock_clock: MockClock,
) -> RetryTimeoutSupervisor:
    return RetryTimeoutSupervisor(
        persistence=persistence,
        lifecycle=lifecycle,
        node_registry=node_registry,
        heartbeat_timeout_seconds=HEARTBEAT_TIMEOUT,
        clock=mock_clock,
    )


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture
def submit_job(lifecycle: JobLifecycleManager) -> Callable[..., Job]:
    """
    Factory fixture for submitting jobs.

    Returns a function that submits a job with the given overrides.
    """

    def _submit(
        job_type: str = "ocr",
        priority: int = 5,
        max_retries: int = 3,
        timeout_seconds: int = 3600,
        submitted_by: str = "tester",
        parameters: dict = None,
        tags: list = None,
    ) -> Job:
        spec = JobSpec(
            job_type=job_type,
            parameters=parameters if parameters is not None else {"file": "scan.png"},
            submitted_by=submitted_by,
            priority=priority,
            max_retries=max_retries,
            timeout_seconds=timeout_seconds,
            tags=tags or [],
        )
        return lifecycle.submit(spec)

    return _submit


@pytest.fixture
def register_node(node_registry: NodeRegistry) -> Callable[..., Node]:
    """Factory fixture for registering nodes."""

    def _register(
        node_id: str = None,
        hostname: str = "worker-1",
        capabilities: list = None,
        time_restrictions: list = None,
    ) -> Node:
        return node_registry.register(
            NodeRegistration(
                hostname=hostname,
                capabilities=capabilities or ["ocr", "pdf_parse"],
                resource_info={"cpu_cores": 8, "memory_gb": 32},
                node_id=node_id,
                time_restrictions=time_restrictions,
            )
        )

    return _register


# =============================================================================
# Assertion Helpers
# =============================================================================


def assert_job_status(persistence: PersistenceAdapter, job_id: str, expected: JobStatus):
    """Assert a job has the expected status."""
    job = persistence.get_job(job_id)
    assert job is not None, f"Job {job_id} not found"
    assert job.status == expected, f"Expected {expected}, got {job.status}"


def assert_job_consistent(job: Job):
    """Assert the per-job field invariants."""
    assert (job.assigned_node_id is not None) == job.is_active(), (
        f"assigned_node_id={job.assigned_node_id} with status {job.status}"
    )
    assert (job.completed_at is not None) == job.is_terminal(), (
        f"completed_at={job.completed_at} with status {job.status}"
    )
    assert job.retry_count <= job.max_retries
