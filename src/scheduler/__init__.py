"""
Job Scheduler Core Module.

Distributed job scheduling for a fleet of worker nodes:
- Admission queue ordered by priority, then age
- Pull-based assignment with compare-and-swap claims
- Node registry with heartbeat liveness
- Timeout / node-loss supervision with bounded retries
"""

from .entities import (
    JobStatus,
    JobOutcome,
    NodeStatus,
    Job,
    JobSpec,
    Node,
    NodeRegistration,
    TimeWindow,
)
from .errors import (
    SchedulerError,
    NotFoundError,
    JobNotFoundError,
    NodeNotFoundError,
    InvalidSpecError,
    InvalidStateError,
    NodeUnavailableError,
    QueueFullError,
    NodeMismatchError,
    ForbiddenError,
    ConcurrencyViolationError,
)
from .events import (
    EventType,
    SchedulerEvent,
    EventSink,
    EventEmitter,
    NullEventSink,
    LoggingEventSink,
    InMemoryEventSink,
    CompositeEventSink,
)
from .persistence import PersistenceAdapter
from .queue_manager import QueueManager
from .registry import NodeRegistry
from .lifecycle import JobLifecycleManager
from .assignment import AssignmentEngine
from .supervisor import RetryTimeoutSupervisor
from .ticker import SupervisorTicker, TickerState
from .service import SchedulerService

__all__ = [
    # Entities
    "JobStatus",
    "JobOutcome",
    "NodeStatus",
    "Job",
    "JobSpec",
    "Node",
    "NodeRegistration",
    "TimeWindow",
    # Errors
    "SchedulerError",
    "NotFoundError",
    "JobNotFoundError",
    "NodeNotFoundError",
    "InvalidSpecError",
    "InvalidStateError",
    "NodeUnavailableError",
    "QueueFullError",
    "NodeMismatchError",
    "ForbiddenError",
    "ConcurrencyViolationError",
    # Events
    "EventType",
    "SchedulerEvent",
    "EventSink",
    "EventEmitter",
    "NullEventSink",
    "LoggingEventSink",
    "InMemoryEventSink",
    "CompositeEventSink",
    # Components
    "PersistenceAdapter",
    "QueueManager",
    "NodeRegistry",
    "JobLifecycleManager",
    "AssignmentEngine",
    "RetryTimeoutSupervisor",
    "SupervisorTicker",
    "TickerState",
    # Service
    "SchedulerService",
]
