"""
Scheduler-specific exceptions.

All errors are synchronous and local; the core never retries them.
The only built-in retry is the per-job max_retries policy applied by the
supervisor along the timeout path.
"""


class SchedulerError(Exception):
    """Base exception for all scheduler errors."""
    pass


class NotFoundError(SchedulerError):
    """Raised when a requested entity does not exist."""
    pass


class JobNotFoundError(NotFoundError):
    """Raised when a requested job does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class NodeNotFoundError(NotFoundError):
    """Raised when a requested node does not exist."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class InvalidSpecError(SchedulerError):
    """
    Raised when a request carries out-of-range or malformed fields.

    Examples:
    - priority outside [1, 10]
    - unknown job type
    - negative max_retries
    """
    pass


class InvalidStateError(SchedulerError):
    """
    Raised when an operation is illegal for the entity's current status.

    Also raised to the loser of a race: the caller must re-read the entity
    and retry against its new state.
    """
    pass


class NodeUnavailableError(InvalidStateError):
    """Raised when a node may not claim work (wrong status or outside its availability windows)."""

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Node {node_id} cannot claim jobs: {reason}")


class QueueFullError(SchedulerError):
    """Raised when the admission queue is at capacity. No job is created."""

    def __init__(self, max_queue_size: int):
        self.max_queue_size = max_queue_size
        super().__init__(f"Admission queue is full (max_queue_size={max_queue_size})")


class NodeMismatchError(SchedulerError):
    """
    Raised when a node reports on a job it no longer owns.

    Typically a late report after the supervisor reassigned the job.
    """

    def __init__(self, job_id: str, node_id: str, assigned_node_id):
        self.job_id = job_id
        self.node_id = node_id
        self.assigned_node_id = assigned_node_id
        super().__init__(
            f"Job {job_id} is not assigned to node {node_id} "
            f"(assigned to: {assigned_node_id})"
        )


class ForbiddenError(SchedulerError):
    """Raised when the injected authorization policy rejects a request."""
    pass


class ConcurrencyViolationError(SchedulerError):
    """
    Raised when a conditional update matched no row.

    Used for compare-and-swap transitions where the entity was changed
    by another caller between read and write.
    """

    def __init__(self, entity_id: str, expected_status: str, actual_status: str):
        self.entity_id = entity_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Concurrency violation for {entity_id}: "
            f"expected status '{expected_status}', got '{actual_status}'"
        )
