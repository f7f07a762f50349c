"""
Persistence Adapter for Job Scheduler.

SQLite storage for Job and Node records:
- WAL mode, one short-lived connection per operation
- Conditional ("compare-and-swap on status") updates for every transition
- Ordered range scan of the admission queue by
  (priority DESC, queued_at ASC, position ASC)
- Atomic node statistics updates

Provides primitives only. Transition rules live in the lifecycle manager,
the node registry, the assignment engine and the supervisor.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence, Tuple

from .entities import (
    Job,
    JobStatus,
    Node,
    NodeStatus,
    TERMINAL_STATUSES,
)
from .errors import (
    ConcurrencyViolationError,
    JobNotFoundError,
    NodeNotFoundError,
    QueueFullError,
)


logger = logging.getLogger(__name__)


# Gap between consecutive queue positions
POSITION_GAP_SIZE = 100

DEFAULT_BUSY_TIMEOUT_SECONDS = 30.0

JOB_JSON_FIELDS = ("parameters", "result", "error", "tags")
NODE_JSON_FIELDS = ("capabilities", "resource_info", "current_load", "time_restrictions")

JOB_COLUMNS = (
    "job_id",
    "job_type",
    "priority",
    "status",
    "status_message",
    "parameters",
    "result",
    "error",
    "submitted_by",
    "assigned_node_id",
    "progress",
    "started_at",
    "completed_at",
    "retry_count",
    "max_retries",
    "timeout_seconds",
    "tags",
    "created_at",
    "updated_at",
    "queued_at",
    "position",
)

NODE_COLUMNS = (
    "node_id",
    "hostname",
    "ip_address",
    "version",
    "status",
    "capabilities",
    "resource_info",
    "current_load",
    "time_restrictions",
    "last_heartbeat_at",
    "last_job_completed_at",
    "total_jobs_processed",
    "failed_jobs",
    "average_processing_time_seconds",
    "created_at",
    "updated_at",
)

# Columns a re-registration is allowed to overwrite
NODE_REGISTRATION_COLUMNS = (
    "hostname",
    "ip_address",
    "version",
    "status",
    "capabilities",
    "resource_info",
    "last_heartbeat_at",
    "updated_at",
)


def _encode(column: str, value: Any, json_fields: Sequence[str]) -> Any:
    if isinstance(value, Enum):
        return value.value
    if column in json_fields and value is not None:
        return json.dumps(value)
    return value


def _decode_json(value: Optional[str]) -> Any:
    return json.loads(value) if value is not None else None


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


def _status_values(statuses: Iterable[Enum]) -> list[str]:
    return [status.value for status in statuses]


class PersistenceAdapter:
    """
    SQLite-based persistence for jobs and nodes.

    - Does NOT contain business logic
    - Does NOT validate beyond schema constraints
    - Every mutation of a single entity commits independently, so a crash
      mid-sweep never leaves a half-applied transition
    """

    def __init__(
        self,
        db_path: str | Path,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT_SECONDS,
    ):
        """
        Initialize persistence adapter.

        Args:
            db_path: Path to SQLite database file.
            busy_timeout: Seconds a writer waits for a competing lock.
        """
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode enabled."""
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for read-only connections."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.

        ``immediate`` takes the write lock up front, for read-then-write
        sequences that must not interleave with other writers.
        """
        conn = self._get_connection()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    job_id TEXT PRIMARY KEY,
                    job_type TEXT NOT NULL,
                    priority INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    status_message TEXT,
                    parameters TEXT NOT NULL DEFAULT '{}',
                    result TEXT,
                    error TEXT,
                    submitted_by TEXT NOT NULL,
                    assigned_node_id TEXT,
                    progress REAL NOT NULL DEFAULT 0,
                    started_at TEXT,
                    completed_at TEXT,
                    retry_count INTEGER NOT NULL DEFAULT 0,
                    max_retries INTEGER NOT NULL DEFAULT 3,
                    timeout_seconds INTEGER NOT NULL DEFAULT 3600,
                    tags TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    queued_at TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0
                )
            """)

            # Admission queue order
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_queue_order
                ON jobs (status, priority DESC, queued_at ASC, position ASC)
            """)

            # Derived node -> jobs index
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_assigned_node
                ON jobs (assigned_node_id, status)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_position
                ON jobs (position)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS nodes (
                    node_id TEXT PRIMARY KEY,
                    hostname TEXT NOT NULL,
                    ip_address TEXT,
                    version TEXT,
                    status TEXT NOT NULL,
                    capabilities TEXT NOT NULL DEFAULT '[]',
                    resource_info TEXT NOT NULL DEFAULT '{}',
                    current_load TEXT,
                    time_restrictions TEXT,
                    last_heartbeat_at TEXT,
                    last_job_completed_at TEXT,
                    total_jobs_processed INTEGER NOT NULL DEFAULT 0,
                    failed_jobs INTEGER NOT NULL DEFAULT 0,
                    average_processing_time_seconds REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_nodes_liveness
                ON nodes (status, last_heartbeat_at)
            """)

    # =========================================================================
    # Job Operations
    # =========================================================================

    def create_job(self, job: Job, max_queued: Optional[int] = None) -> Job:
        """
        Insert a new QUEUED job and assign its queue position.

        When ``max_queued`` is given the capacity check and the insert
        happen under one write lock, so concurrent submissions cannot
        overshoot the bound.

        Raises:
            QueueFullError: If the queue already holds ``max_queued`` jobs
        """
        with self._transaction(immediate=True) as conn:
            if max_queued is not None:
                row = conn.execute(
                    "SELECT COUNT(*) AS count FROM jobs WHERE status = ?",
                    (JobStatus.QUEUED.value,),
                ).fetchone()
                if row["count"] >= max_queued:
                    raise QueueFullError(max_queued)

            row = conn.execute("SELECT MAX(position) AS max_pos FROM jobs").fetchone()
            max_pos = row["max_pos"] if row["max_pos"] is not None else 0
            job.position = max_pos + POSITION_GAP_SIZE

            values = [
                _encode(column, getattr(job, column), JOB_JSON_FIELDS)
                for column in JOB_COLUMNS
            ]
            conn.execute(
                f"INSERT INTO jobs ({', '.join(JOB_COLUMNS)}) VALUES ({_placeholders(values)})",
                values,
            )
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM jobs WHERE job_id = ?",
                (job_id,),
            ).fetchone()

        if row is None:
            return None

        return self._row_to_job(row)

    def _row_to_job(self, row: sqlite3.Row) -> Job:
        """Convert a database row to a Job entity."""
        return Job(
            job_id=row["job_id"],
            job_type=row["job_type"],
            priority=row["priority"],
            status=JobStatus(row["status"]),
            status_message=row["status_message"],
            parameters=_decode_json(row["parameters"]) or {},
            result=_decode_json(row["result"]),
            error=_decode_json(row["error"]),
            submitted_by=row["submitted_by"],
            assigned_node_id=row["assigned_node_id"],
            progress=row["progress"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            timeout_seconds=row["timeout_seconds"],
            tags=_decode_json(row["tags"]) or [],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            queued_at=row["queued_at"],
            position=row["position"],
        )

    def compare_and_set_job(
        self,
        job_id: str,
        expected_statuses: Iterable[JobStatus],
        changes: dict,
        expected_node_id: Optional[str] = None,
        expected_retry_count: Optional[int] = None,
        assign_position: bool = False,
    ) -> Job:
        """
        Apply ``changes`` only if the job is still in one of ``expected_statuses``.

        This is the single mechanism that serializes writers on a job:
        one conditional UPDATE, so of two racing callers exactly one wins.

        Args:
            job_id: Job to update
            expected_statuses: Statuses the caller observed and is transitioning from
            changes: Column -> new value
            expected_node_id: If given, the job must also still be assigned to this node
            expected_retry_count: If given, the job must not have been reclaimed
                since the caller read it
            assign_position: Move the job to the back of its priority tier

        Returns:
            The updated Job

        Raises:
            JobNotFoundError: If job doesn't exist
            ConcurrencyViolationError: If the condition no longer holds
        """
        expected = _status_values(expected_statuses)
        assignments = [f"{column} = ?" for column in changes]
        values = [
            _encode(column, value, JOB_JSON_FIELDS)
            for column, value in changes.items()
        ]
        if assign_position:
            assignments.append(
                f"position = (SELECT COALESCE(MAX(position), 0) + {POSITION_GAP_SIZE} FROM jobs)"
            )

        where = f"job_id = ? AND status IN ({_placeholders(expected)})"
        params = values + [job_id] + expected
        if expected_node_id is not None:
            where += " AND assigned_node_id = ?"
            params.append(expected_node_id)
        if expected_retry_count is not None:
            where += " AND retry_count = ?"
            params.append(expected_retry_count)

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE jobs SET {', '.join(assignments)} WHERE {where}",
                params,
            )

            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT status, assigned_node_id FROM jobs WHERE job_id = ?",
                    (job_id,),
                ).fetchone()

                if row is None:
                    raise JobNotFoundError(job_id)

                raise ConcurrencyViolationError(
                    job_id,
                    expected_status="|".join(expected),
                    actual_status=row["status"],
                )

            row = conn.execute(
                "SELECT * FROM jobs WHERE job_id = ?",
                (job_id,),
            ).fetchone()

        return self._row_to_job(row)

    def list_queued_jobs(
        self,
        job_types: Optional[Iterable[str]] = None,
        limit: int = 100,
        exclude_ids: Iterable[str] = (),
    ) -> list[Job]:
        """
        Scan the admission queue in claim order.

        Order: priority DESC, queued_at ASC, position ASC
        """
        where = ["status = ?"]
        params: list[Any] = [JobStatus.QUEUED.value]

        if job_types is not None:
            types = list(job_types)
            if not types:
                return []
            where.append(f"job_type IN ({_placeholders(types)})")
            params.extend(types)

        excluded = list(exclude_ids)
        if excluded:
            where.append(f"job_id NOT IN ({_placeholders(excluded)})")
            params.extend(excluded)

        params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM jobs
                WHERE {' AND '.join(where)}
                ORDER BY priority DESC, queued_at ASC, position ASC
                LIMIT ?
                """,
                params,
            ).fetchall()

        return [self._row_to_job(row) for row in rows]

    def list_jobs_by_status(
        self,
        statuses: Iterable[JobStatus],
        limit: Optional[int] = None,
    ) -> list[Job]:
        """List jobs in any of ``statuses``, oldest start first."""
        values = _status_values(statuses)
        query = f"""
            SELECT * FROM jobs
            WHERE status IN ({_placeholders(values)})
            ORDER BY started_at ASC, created_at ASC
        """
        params: list[Any] = list(values)
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_job(row) for row in rows]

    def list_jobs_for_node(
        self,
        node_id: str,
        statuses: Iterable[JobStatus],
    ) -> list[Job]:
        """Jobs currently held by a node (derived node -> jobs index)."""
        values = _status_values(statuses)
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM jobs
                WHERE assigned_node_id = ? AND status IN ({_placeholders(values)})
                ORDER BY started_at ASC
                """,
                [node_id] + values,
            ).fetchall()

        return [self._row_to_job(row) for row in rows]

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
        """
        Filtered, paginated job listing (newest first).

        ``tags`` matches jobs carrying any of the given tags.

        Returns:
            (jobs on this page, total matching jobs)
        """
        where = []
        params: list[Any] = []

        if statuses:
            values = _status_values(statuses)
            where.append(f"status IN ({_placeholders(values)})")
            params.extend(values)
        if job_type is not None:
            where.append("job_type = ?")
            params.append(job_type)
        if submitted_by is not None:
            where.append("submitted_by = ?")
            params.append(submitted_by)
        if assigned_node_id is not None:
            where.append("assigned_node_id = ?")
            params.append(assigned_node_id)
        if tags:
            tag_values = list(tags)
            where.append(
                "EXISTS (SELECT 1 FROM json_each(jobs.tags) "
                f"WHERE json_each.value IN ({_placeholders(tag_values)}))"
            )
            params.extend(tag_values)

        where_sql = f"WHERE {' AND '.join(where)}" if where else ""

        with self._connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS count FROM jobs {where_sql}",
                params,
            ).fetchone()["count"]

            rows = conn.execute(
                f"""
                SELECT * FROM jobs {where_sql}
                ORDER BY created_at DESC, position DESC
                LIMIT ? OFFSET ?
                """,
                params + [limit, offset],
            ).fetchall()

        return [self._row_to_job(row) for row in rows], total

    def count_jobs_by_status(self, status: JobStatus) -> int:
        """Count jobs by status."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) as count FROM jobs WHERE status = ?",
                (status.value,),
            ).fetchone()

        return row["count"]

    def count_queued_in_priority_range(self, low: int, high: int) -> int:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS count FROM jobs
                WHERE status = ? AND priority BETWEEN ? AND ?
                """,
                (JobStatus.QUEUED.value, low, high),
            ).fetchone()

        return row["count"]

    def get_oldest_queued_at(self) -> Optional[str]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT MIN(queued_at) AS oldest FROM jobs WHERE status = ?",
                (JobStatus.QUEUED.value,),
            ).fetchone()

        return row["oldest"]

    def delete_terminal_jobs_before(self, cutoff: str) -> int:
        """
        Delete terminal jobs created before ``cutoff``.

        Retention is an operator concern; the scheduling core never calls this.
        """
        values = _status_values(TERMINAL_STATUSES)
        with self._transaction() as conn:
            cursor = conn.execute(
                f"""
                DELETE FROM jobs
                WHERE status IN ({_placeholders(values)}) AND created_at < ?
                """,
                values + [cutoff],
            )

        return cursor.rowcount

    # =========================================================================
    # Node Operations
    # =========================================================================

    def upsert_node(self, node: Node) -> Node:
        """
        Insert a node or refresh its registration fields.

        Statistics and created_at of an existing node are preserved.
        Stored time restrictions are kept when the new registration carries none.
        """
        values = [
            _encode(column, getattr(node, column), NODE_JSON_FIELDS)
            for column in NODE_COLUMNS
        ]
        updates = [f"{column} = excluded.{column}" for column in NODE_REGISTRATION_COLUMNS]
        updates.append(
            "time_restrictions = COALESCE(excluded.time_restrictions, nodes.time_restrictions)"
        )

        with self._transaction() as conn:
            conn.execute(
                f"""
                INSERT INTO nodes ({', '.join(NODE_COLUMNS)})
                VALUES ({_placeholders(values)})
                ON CONFLICT(node_id) DO UPDATE SET {', '.join(updates)}
                """,
                values,
            )
            row = conn.execute(
                "SELECT * FROM nodes WHERE node_id = ?",
                (node.node_id,),
            ).fetchone()

        return self._row_to_node(row)

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get a node by ID."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM nodes WHERE node_id = ?",
                (node_id,),
            ).fetchone()

        if row is None:
            return None

        return self._row_to_node(row)

    def _row_to_node(self, row: sqlite3.Row) -> Node:
        """Convert a database row to a Node entity."""
        return Node(
            node_id=row["node_id"],
            hostname=row["hostname"],
            ip_address=row["ip_address"],
            version=row["version"],
            status=NodeStatus(row["status"]),
            capabilities=_decode_json(row["capabilities"]) or [],
            resource_info=_decode_json(row["resource_info"]) or {},
            current_load=_decode_json(row["current_load"]),
            time_restrictions=_decode_json(row["time_restrictions"]),
            last_heartbeat_at=row["last_heartbeat_at"],
            last_job_completed_at=row["last_job_completed_at"],
            total_jobs_processed=row["total_jobs_processed"],
            failed_jobs=row["failed_jobs"],
            average_processing_time_seconds=row["average_processing_time_seconds"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def compare_and_set_node(
        self,
        node_id: str,
        changes: dict,
        expected_statuses: Optional[Iterable[NodeStatus]] = None,
        heartbeat_before: Optional[str] = None,
    ) -> Node:
        """
        Apply ``changes`` to a node, conditionally.

        Args:
            node_id: Node to update
            changes: Column -> new value
            expected_statuses: If given, the node must still be in one of these
            heartbeat_before: If given, the node's last heartbeat must still
                be older than this timestamp (a fresh heartbeat wins the race)

        Raises:
            NodeNotFoundError: If node doesn't exist
            ConcurrencyViolationError: If the condition no longer holds
        """
        assignments = [f"{column} = ?" for column in changes]
        params = [
            _encode(column, value, NODE_JSON_FIELDS)
            for column, value in changes.items()
        ]
        where = "node_id = ?"
        params.append(node_id)

        expected = None
        if expected_statuses is not None:
            expected = _status_values(expected_statuses)
            where += f" AND status IN ({_placeholders(expected)})"
            params.extend(expected)
        if heartbeat_before is not None:
            where += " AND (last_heartbeat_at IS NULL OR last_heartbeat_at < ?)"
            params.append(heartbeat_before)

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE nodes SET {', '.join(assignments)} WHERE {where}",
                params,
            )

            if cursor.rowcount == 0:
                row = conn.execute(
                    "SELECT status FROM nodes WHERE node_id = ?",
                    (node_id,),
                ).fetchone()

                if row is None:
                    raise NodeNotFoundError(node_id)

                raise ConcurrencyViolationError(
                    node_id,
                    expected_status="|".join(expected) if expected else "*",
                    actual_status=row["status"],
                )

            row = conn.execute(
                "SELECT * FROM nodes WHERE node_id = ?",
                (node_id,),
            ).fetchone()

        return self._row_to_node(row)

    def list_nodes(
        self,
        statuses: Optional[Iterable[NodeStatus]] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> Tuple[list[Node], int]:
        """
        List nodes, most recent heartbeat first.

        Returns:
            (nodes on this page, total matching nodes)
        """
        where_sql = ""
        params: list[Any] = []
        if statuses:
            values = _status_values(statuses)
            where_sql = f"WHERE status IN ({_placeholders(values)})"
            params.extend(values)

        query = f"""
            SELECT * FROM nodes {where_sql}
            ORDER BY last_heartbeat_at DESC, created_at ASC
        """
        page_params = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset])

        with self._connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS count FROM nodes {where_sql}",
                params,
            ).fetchone()["count"]
            rows = conn.execute(query, page_params).fetchall()

        return [self._row_to_node(row) for row in rows], total

    def list_stale_nodes(
        self,
        statuses: Iterable[NodeStatus],
        heartbeat_before: str,
    ) -> list[Node]:
        """Nodes in ``statuses`` whose last heartbeat is older than ``heartbeat_before``."""
        values = _status_values(statuses)
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM nodes
                WHERE status IN ({_placeholders(values)})
                  AND (last_heartbeat_at IS NULL OR last_heartbeat_at < ?)
                ORDER BY last_heartbeat_at ASC
                """,
                values + [heartbeat_before],
            ).fetchall()

        return [self._row_to_node(row) for row in rows]

    def record_node_job_outcome(
        self,
        node_id: str,
        success: bool,
        processing_time_seconds: float,
        completed_at: str,
    ) -> Optional[Node]:
        """
        Fold one finished job into a node's statistics, atomically.

        The running mean and the counters are computed from the stored
        values inside a single UPDATE.

        Returns:
            The updated Node, or None if the node no longer exists
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE nodes SET
                    average_processing_time_seconds =
                        (average_processing_time_seconds * total_jobs_processed + ?)
                        / (total_jobs_processed + 1),
                    total_jobs_processed = total_jobs_processed + 1,
                    failed_jobs = failed_jobs + ?,
                    last_job_completed_at = ?,
                    updated_at = ?
                WHERE node_id = ?
                """,
                (
                    processing_time_seconds,
                    0 if success else 1,
                    completed_at,
                    completed_at,
                    node_id,
                ),
            )

            if cursor.rowcount == 0:
                return None

            row = conn.execute(
                "SELECT * FROM nodes WHERE node_id = ?",
                (node_id,),
            ).fetchone()

        return self._row_to_node(row)
