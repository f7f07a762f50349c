"""
Node Registry & Liveness.

Tracks registered nodes, their capabilities, resources and liveness.
The registry is the only writer of node liveness fields (status,
last_heartbeat_at, current_load) and node job statistics.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Tuple

from .entities import (
    ASSIGNABLE_NODE_STATUSES,
    LIVE_NODE_STATUSES,
    Node,
    NodeRegistration,
    NodeStatus,
    TimeWindow,
    format_timestamp,
    generate_uuid,
    utc_now,
)
from .errors import (
    ConcurrencyViolationError,
    InvalidSpecError,
    NodeNotFoundError,
)
from .events import EventEmitter
from .persistence import PersistenceAdapter


logger = logging.getLogger(__name__)


DEFAULT_HEARTBEAT_TIMEOUT_SECONDS = 180


class NodeRegistry:
    """
    Registered nodes and their liveness.

    Failure detection is heartbeat-timeout based: a live node that stays
    silent for longer than the timeout is marked OFFLINE by
    ``sweep_liveness``. MAINTENANCE and ERROR are set administratively
    (via heartbeat) and are never overridden by the sweep.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter,
        events: EventEmitter,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.persistence = persistence
        self.events = events
        self.clock = clock

    # =========================================================================
    # Registration & Heartbeat
    # =========================================================================

    def register(self, info: NodeRegistration) -> Node:
        """
        Register a node, or refresh an existing registration.

        Upserts by the supplied node_id (a new one is generated if absent),
        replaces capabilities and resource info, and forces the node ONLINE
        with a fresh heartbeat.

        Raises:
            InvalidSpecError: If hostname, capabilities or time windows are invalid
        """
        if not info.hostname or not info.hostname.strip():
            raise InvalidSpecError("hostname must not be empty")
        if not info.capabilities:
            raise InvalidSpecError("capabilities must not be empty")
        if info.time_restrictions is not None:
            try:
                for window in info.time_restrictions:
                    TimeWindow.from_dict(window)
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidSpecError(f"Invalid time restrictions: {e}")

        now = format_timestamp(self.clock())
        node = Node(
            node_id=info.node_id or generate_uuid(),
            hostname=info.hostname,
            ip_address=info.ip_address,
            version=info.version,
            capabilities=sorted(set(info.capabilities)),
            resource_info=dict(info.resource_info or {}),
            time_restrictions=info.time_restrictions or None,
            status=NodeStatus.ONLINE,
            last_heartbeat_at=now,
            created_at=now,
            updated_at=now,
        )
        node = self.persistence.upsert_node(node)

        logger.info(
            f"Registered node {node.node_id} ({node.hostname}) "
            f"with capabilities {node.capabilities}"
        )
        self.events.node_updated(node)
        return node

    def heartbeat(
        self,
        node_id: str,
        status: NodeStatus,
        current_load: Optional[dict] = None,
    ) -> Node:
        """
        Record a liveness signal from a node.

        Raises:
            NodeNotFoundError: If the node was never registered
        """
        now = format_timestamp(self.clock())
        changes = {
            "status": status,
            "last_heartbeat_at": now,
            "updated_at": now,
        }
        if current_load is not None:
            changes["current_load"] = current_load

        node = self.persistence.compare_and_set_node(node_id, changes)

        logger.debug(f"Heartbeat from node {node_id} (status={status.value})")
        self.events.node_updated(node)
        return node

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, node_id: str) -> Node:
        node = self.persistence.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def list_nodes(
        self,
        statuses: Optional[Iterable[NodeStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[list[Node], int]:
        return self.persistence.list_nodes(statuses=statuses, limit=limit, offset=offset)

    def list_available(self, capabilities: Iterable[str] = ()) -> list[Node]:
        """
        Nodes that may receive work for all of ``capabilities``.

        Available means ONLINE or IDLE and declaring every requested capability.
        """
        required = set(capabilities)
        nodes, _ = self.persistence.list_nodes(statuses=ASSIGNABLE_NODE_STATUSES, limit=None)
        return [node for node in nodes if node.has_capabilities(required)]

    # =========================================================================
    # Liveness
    # =========================================================================

    def sweep_liveness(
        self,
        timeout_seconds: float = DEFAULT_HEARTBEAT_TIMEOUT_SECONDS,
        on_offline: Optional[Callable[[Node], None]] = None,
    ) -> int:
        """
        Mark silent live nodes OFFLINE.

        Any node in ONLINE/IDLE/BUSY whose last heartbeat is older than
        ``timeout_seconds`` flips to OFFLINE. Each flip is a conditional
        update that also re-checks the heartbeat, so a heartbeat landing
        mid-sweep keeps the node alive.

        Args:
            timeout_seconds: Heartbeat timeout
            on_offline: Called once per node that this sweep took OFFLINE

        Returns:
            Number of nodes marked OFFLINE
        """
        now = self.clock()
        cutoff = format_timestamp(now - timedelta(seconds=timeout_seconds))
        stale = self.persistence.list_stale_nodes(LIVE_NODE_STATUSES, cutoff)

        count = 0
        for candidate in stale:
            try:
                node = self.persistence.compare_and_set_node(
                    candidate.node_id,
                    {"status": NodeStatus.OFFLINE, "updated_at": format_timestamp(now)},
                    expected_statuses=LIVE_NODE_STATUSES,
                    heartbeat_before=cutoff,
                )
            except (ConcurrencyViolationError, NodeNotFoundError) as e:
                logger.debug(f"Skipping liveness flip for node {candidate.node_id}: {e}")
                continue

            count += 1
            logger.warning(
                f"Node {node.node_id} ({node.hostname}) marked OFFLINE: "
                f"last heartbeat {node.last_heartbeat_at}"
            )
            self.events.node_updated(node)

            if on_offline is not None:
                on_offline(node)

        if count:
            logger.warning(f"Marked {count} nodes as offline due to missed heartbeats")
        return count

    # =========================================================================
    # Statistics
    # =========================================================================

    def record_job_outcome(
        self,
        node_id: str,
        success: bool,
        processing_time_seconds: float,
    ) -> Optional[Node]:
        """
        Fold a finished job into the node's statistics.

        The node reference on a job is weak: if the node has since been
        removed the outcome is dropped with a warning.
        """
        node = self.persistence.record_node_job_outcome(
            node_id,
            success=success,
            processing_time_seconds=max(0.0, processing_time_seconds),
            completed_at=format_timestamp(self.clock()),
        )
        if node is None:
            logger.warning(f"Cannot record job outcome: node {node_id} no longer exists")
            return None

        self.events.node_updated(node)
        return node
