"""
Assignment Engine Tests.

- Claim order: priority DESC, then FIFO within a tier
- Capability filtering and capacity bounds
- Node status and availability windows gate claiming
- Concurrent claimers never receive the same job
"""

import threading

import pytest

from src.scheduler import (
    EventType,
    InvalidSpecError,
    JobStatus,
    NodeNotFoundError,
    NodeStatus,
    NodeUnavailableError,
)

from .conftest import assert_job_consistent


class TestClaimOrder:

    def test_fifo_within_priority_tier(self, submit_job, register_node, assignment, mock_clock):
        first = submit_job(priority=5)
        mock_clock.tick(1)
        second = submit_job(priority=5)
        mock_clock.tick(1)
        third = submit_job(priority=5)
        node = register_node()

        claimed = assignment.claim(node.node_id, capacity=3)

        assert [j.job_id for j in claimed] == [first.job_id, second.job_id, third.job_id]

    def test_fifo_for_jobs_submitted_at_same_instant(self, submit_job, register_node, assignment):
        jobs = [submit_job(priority=5) for _ in range(4)]
        node = register_node()

        claimed = assignment.claim(node.node_id, capacity=4)

        assert [j.job_id for j in claimed] == [j.job_id for j in jobs]

    def test_higher_priority_claimed_first(self, submit_job, register_node, assignment, mock_clock):
        low = submit_job(priority=2)
        mock_clock.tick(1)
        high = submit_job(priority=9)
        mock_clock.tick(1)
        medium = submit_job(priority=5)
        node = register_node()

        claimed = assignment.claim(node.node_id, capacity=1)
        assert [j.job_id for j in claimed] == [high.job_id]

        claimed = assignment.claim(node.node_id, capacity=5)
        assert [j.job_id for j in claimed] == [medium.job_id, low.job_id]

    def test_claim_emits_job_updated(self, submit_job, register_node, assignment, event_sink):
        job = submit_job()
        node = register_node()
        event_sink.clear()

        assignment.claim(node.node_id, capacity=1)

        updated = event_sink.of_type(EventType.JOB_UPDATED)
        assert [e.entity_id for e in updated] == [job.job_id]
        assert updated[0].payload["status"] == JobStatus.ASSIGNED.value


class TestCapacityAndCapabilities:

    def test_returns_fewer_than_capacity_when_queue_short(self, submit_job, register_node, assignment):
        submit_job()
        node = register_node()

        claimed = assignment.claim(node.node_id, capacity=5)

        assert len(claimed) == 1
        assert_job_consistent(claimed[0])

    def test_empty_queue_returns_nothing(self, register_node, assignment):
        node = register_node()

        assert assignment.claim(node.node_id, capacity=3) == []

    @pytest.mark.parametrize("capacity", [0, -1, 1.5, True])
    def test_invalid_capacity(self, register_node, assignment, capacity):
        node = register_node()

        with pytest.raises(InvalidSpecError):
            assignment.claim(node.node_id, capacity=capacity)

    def test_only_matching_job_types_are_claimed(self, submit_job, register_node, assignment, queue_manager):
        render = submit_job(job_type="render", priority=10)
        ocr = submit_job(job_type="ocr", priority=1)
        node = register_node(capabilities=["ocr"])

        claimed = assignment.claim(node.node_id, capacity=5)

        assert [j.job_id for j in claimed] == [ocr.job_id]
        assert [j.job_id for j in queue_manager.list_queued()] == [render.job_id]

    def test_requested_capabilities_narrow_declared_set(self, submit_job, register_node, assignment):
        submit_job(job_type="ocr", priority=10)
        pdf = submit_job(job_type="pdf_parse", priority=1)
        node = register_node(capabilities=["ocr", "pdf_parse"])

        claimed = assignment.claim(node.node_id, capacity=5, capabilities=["pdf_parse"])

        assert [j.job_id for j in claimed] == [pdf.job_id]

    def test_undeclared_capabilities_are_ignored(self, submit_job, register_node, assignment):
        submit_job(job_type="render")
        node = register_node(capabilities=["ocr"])

        assert assignment.claim(node.node_id, capacity=5, capabilities=["render"]) == []

    def test_mismatched_job_does_not_block_later_jobs(self, submit_job, register_node, assignment):
        for _ in range(3):
            submit_job(job_type="render", priority=9)
        ocr = submit_job(job_type="ocr", priority=1)
        node = register_node(capabilities=["ocr"])

        claimed = assignment.claim(node.node_id, capacity=1)

        assert [j.job_id for j in claimed] == [ocr.job_id]


class TestNodeGating:

    def test_unknown_node(self, submit_job, assignment):
        submit_job()

        with pytest.raises(NodeNotFoundError):
            assignment.claim("ghost-node", capacity=1)

    @pytest.mark.parametrize(
        "status",
        [NodeStatus.OFFLINE, NodeStatus.BUSY, NodeStatus.MAINTENANCE, NodeStatus.ERROR],
    )
    def test_non_assignable_node_is_rejected(
        self, submit_job, register_node, node_registry, assignment, queue_manager, status
    ):
        submit_job()
        node = register_node()
        node_registry.heartbeat(node.node_id, status)

        with pytest.raises(NodeUnavailableError):
            assignment.claim(node.node_id, capacity=1)

        assert queue_manager.count_queued() == 1

    def test_idle_node_may_claim(self, submit_job, register_node, node_registry, assignment):
        submit_job()
        node = register_node()
        node_registry.heartbeat(node.node_id, NodeStatus.IDLE)

        assert len(assignment.claim(node.node_id, capacity=1)) == 1

    def test_outside_availability_window(self, submit_job, register_node, assignment):
        submit_job()
        # Clock is Monday 12:00
        node = register_node(
            time_restrictions=[{"day_of_week": "Weekends", "start_time": "00:00", "end_time": "23:59"}]
        )

        with pytest.raises(NodeUnavailableError):
            assignment.claim(node.node_id, capacity=1)

    def test_inside_availability_window(self, submit_job, register_node, assignment):
        submit_job()
        node = register_node(
            time_restrictions=[{"day_of_week": "Monday", "start_time": "09:00", "end_time": "17:00"}]
        )

        assert len(assignment.claim(node.node_id, capacity=1)) == 1


class TestConcurrentClaims:

    def test_concurrent_claimers_never_share_a_job(self, submit_job, register_node, assignment, persistence):
        jobs = [submit_job() for _ in range(20)]
        nodes = [register_node(hostname=f"worker-{i}") for i in range(4)]

        results: dict[str, list] = {}
        errors: list = []
        barrier = threading.Barrier(len(nodes))

        def claimer(node_id: str):
            try:
                barrier.wait()
                claimed = []
                while True:
                    batch = assignment.claim(node_id, capacity=3)
                    if not batch:
                        break
                    claimed.extend(batch)
                results[node_id] = claimed
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=claimer, args=(n.node_id,)) for n in nodes]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        claimed_ids = [j.job_id for batch in results.values() for j in batch]
        assert len(claimed_ids) == len(set(claimed_ids))
        assert sorted(claimed_ids) == sorted(j.job_id for j in jobs)

        for node_id, batch in results.items():
            for job in batch:
                stored = persistence.get_job(job.job_id)
                assert stored.status == JobStatus.ASSIGNED
                assert stored.assigned_node_id == node_id
