"""
Queue Manager Tests.
"""

from src.scheduler import JobStatus


class TestQueueStats:

    def test_empty_queue(self, queue_manager):
        stats = queue_manager.get_stats()

        assert stats == {
            "queue_size": 0,
            "max_queue_size": 1000,
            "high_priority": 0,
            "medium_priority": 0,
            "low_priority": 0,
            "oldest_job": None,
        }

    def test_priority_bands_and_oldest(self, submit_job, queue_manager, mock_clock):
        oldest = submit_job(priority=2)
        mock_clock.tick(10)
        for priority in (4, 7, 8, 10):
            submit_job(priority=priority)

        stats = queue_manager.get_stats()

        assert stats["queue_size"] == 5
        assert stats["high_priority"] == 2
        assert stats["medium_priority"] == 2
        assert stats["low_priority"] == 1
        assert stats["oldest_job"] == oldest.queued_at

    def test_only_queued_jobs_count(self, submit_job, lifecycle, queue_manager):
        job = submit_job()
        submit_job()
        lifecycle.cancel(job.job_id, requester="tester")

        assert queue_manager.count_queued() == 1
        assert [j.status for j in queue_manager.list_queued()] == [JobStatus.QUEUED]


class TestQueueAccess:

    def test_list_queued_respects_job_types_and_limit(self, submit_job, queue_manager):
        render = submit_job(job_type="render", priority=10)
        ocr = submit_job(job_type="ocr", priority=1)

        assert [j.job_id for j in queue_manager.list_queued(job_types=["ocr"])] == [ocr.job_id]
        assert queue_manager.list_queued(job_types=["pdf_parse"]) == []
        assert [j.job_id for j in queue_manager.list_queued(limit=1)] == [render.job_id]

    def test_is_full(self, submit_job, persistence):
        from src.scheduler import QueueManager

        small = QueueManager(persistence, max_queue_size=1)
        assert not small.is_full()

        submit_job()

        assert small.is_full()
