"""Tests for the Celery continuation task, run eagerly in-process."""

import pytest

from codescribe_worker import tasks
from codescribe_worker.models import ContinuationRequest


@pytest.fixture()
def processor(make_processor):
    processor = make_processor(max_chunk_size=20, small_work_threshold=10)
    tasks.set_processor(processor)
    yield processor
    tasks.set_processor(None)


class TestProcessChunkTask:
    def test_registered_under_wire_name(self):
        assert tasks.process_chunk_task.name == "process_chunk_task"
        assert "process_chunk_task" in tasks.app.tasks

    def test_runs_continuation(self, processor, store, github, dispatcher, repository):
        github.files = [f"src/m{i}.py" for i in range(50)]
        job = store.create("documentation", repository)

        response = tasks.process_chunk_task.run(ContinuationRequest(job_id=job.id, trigger="start").to_wire())

        assert response["success"] is True
        assert response["filesProcessed"] == 17
        assert dispatcher.last.chunk_index == 1

    def test_malformed_payload(self, processor):
        response = tasks.process_chunk_task.run({"jobId": "", "trigger": "start"})
        assert response == {"success": False, "error": "Malformed continuation payload"}

    def test_unknown_job(self, processor):
        response = tasks.process_chunk_task.run({"jobId": "missing", "trigger": "start"})
        assert response["success"] is False
        assert "missing" in response["error"]
