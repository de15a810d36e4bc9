"""Tests for the stage pipeline: ordering, error isolation and persistence."""

import pytest

from codescribe_worker.documentation import build_documentation_workflow
from codescribe_worker.errors import MissingInputError
from codescribe_worker.models import ChunkPlan
from codescribe_worker.parsing import RegexStructureParser
from codescribe_worker.pipeline import PersistStage, Stage
from codescribe_worker.review import build_review_workflow

from conftest import FakeLLM


@pytest.fixture()
def doc_job(store, repository):
    job = store.mark_processing(store.create("documentation", repository).id)
    store.save_plan(job.id, ChunkPlan(total_chunks=2, chunk_size=2, total_files=4))
    return job


def chunk_state(job, chunk_index=0, paths=("src/app.py", "src/util.py"), files_processed=2):
    return {
        "job_id": job.id,
        "repository": job.repository,
        "chunk_index": chunk_index,
        "total_chunks": 2,
        "files_processed": files_processed,
        "total_files": 4,
        "file_paths": list(paths),
        "previous_result": {},
    }


# ---------------------------------------------------------------------------
# Single stage
# ---------------------------------------------------------------------------


class TestStage:
    def test_stores_output_under_its_key(self):
        stage = Stage("double", lambda s: s["n"] * 2, "doubled", requires=("n",))
        out = stage({"n": 3})
        assert out["doubled"] == 6
        assert out["completed_stages"] == ["double"]

    def test_missing_input_recorded_not_raised(self):
        stage = Stage("analyze", lambda s: None, "analysis", requires=("code_content",))
        out = stage({"job_id": "j"})
        assert "analyze" in out["error"]
        assert "code_content" in out["error"]
        assert out["failed_stage"] == "analyze"

    def test_missing_input_error_is_stage_error(self):
        err = MissingInputError("generate", ["code_analysis"])
        assert err.stage == "generate"
        assert "missing required input: code_analysis" in str(err)

    def test_exception_captured_with_stage_name(self):
        def explode(state):
            raise TimeoutError("LLM timed out")

        out = Stage("generate", explode, "documentation")({"job_id": "j"})
        assert out["error"] == "Failed during stage generate: LLM timed out"

    def test_skips_after_earlier_error(self):
        calls = []
        stage = Stage("later", lambda s: calls.append(1), "later_output")
        out = stage({"error": "Failed during stage analyze: boom"})
        assert calls == []
        assert "later_output" not in out


# ---------------------------------------------------------------------------
# Documentation workflow
# ---------------------------------------------------------------------------


class TestDocumentationWorkflow:
    def test_runs_stages_in_order(self, store, llm, github, doc_job):
        workflow = build_documentation_workflow(llm, github, RegexStructureParser(), store)
        assert workflow.stage_names == [
            "fetch_code", "parse", "analyze", "generate", "assess_quality", "detect_gaps", "diagram", "persist",
        ]

        final = workflow.run(chunk_state(doc_job))

        assert llm.tasks == ["doc_analyze", "doc_generate", "doc_quality", "doc_gaps", "doc_diagram"]
        assert final["status"] == "processing"
        assert final["progress"] == 50
        job = store.get(doc_job.id)
        assert job.files_processed == 2
        assert [f["path"] for f in job.result["files"]] == ["src/app.py", "src/util.py"]
        assert job.result["diagrams"][0]["title"] == "Request flow"

    def test_analyze_failure_stops_later_stages(self, store, github, doc_job):
        llm = FakeLLM({"doc_analyze": RuntimeError("model overloaded")})
        workflow = build_documentation_workflow(llm, github, RegexStructureParser(), store)

        final = workflow.run(chunk_state(doc_job))

        assert llm.tasks == ["doc_analyze"]
        assert final["failed_stage"] == "analyze"
        job = store.get(doc_job.id)
        assert job.status == "failed"
        assert "analyze" in job.error
        assert job.last_chunk_index is None

    def test_malformed_reply_fails_stage(self, store, github, doc_job):
        llm = FakeLLM({"doc_generate": ValueError("LLM reply is not valid JSON")})
        workflow = build_documentation_workflow(llm, github, RegexStructureParser(), store)
        final = workflow.run(chunk_state(doc_job))
        assert final["failed_stage"] == "generate"
        assert store.get(doc_job.id).status == "failed"

    def test_rerunning_persist_is_idempotent(self, store, llm, github, doc_job):
        workflow = build_documentation_workflow(llm, github, RegexStructureParser(), store)
        final = workflow.run(chunk_state(doc_job))
        first = store.get(doc_job.id)
        assert final["recorded"] is True

        again = workflow.persist(final)
        assert again["recorded"] is False
        second = store.get(doc_job.id)

        assert second.files_processed == first.files_processed
        assert second.progress == first.progress
        assert second.result == first.result

    def test_persist_only_records_empty_chunk(self, store, doc_job):
        persist = PersistStage(store, lambda s: {"files": []})
        out = persist({**chunk_state(doc_job, chunk_index=1, paths=(), files_processed=4)})
        assert out["status"] == "completed"
        assert out["progress"] == 100


# ---------------------------------------------------------------------------
# Review workflow
# ---------------------------------------------------------------------------


class TestReviewWorkflow:
    def test_summary_sees_earlier_issues(self, store, llm, github, pr_repository):
        job = store.mark_processing(store.create("review", pr_repository).id)
        store.save_plan(job.id, ChunkPlan(total_chunks=1, chunk_size=1, total_files=1))
        workflow = build_review_workflow(llm, github, store)

        state = {
            **chunk_state(job, paths=("src/app.py",), files_processed=1),
            "total_chunks": 1,
            "total_files": 1,
            "previous_result": {"issues": [{"file": "old.py", "description": "Earlier issue"}]},
        }
        final = workflow.run(state)

        assert final["status"] == "completed"
        summarize_vars = dict(llm.calls)["review_summarize"]
        assert "Earlier issue" in summarize_vars["previous_issues"]
        result = store.get(job.id).result
        assert result["summary"]["overview"] == "Mostly fine"
        assert result["issues"][0]["severity"] == "high"
        assert result["pullRequest"]["number"] == 42
