"""
Stage pipeline: a linear LangGraph workflow that processes one chunk.

Every work stage checks its inputs, makes exactly one delegated call and
stores the output under its own key. A failing stage records
state["error"] instead of raising; later stages see the error and pass
the state through untouched, so the terminal persist stage always runs
exactly once per chunk.
"""

import logging
from typing import Any, Callable, List, TypedDict

from langgraph.graph import END, StateGraph

from .errors import MissingInputError, StageError
from .models import RepositoryRef, compute_progress
from .store import JobStore, MergeRules

logger = logging.getLogger(__name__)


class ChunkPipelineState(TypedDict, total=False):
    """Fields shared by every workflow state."""
    workflow: str
    job_id: str
    repository: RepositoryRef
    chunk_index: int
    total_chunks: int
    files_processed: int
    total_files: int
    file_paths: List[str]
    previous_result: dict
    completed_stages: List[str]
    error: str
    failed_stage: str
    status: str
    progress: int
    recorded: bool


class Stage:
    """
    One named step of a workflow.

    Args:
        name: Stage name, used in error messages
        operation: The delegated call; receives the state, returns the stage output
        output_key: State key the output is stored under
        requires: State keys that must be present before the call
    """

    def __init__(self, name: str, operation: Callable[[dict], Any], output_key: str, requires: tuple[str, ...] = ()):
        self.name = name
        self.operation = operation
        self.output_key = output_key
        self.requires = requires

    def __call__(self, state: dict) -> dict:
        if state.get("error"):
            logger.debug(f"[PIPELINE] Skipping {self.name} for job {state.get('job_id')}: earlier stage failed")
            return {**state}

        try:
            missing = [key for key in self.requires if state.get(key) is None]
            if missing:
                raise MissingInputError(self.name, missing)
            output = self.operation(state)
        except StageError as e:
            return self._failed(state, e)
        except Exception as e:
            return self._failed(state, StageError(self.name, str(e)))

        logger.info(f"[PIPELINE] Job {state.get('job_id')}: stage {self.name} done")
        return {
            **state,
            self.output_key: output,
            "completed_stages": [*state.get("completed_stages", []), self.name],
        }

    def _failed(self, state: dict, error: StageError) -> dict:
        logger.error(f"[PIPELINE] Job {state.get('job_id')}: {error}")
        return {**state, "error": str(error), "failed_stage": self.name}


class PersistStage:
    """
    Terminal stage: writes the chunk outcome to the job store.

    Failed chunks mark the job failed. Successful chunks write progress
    (forced to 100 on the final chunk) and merge the chunk's contribution
    into the cumulative result. state["recorded"] is False when the store
    refused the chunk (duplicate delivery or a job that is already terminal).
    """

    name = "persist"

    def __init__(self, store: JobStore, contribution: Callable[[dict], dict], merge_rules: MergeRules | None = None):
        self.store = store
        self.contribution = contribution
        self.merge_rules = merge_rules or {}

    def __call__(self, state: dict) -> dict:
        job_id = state["job_id"]
        if state.get("error"):
            job = self.store.fail(job_id, state["error"])
            return {**state, "status": job.status, "progress": job.progress, "recorded": False}

        chunk_index = state["chunk_index"]
        final = chunk_index == state["total_chunks"] - 1
        progress = compute_progress(state["files_processed"], state["total_files"], final)
        job, recorded = self.store.record_chunk(
            job_id,
            chunk_index=chunk_index,
            files_processed=state["files_processed"],
            progress=progress,
            final=final,
            contribution=self.contribution(state),
            keyed=self.merge_rules,
        )
        if recorded:
            logger.info(
                f"[PIPELINE] Job {job_id}: chunk {chunk_index + 1}/{state['total_chunks']} persisted, "
                f"status={job.status} progress={job.progress}"
            )
        return {**state, "status": job.status, "progress": job.progress, "recorded": recorded}


class Workflow:
    """A compiled linear graph: stages in order, then the persist stage."""

    def __init__(self, name: str, state_type: type, stages: list[Stage], persist: PersistStage):
        self.name = name
        self.stages = stages
        self.persist = persist
        self.app = self._build(state_type)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages] + [self.persist.name]

    def _build(self, state_type: type):
        graph = StateGraph(state_type)
        for stage in self.stages:
            graph.add_node(stage.name, stage)
        graph.add_node(self.persist.name, self.persist)

        names = self.stage_names
        graph.set_entry_point(names[0])
        for current, following in zip(names, names[1:]):
            graph.add_edge(current, following)
        graph.add_edge(names[-1], END)
        return graph.compile()

    def run(self, state: dict) -> dict:
        return self.app.invoke({**state, "workflow": self.name})

    def persist_only(self, state: dict) -> dict:
        """Record a chunk that has no work items (e.g. an empty repository)."""
        return self.persist({**state, "workflow": self.name})
