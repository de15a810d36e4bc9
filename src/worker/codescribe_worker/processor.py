"""
Chunk processor: everything one invocation does for one continuation.

Every invocation is cold. Its working set is rebuilt from the incoming
continuation plus a single read of the job record:

    start   -> discovery + chunk plan (once per job) -> chunk 0
    process -> resume at chunk_index with the carried paths/counters

Before a chunk starts, the time-budget guard may defer it; after it is
persisted, the next chunk is dispatched if one remains.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from .comments import CommentPoster, post_review_comment
from .discovery import Discovery
from .dispatcher import Dispatcher
from .errors import DiscoveryError
from .guard import TimeBudgetGuard
from .models import ChunkPlan, ChunkState, ContinuationRequest, Job
from .pipeline import Workflow
from .scheduler import ChunkScheduler
from .store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    outcome: str
    success: bool
    message: str
    progress: int
    files_processed: int | None = None
    total_files: int | None = None
    status: str | None = None
    dispatched: bool = False

    def to_response(self) -> dict:
        body = {"success": self.success, "message": self.message, "progress": self.progress}
        if self.files_processed is not None:
            body["filesProcessed"] = self.files_processed
        if self.total_files is not None:
            body["totalFiles"] = self.total_files
        return body


class ChunkProcessor:
    def __init__(
        self,
        store: JobStore,
        scheduler: ChunkScheduler,
        discoveries: dict[str, Discovery],
        workflows: dict[str, Workflow],
        dispatcher: Dispatcher,
        guard_factory: Callable[[], TimeBudgetGuard],
        comment_poster: CommentPoster | None = None,
        review_url_template: str | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.discoveries = discoveries
        self.workflows = workflows
        self.dispatcher = dispatcher
        self.guard_factory = guard_factory
        self.comment_poster = comment_poster
        self.review_url_template = review_url_template

    def handle(self, request: ContinuationRequest, guard: TimeBudgetGuard | None = None) -> ProcessResult:
        """
        Process one continuation.

        Raises:
            JobNotFoundError: No job record exists for request.job_id
        """
        guard = guard or self.guard_factory()
        job = self.store.get(request.job_id)

        if job.is_terminal:
            logger.info(f"[PROCESSOR] Job {job.id} is already {job.status}, nothing to do")
            return ProcessResult(
                "skipped", True, f"Job already {job.status}", job.progress,
                job.files_processed, self._total_files(job), job.status,
            )

        if request.trigger == "start":
            return self._start(job, guard)
        return self._resume(job, request, guard)

    # ---------------- Triggers ----------------

    def _start(self, job: Job, guard: TimeBudgetGuard) -> ProcessResult:
        if job.chunk_plan is not None:
            logger.info(f"[PROCESSOR] Job {job.id} already started, ignoring duplicate start")
            return ProcessResult(
                "duplicate", True, "Job already started", job.progress,
                job.files_processed, job.chunk_plan.total_files, job.status,
            )

        self.store.mark_processing(job.id)
        logger.info(f"[PROCESSOR] Starting {job.kind} job {job.id} for {job.repository}")

        try:
            items = self.discoveries[job.kind].discover(job.repository, job.requested_files)
        except DiscoveryError as e:
            failed = self.store.fail(job.id, str(e))
            return ProcessResult("failed", False, str(e), failed.progress, status=failed.status)

        plan = self.scheduler.plan(len(items))
        job = self.store.save_plan(job.id, plan)

        chunk_state = ChunkState(
            chunk_index=0,
            total_chunks=plan.total_chunks,
            files_processed=0,
            total_files=plan.total_files,
            remaining_work_items=[item.path for item in items],
        )
        return self._run_chunk(job, plan, chunk_state, guard)

    def _resume(self, job: Job, request: ContinuationRequest, guard: TimeBudgetGuard) -> ProcessResult:
        plan = job.chunk_plan
        if plan is None:
            logger.warning(f"[PROCESSOR] Job {job.id}: process trigger before a plan was persisted")
            return ProcessResult("rejected", False, "Job has no chunk plan yet", job.progress, status=job.status)

        if request.total_chunks is not None and request.total_chunks != plan.total_chunks:
            logger.warning(
                f"[PROCESSOR] Job {job.id}: continuation says {request.total_chunks} chunks, "
                f"persisted plan has {plan.total_chunks}; using the persisted plan"
            )

        if request.chunk_index >= plan.total_chunks:
            return ProcessResult(
                "rejected", False,
                f"Chunk {request.chunk_index} outside plan of {plan.total_chunks}",
                job.progress, job.files_processed, plan.total_files, job.status,
            )

        if job.last_chunk_index is not None and request.chunk_index <= job.last_chunk_index:
            logger.info(f"[PROCESSOR] Job {job.id}: chunk {request.chunk_index} already processed")
            return ProcessResult(
                "duplicate", True, f"Chunk {request.chunk_index + 1}/{plan.total_chunks} already processed",
                job.progress, job.files_processed, plan.total_files, job.status,
            )

        expected = job.last_chunk_index + 1 if job.last_chunk_index is not None else 0
        if request.chunk_index != expected:
            logger.warning(f"[PROCESSOR] Job {job.id}: got chunk {request.chunk_index}, expected {expected}")
            return ProcessResult(
                "rejected", False, f"Chunk {request.chunk_index} out of order, expected chunk {expected}",
                job.progress, job.files_processed, plan.total_files, job.status,
            )

        start, _ = plan.bounds(request.chunk_index)
        if len(request.file_paths) != plan.total_files - start:
            logger.warning(
                f"[PROCESSOR] Job {job.id}: chunk {request.chunk_index} carries {len(request.file_paths)} "
                f"remaining paths, plan leaves {plan.total_files - start}"
            )
            return ProcessResult(
                "rejected", False,
                f"Chunk {request.chunk_index} carries {len(request.file_paths)} paths, "
                f"expected {plan.total_files - start}",
                job.progress, job.files_processed, plan.total_files, job.status,
            )

        chunk_state = request.chunk_state().model_copy(
            update={"total_chunks": plan.total_chunks, "total_files": plan.total_files}
        )
        return self._run_chunk(job, plan, chunk_state, guard)

    # ---------------- Chunk ----------------

    def _run_chunk(self, job: Job, plan: ChunkPlan, chunk_state: ChunkState, guard: TimeBudgetGuard) -> ProcessResult:
        index = chunk_state.chunk_index
        label = f"{job.kind} chunk {index + 1}/{plan.total_chunks}"

        if guard.should_defer(index, plan.total_chunks):
            dispatched = self.dispatcher.dispatch(ContinuationRequest.for_chunk(job.id, chunk_state))
            return ProcessResult(
                "rescheduled", True, f"Rescheduled {label}", job.progress,
                chunk_state.files_processed, plan.total_files, job.status, dispatched,
            )

        start, end = plan.bounds(index)
        remaining = chunk_state.remaining_work_items
        chunk_paths = remaining[: end - start]

        pipeline_state = {
            "job_id": job.id,
            "repository": job.repository,
            "chunk_index": index,
            "total_chunks": plan.total_chunks,
            "files_processed": end,
            "total_files": plan.total_files,
            "file_paths": chunk_paths,
            "previous_result": job.result,
        }
        workflow = self.workflows[job.kind]
        logger.info(f"[PROCESSOR] Job {job.id}: running {label} ({len(chunk_paths)} files)")
        if chunk_paths:
            final_state = workflow.run(pipeline_state)
        else:
            final_state = workflow.persist_only(pipeline_state)

        status = final_state["status"]
        progress = final_state["progress"]
        if final_state.get("error"):
            return ProcessResult(
                "failed", False, final_state.get("error", "Chunk failed"), progress,
                chunk_state.files_processed, plan.total_files, status,
            )

        if not final_state.get("recorded"):
            # the job was cancelled, or another copy of this chunk got there first
            current = self.store.get(job.id)
            outcome = "skipped" if current.is_terminal else "duplicate"
            logger.info(f"[PROCESSOR] Job {job.id}: {label} not recorded, job is {current.status}")
            return ProcessResult(
                outcome, True, f"Chunk {index + 1}/{plan.total_chunks} not recorded, job {current.status}",
                current.progress, current.files_processed, plan.total_files, current.status,
            )

        dispatched = False
        if status == "completed":
            self._on_completed(job.id)
        elif not plan.is_final(index):
            next_state = ChunkState(
                chunk_index=index + 1,
                total_chunks=plan.total_chunks,
                files_processed=end,
                total_files=plan.total_files,
                remaining_work_items=remaining[end - start:],
            )
            dispatched = self.dispatcher.dispatch(ContinuationRequest.for_chunk(job.id, next_state))
            if not dispatched:
                logger.error(f"[PROCESSOR] Job {job.id}: next chunk not dispatched, job left processing")

        return ProcessResult(
            "processed", True, f"Processed {label}", progress, end, plan.total_files, status, dispatched,
        )

    def _on_completed(self, job_id: str) -> None:
        job = self.store.get(job_id)
        logger.info(f"[PROCESSOR] Job {job_id} completed")
        if job.kind == "review" and self.comment_poster is not None:
            review_url = self.review_url_template.format(job_id=job_id) if self.review_url_template else None
            post_review_comment(self.comment_poster, job, review_url)

    @staticmethod
    def _total_files(job: Job) -> int | None:
        return job.chunk_plan.total_files if job.chunk_plan else None


def build_processor(
    settings,
    store: JobStore | None = None,
    dispatcher: Dispatcher | None = None,
    llm=None,
    github=None,
) -> ChunkProcessor:
    """Wire a processor from settings; any collaborator can be passed in instead."""
    from .documentation import build_documentation_workflow
    from .dispatcher import build_dispatcher
    from .github import GitCloneLister, GitHubClient
    from .llm import OpenAICompletionClient
    from .parsing import RegexStructureParser
    from .review import build_review_workflow
    from .store import build_store

    store = store or build_store(settings)
    dispatcher = dispatcher or build_dispatcher(settings)
    llm = llm or OpenAICompletionClient.from_settings(settings)
    github = github or GitHubClient.from_settings(settings)

    # unauthenticated listing goes through a shallow clone
    doc_lister = github if settings.github_token else GitCloneLister()

    return ChunkProcessor(
        store=store,
        scheduler=ChunkScheduler.from_settings(settings),
        discoveries={
            "documentation": Discovery(doc_lister, ceiling=settings.discovery_ceiling),
            "review": Discovery(github, ceiling=settings.discovery_ceiling, source_only=False),
        },
        workflows={
            "documentation": build_documentation_workflow(llm, github, RegexStructureParser(), store),
            "review": build_review_workflow(llm, github, store),
        },
        dispatcher=dispatcher,
        guard_factory=lambda: TimeBudgetGuard.from_settings(settings),
        comment_poster=github,
        review_url_template=settings.review_url_template or None,
    )
