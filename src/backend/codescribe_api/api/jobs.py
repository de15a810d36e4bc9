import logging

from fastapi import APIRouter, Depends, HTTPException

from codescribe_worker.dispatcher import Dispatcher
from codescribe_worker.errors import IntakeValidationError, JobNotFoundError
from codescribe_worker.models import Job, JobKind, RepositoryRef
from codescribe_worker.store import JobStore

from ..schemas import DocumentationRequest, JobStatusResponse, JobSubmitResponse, ReviewRequest
from .deps import get_dispatcher, get_store
from .intake import start_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


def _submit(
    store: JobStore,
    dispatcher: Dispatcher,
    kind: JobKind,
    repository: RepositoryRef,
    requested_files: list[str] | None,
    requested_by: str | None,
) -> JobSubmitResponse:
    try:
        job, created = start_job(store, dispatcher, kind, repository, requested_files, requested_by)
    except IntakeValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if not created:
        raise HTTPException(
            status_code=409,
            detail={
                "error": f"A {kind} job is already running for {repository}",
                "jobId": job.id,
                "status": job.status,
            },
        )
    return JobSubmitResponse(job_id=job.id, status=job.status, message=f"{kind.capitalize()} job started")


def to_status_response(job: Job) -> JobStatusResponse:
    plan = job.chunk_plan
    return JobStatusResponse(
        job_id=job.id,
        kind=job.kind,
        status=job.status,
        progress=job.progress,
        files_processed=job.files_processed,
        total_files=plan.total_files if plan else None,
        total_chunks=plan.total_chunks if plan else None,
        result=job.result or None,
        error=job.error,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
    )


@router.post("/documentation", response_model=JobSubmitResponse)
def submit_documentation(
    request: DocumentationRequest,
    store: JobStore = Depends(get_store),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Start documentation generation for a repository branch.

    Returns immediately with the job id; poll /api/status/{job_id}.
    """
    repository = RepositoryRef(owner=request.owner, repo=request.repo, branch=request.branch)
    return _submit(store, dispatcher, "documentation", repository, request.file_paths, request.requested_by)


@router.post("/reviews", response_model=JobSubmitResponse)
def submit_review(
    request: ReviewRequest,
    store: JobStore = Depends(get_store),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Start an AI review of a pull request."""
    repository = RepositoryRef(
        owner=request.owner,
        repo=request.repo,
        branch=request.branch,
        pull_number=request.pull_number,
    )
    return _submit(store, dispatcher, "review", repository, None, request.requested_by)


@router.get("/status/{job_id}", response_model=JobStatusResponse)
def get_job_status(job_id: str, store: JobStore = Depends(get_store)):
    """
    Get the last persisted state of a job.

    Progress, filesProcessed and the cumulative result are updated after every chunk.
    """
    try:
        job = store.get(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error checking job status: {str(e)}")
    return to_status_response(job)


@router.post("/jobs/{job_id}/cancel", response_model=JobStatusResponse)
def cancel_job(job_id: str, store: JobStore = Depends(get_store)):
    """Fail an active job; its next continuation stops without processing."""
    try:
        job = store.get(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if job.is_terminal:
        raise HTTPException(status_code=409, detail=f"Job {job_id} is already {job.status}")

    job = store.cancel(job_id)
    logger.info(f"[INTAKE] Job {job_id} cancelled")
    return to_status_response(job)
