"""Job intake shared by the REST routes and the GitHub webhook."""

import logging
import re

from codescribe_worker.dispatcher import Dispatcher
from codescribe_worker.errors import IntakeValidationError
from codescribe_worker.models import ContinuationRequest, Job, JobKind, RepositoryRef
from codescribe_worker.store import JobStore

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
BRANCH_PATTERN = re.compile(r"^[A-Za-z0-9_./-]+$")


def validate_repository(repository: RepositoryRef) -> None:
    if not NAME_PATTERN.match(repository.owner):
        raise IntakeValidationError(f"Invalid repository owner: {repository.owner!r}")
    if not NAME_PATTERN.match(repository.repo) or repository.repo in (".", ".."):
        raise IntakeValidationError(f"Invalid repository name: {repository.repo!r}")
    if not BRANCH_PATTERN.match(repository.branch) or ".." in repository.branch:
        raise IntakeValidationError(f"Invalid branch: {repository.branch!r}")


def validate_file_paths(paths: list[str] | None) -> list[str] | None:
    if paths is None:
        return None
    cleaned = []
    for path in paths:
        path = path.strip()
        if not path or path.startswith("/") or ".." in path.split("/"):
            raise IntakeValidationError(f"Invalid file path: {path!r}")
        cleaned.append(path)
    return cleaned


def start_job(
    store: JobStore,
    dispatcher: Dispatcher,
    kind: JobKind,
    repository: RepositoryRef,
    requested_files: list[str] | None = None,
    requested_by: str | None = None,
) -> tuple[Job, bool]:
    """
    Create a job and hand its first continuation to the dispatcher.

    Returns:
        (job, created). When a job of the same kind is already active for
        the repository, that job is returned with created=False.

    Raises:
        IntakeValidationError: Repository or file paths are malformed
    """
    validate_repository(repository)
    requested_files = validate_file_paths(requested_files)

    active = store.find_active(kind, repository)
    if active is not None:
        logger.info(f"[INTAKE] {kind} job {active.id} already active for {repository}")
        return active, False

    job = store.create(kind, repository, requested_files=requested_files, requested_by=requested_by)
    job = store.mark_processing(job.id)

    if not dispatcher.dispatch(ContinuationRequest(job_id=job.id, trigger="start")):
        job = store.fail(job.id, "Failed to start processing")
    return job, True
