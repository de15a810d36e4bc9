"""
Progress/result store: one persisted record per job.

Backends implement _load/_save and the active-job index; the transition
rules, chunk bookkeeping and result merging live in JobStore so every
backend enforces the same contract.
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Hashable, Mapping

import redis

from .errors import InvalidTransitionError, JobNotFoundError, PlanAlreadySetError
from .models import ChunkPlan, Job, JobKind, JobStatus, RepositoryRef, utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "codescribe:jobs"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"processing", "failed"},
    "processing": {"processing", "completed", "failed"},
    "completed": set(),
    "failed": set(),
}

# identity function per list key; entries with the same identity are overwritten in place
MergeRules = Mapping[str, Callable[[dict], Hashable]]


def merge_result(existing: dict, contribution: dict, keyed: MergeRules | None = None) -> dict:
    """
    Shallow key-wise merge of a chunk's contribution into the cumulative result.

    Keys listed in `keyed` hold lists of records that are upserted by
    identity: existing order is kept and new records are appended, so
    merging the same contribution twice yields the same result. Every
    other key is overwritten.
    """
    keyed = keyed or {}
    merged = copy.deepcopy(existing)
    for key, value in contribution.items():
        identity = keyed.get(key)
        if identity is None or not isinstance(value, list):
            merged[key] = copy.deepcopy(value)
            continue

        current = merged.get(key)
        records = list(current) if isinstance(current, list) else []
        positions = {identity(record): i for i, record in enumerate(records)}
        for record in value:
            ident = identity(record)
            if ident in positions:
                records[positions[ident]] = copy.deepcopy(record)
            else:
                positions[ident] = len(records)
                records.append(copy.deepcopy(record))
        merged[key] = records
    return merged


class JobStore(ABC):
    # ---------------- Backend contract ----------------

    @abstractmethod
    def _load(self, job_id: str) -> Job | None:
        ...

    @abstractmethod
    def _save(self, job: Job) -> None:
        ...

    @abstractmethod
    def _get_active_id(self, kind: JobKind, repository: RepositoryRef) -> str | None:
        ...

    @abstractmethod
    def _set_active_id(self, job: Job) -> None:
        ...

    @abstractmethod
    def _clear_active_id(self, job: Job) -> None:
        ...

    # ---------------- Reads ----------------

    def find(self, job_id: str) -> Job | None:
        if not job_id:
            return None
        return self._load(job_id)

    def get(self, job_id: str) -> Job:
        job = self.find(job_id)
        if job is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return job

    def find_active(self, kind: JobKind, repository: RepositoryRef) -> Job | None:
        """A pending/processing job of this kind for the same repository (and PR), if any."""
        job_id = self._get_active_id(kind, repository)
        if not job_id:
            return None
        job = self._load(job_id)
        if job is None or job.is_terminal:
            return None
        return job

    # ---------------- Writes ----------------

    def create(
        self,
        kind: JobKind,
        repository: RepositoryRef,
        requested_files: list[str] | None = None,
        requested_by: str | None = None,
    ) -> Job:
        job = Job(
            id=str(uuid.uuid4()),
            kind=kind,
            repository=repository,
            requested_files=requested_files or None,
            requested_by=requested_by,
        )
        self._save(job)
        self._set_active_id(job)
        logger.info(f"[STORE] Created {kind} job {job.id} for {repository}")
        return job

    def _transition(self, job: Job, status: JobStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[job.status]:
            raise InvalidTransitionError(f"Job {job.id}: cannot move from {job.status} to {status}")
        job.status = status
        job.updated_at = utcnow()
        if status in ("completed", "failed"):
            job.completed_at = job.updated_at
            self._clear_active_id(job)

    def mark_processing(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job.status == "processing":
            return job
        self._transition(job, "processing")
        self._save(job)
        return job

    def save_plan(self, job_id: str, plan: ChunkPlan) -> Job:
        """Persist the chunk plan once. Saving an identical plan again is a no-op."""
        job = self.get(job_id)
        if job.chunk_plan is not None:
            if job.chunk_plan == plan:
                return job
            raise PlanAlreadySetError(
                f"Job {job_id} already has a plan of {job.chunk_plan.total_chunks} chunks"
            )
        job.chunk_plan = plan
        job.updated_at = utcnow()
        self._save(job)
        logger.info(
            f"[STORE] Job {job_id}: plan {plan.total_chunks} chunks x {plan.chunk_size} files "
            f"({plan.total_files} total)"
        )
        return job

    def record_chunk(
        self,
        job_id: str,
        chunk_index: int,
        files_processed: int,
        progress: int,
        final: bool,
        contribution: dict,
        keyed: MergeRules | None = None,
    ) -> tuple[Job, bool]:
        """
        Persist one completed chunk.

        Returns the job and whether the chunk was written. A chunk index at
        or below the last recorded one is a duplicate delivery, and a
        terminal job (completed, or cancelled mid-chunk) takes no more
        chunks; both leave the record untouched.
        """
        job = self.get(job_id)
        if job.is_terminal:
            logger.info(f"[STORE] Job {job_id} is already {job.status}, chunk {chunk_index} not recorded")
            return job, False
        if job.last_chunk_index is not None and chunk_index <= job.last_chunk_index:
            logger.info(f"[STORE] Job {job_id}: chunk {chunk_index} already recorded, skipping")
            return job, False

        self._transition(job, "completed" if final else "processing")
        job.progress = 100 if final else max(job.progress, progress)
        job.files_processed = files_processed
        job.last_chunk_index = chunk_index
        job.result = merge_result(job.result, contribution, keyed)
        self._save(job)
        return job, True

    def fail(self, job_id: str, error: str) -> Job:
        """Mark the job failed. A job that is already terminal is returned unchanged."""
        job = self.get(job_id)
        if job.is_terminal:
            if job.status == "completed":
                logger.info(f"[STORE] Job {job_id} already completed, ignoring failure: {error}")
            return job
        self._transition(job, "failed")
        job.error = error
        self._save(job)
        logger.warning(f"[STORE] Job {job_id} failed: {error}")
        return job

    def cancel(self, job_id: str, reason: str = "Cancelled by user") -> Job:
        """Out-of-band cancellation; the next invocation sees a terminal job and stops."""
        return self.fail(job_id, reason)


class InMemoryJobStore(JobStore):
    """Process-local store for development and tests."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._active: dict[str, str] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _active_key(kind: JobKind, repository: RepositoryRef) -> str:
        return f"{kind}:{repository.full_name}:{repository.pull_number or ''}"

    def _load(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def _save(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)

    def _get_active_id(self, kind: JobKind, repository: RepositoryRef) -> str | None:
        with self._lock:
            return self._active.get(self._active_key(kind, repository))

    def _set_active_id(self, job: Job) -> None:
        with self._lock:
            self._active[self._active_key(job.kind, job.repository)] = job.id

    def _clear_active_id(self, job: Job) -> None:
        with self._lock:
            key = self._active_key(job.kind, job.repository)
            if self._active.get(key) == job.id:
                del self._active[key]


class RedisJobStore(JobStore):
    """Job records serialized as JSON under codescribe:jobs:<id>, with a TTL."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = 7 * 24 * 60 * 60):
        self._redis = client
        self._ttl = int(ttl_seconds)

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int) -> "RedisJobStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), ttl_seconds)

    @staticmethod
    def _key(job_id: str) -> str:
        return f"{KEY_PREFIX}:{job_id}"

    @staticmethod
    def _active_key(kind: JobKind, repository: RepositoryRef) -> str:
        suffix = f":{repository.pull_number}" if repository.pull_number is not None else ""
        return f"{KEY_PREFIX}:active:{kind}:{repository.full_name}{suffix}"

    def _load(self, job_id: str) -> Job | None:
        raw = self._redis.get(self._key(job_id))
        if raw is None:
            return None
        return Job.model_validate_json(raw)

    def _save(self, job: Job) -> None:
        self._redis.set(self._key(job.id), job.model_dump_json(), ex=self._ttl)

    def _get_active_id(self, kind: JobKind, repository: RepositoryRef) -> str | None:
        return self._redis.get(self._active_key(kind, repository))

    def _set_active_id(self, job: Job) -> None:
        self._redis.set(self._active_key(job.kind, job.repository), job.id, ex=self._ttl)

    def _clear_active_id(self, job: Job) -> None:
        key = self._active_key(job.kind, job.repository)
        if self._redis.get(key) == job.id:
            self._redis.delete(key)


def build_store(settings) -> JobStore:
    if settings.job_store == "memory":
        return InMemoryJobStore()
    return RedisJobStore.from_url(settings.redis_url, settings.job_ttl_seconds)
