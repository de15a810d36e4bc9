"""
Records shared by the worker, the store and the HTTP surface.
"""

import math
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

JobStatus = Literal["pending", "processing", "completed", "failed"]
JobKind = Literal["documentation", "review"]
Trigger = Literal["start", "process"]

TERMINAL_STATUSES = ("completed", "failed")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RepositoryRef(BaseModel):
    owner: str
    repo: str
    branch: str = "main"
    pull_number: int | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        if self.pull_number is not None:
            return f"{self.full_name}#{self.pull_number}"
        return f"{self.full_name}@{self.branch}"


class WorkItem(BaseModel):
    """A single file path produced by discovery."""

    model_config = ConfigDict(frozen=True)

    path: str
    priority: str | None = None


class ChunkPlan(BaseModel):
    """
    Deterministic split of N work items into chunks.

    Chunk i owns the half-open range [i * chunk_size, min((i + 1) * chunk_size, N)).
    """

    model_config = ConfigDict(frozen=True)

    total_chunks: int = Field(ge=1)
    chunk_size: int = Field(ge=0)
    total_files: int = Field(ge=0)

    def bounds(self, chunk_index: int) -> tuple[int, int]:
        if chunk_index < 0 or chunk_index >= self.total_chunks:
            raise IndexError(f"chunk {chunk_index} outside plan of {self.total_chunks}")
        start = min(chunk_index * self.chunk_size, self.total_files)
        end = min((chunk_index + 1) * self.chunk_size, self.total_files)
        return start, end

    def is_final(self, chunk_index: int) -> bool:
        return chunk_index == self.total_chunks - 1


def compute_progress(files_processed: int, total_files: int, final: bool) -> int:
    """floor(files_processed / total_files * 100) clamped to [0, 100]; 100 on the final chunk."""
    if final:
        return 100
    if total_files <= 0:
        return 0
    return max(0, min(100, math.floor(files_processed / total_files * 100)))


class ChunkState(BaseModel):
    """Resumption state carried from one invocation to the next."""

    chunk_index: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=1, ge=1)
    files_processed: int = Field(default=0, ge=0)
    total_files: int = Field(default=0, ge=0)
    remaining_work_items: list[str] = Field(default_factory=list)


class ContinuationRequest(BaseModel):
    """Wire body of the continuation webhook / queue message."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId", min_length=1)
    trigger: Trigger
    chunk_index: int = Field(default=0, ge=0, alias="chunkIndex")
    total_chunks: int | None = Field(default=None, ge=1, alias="totalChunks")
    files_processed: int = Field(default=0, ge=0, alias="filesProcessed")
    total_files: int | None = Field(default=None, ge=0, alias="totalFiles")
    file_paths: list[str] = Field(default_factory=list, alias="filePaths")

    @model_validator(mode="after")
    def _process_carries_paths(self) -> "ContinuationRequest":
        # an empty list is valid (last chunk of an empty plan), a missing one is not
        if self.trigger == "process" and "file_paths" not in self.model_fields_set:
            raise ValueError("filePaths is required for a process continuation")
        return self

    @classmethod
    def for_chunk(cls, job_id: str, state: ChunkState) -> "ContinuationRequest":
        return cls(
            job_id=job_id,
            trigger="process",
            chunk_index=state.chunk_index,
            total_chunks=state.total_chunks,
            files_processed=state.files_processed,
            total_files=state.total_files,
            file_paths=list(state.remaining_work_items),
        )

    def chunk_state(self) -> ChunkState:
        return ChunkState(
            chunk_index=self.chunk_index,
            total_chunks=self.total_chunks or 1,
            files_processed=self.files_processed,
            total_files=self.total_files or 0,
            remaining_work_items=list(self.file_paths),
        )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class Job(BaseModel):
    id: str
    kind: JobKind
    repository: RepositoryRef
    status: JobStatus = "pending"
    progress: int = Field(default=0, ge=0, le=100)
    files_processed: int = 0
    last_chunk_index: int | None = None
    chunk_plan: ChunkPlan | None = None
    result: dict = Field(default_factory=dict)
    error: str | None = None
    requested_files: list[str] | None = None
    requested_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
