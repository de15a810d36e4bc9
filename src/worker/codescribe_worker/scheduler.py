import math

from .models import ChunkPlan


class ChunkScheduler:
    """
    Computes the chunk plan for a job from its total work-item count.

    Small jobs run in a single chunk. Larger jobs are split into
    ceil(N / max_chunk_size) chunks, capped at chunk_cap; once capped,
    every chunk simply grows. The plan is computed once per job and
    persisted, never recomputed.
    """

    def __init__(self, max_chunk_size: int = 200, small_work_threshold: int = 30, chunk_cap: int = 10):
        for name, value in (
            ("max_chunk_size", max_chunk_size),
            ("small_work_threshold", small_work_threshold),
            ("chunk_cap", chunk_cap),
        ):
            if value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value}")
        self.max_chunk_size = max_chunk_size
        self.small_work_threshold = small_work_threshold
        self.chunk_cap = chunk_cap

    @classmethod
    def from_settings(cls, settings) -> "ChunkScheduler":
        return cls(
            max_chunk_size=settings.max_chunk_size,
            small_work_threshold=settings.small_work_threshold,
            chunk_cap=settings.chunk_cap,
        )

    def total_chunks(self, total_files: int) -> int:
        if total_files < 0:
            raise ValueError(f"total_files must not be negative, got {total_files}")
        if total_files <= self.small_work_threshold:
            return 1
        return min(math.ceil(total_files / self.max_chunk_size), self.chunk_cap)

    def plan(self, total_files: int) -> ChunkPlan:
        total_chunks = self.total_chunks(total_files)
        chunk_size = math.ceil(total_files / total_chunks)
        return ChunkPlan(total_chunks=total_chunks, chunk_size=chunk_size, total_files=total_files)
