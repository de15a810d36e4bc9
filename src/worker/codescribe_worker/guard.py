import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class TimeBudgetGuard:
    """
    Decides, once per invocation, whether the next chunk may start.

    Only prevents *starting* a chunk. A delegated call already in flight
    is bounded by its own client timeout, never preempted here.
    """

    def __init__(
        self,
        max_execution_ms: int = 8000,
        safety_margin_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
        started_at: float | None = None,
    ):
        if safety_margin_ms < 0 or max_execution_ms <= 0:
            raise ValueError("max_execution_ms must be positive and safety_margin_ms non-negative")
        self.max_execution_ms = max_execution_ms
        self.safety_margin_ms = safety_margin_ms
        self._clock = clock
        self.started_at = clock() if started_at is None else started_at

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], float] = time.monotonic) -> "TimeBudgetGuard":
        return cls(settings.max_execution_ms, settings.safety_margin_ms, clock=clock)

    def elapsed_ms(self) -> float:
        return (self._clock() - self.started_at) * 1000

    def remaining_ms(self) -> float:
        return self.max_execution_ms - self.elapsed_ms()

    def should_defer(self, chunk_index: int, total_chunks: int) -> bool:
        """True when too little time is left and a later chunk still remains."""
        more_chunks_remain = chunk_index < total_chunks - 1
        remaining = self.remaining_ms()
        if remaining < self.safety_margin_ms and more_chunks_remain:
            logger.info(
                f"[GUARD] Deferring chunk {chunk_index + 1}/{total_chunks}: "
                f"{remaining:.0f}ms left, margin {self.safety_margin_ms}ms"
            )
            return True
        return False
