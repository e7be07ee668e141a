"""Wall-clock timers and the per-pass performance report."""

from __future__ import annotations

import time
from dataclasses import dataclass


class Timer:
    """Accumulating stopwatch that can be paused and resumed.

    A pass runs two of these, one for geometry work and one for time spent
    talking to the store, toggling between them at each boundary crossing.
    """

    def __init__(self) -> None:
        self._elapsed = 0.0
        self._started_at: float | None = None

    def start(self) -> Timer:
        self._elapsed = 0.0
        self._started_at = time.perf_counter()
        return self

    def pause(self) -> None:
        if self._started_at is not None:
            self._elapsed += time.perf_counter() - self._started_at
            self._started_at = None

    def resume(self) -> None:
        if self._started_at is None:
            self._started_at = time.perf_counter()

    def stop(self) -> float:
        """Stop and return the total elapsed time in milliseconds."""
        self.pause()
        return self._elapsed * 1000.0


@dataclass
class PerformanceReport:
    compute_time_ms: float = 0.0
    communication_time_ms: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0

    def to_dict(self) -> dict:
        return {
            "compute_time": f"{round(self.compute_time_ms)} ms",
            "communication_time": f"{round(self.communication_time_ms)} ms",
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
        }
