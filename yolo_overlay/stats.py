from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass
class PipelineStats:
    cycles_completed: int = 0
    cycles_skipped: int = 0
    # Display ticks spent on the last completed cycle, submission included.
    last_cycle_ticks: int = 0
    last_detection_count: int = 0
    last_candidate_count: int = 0


class FrameRateMeter:
    """
    Averages frame time over a reporting interval.

    Call `update(dt)` once per frame, or `update()` to read the clock (the first
    call only starts it). `fps` holds the rate measured over the
    last complete interval (0.0 until the first interval closes).
    """

    def __init__(self, interval_s: float = 0.5, clock: Callable[[], float] = time.perf_counter):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.interval_s = interval_s
        self._clock = clock
        self._elapsed = 0.0
        self._frames = 0
        self._last: Optional[float] = None
        self.fps = 0.0

    def update(self, dt: Optional[float] = None) -> float:
        if dt is None:
            now = self._clock()
            if self._last is None:
                self._last = now
                return self.fps
            dt = now - self._last
            self._last = now
        self._elapsed += dt
        self._frames += 1
        if self._elapsed >= self.interval_s:
            self.fps = self._frames / self._elapsed
            self._elapsed = 0.0
            self._frames = 0
        return self.fps
