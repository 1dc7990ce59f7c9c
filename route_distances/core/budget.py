import time
from typing import Callable, Optional


class TimeBudget:
    """
    Wall-clock ceiling for one completion run.

    The clock is injectable so tests can expire a budget deterministically.
    """

    def __init__(self, seconds: float, clock: Optional[Callable[[], float]] = None):
        self.seconds = seconds
        self._clock = clock or time.monotonic
        self._started = self._clock()

    def elapsed(self) -> float:
        return self._clock() - self._started

    def elapsed_ms(self) -> int:
        return int(round(self.elapsed() * 1000))

    def remaining(self) -> float:
        return max(0.0, self.seconds - self.elapsed())

    def exceeded(self) -> bool:
        return self.elapsed() >= self.seconds
