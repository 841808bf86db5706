"""Time source used by the poller and the retry loop."""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Monotonic time and blocking sleep."""

    @abstractmethod
    def now(self) -> float:
        """Monotonic seconds; only differences between readings are meaningful."""

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Block for ``seconds``."""


class SystemClock(Clock):
    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
