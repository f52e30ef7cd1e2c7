"""Clock adapter backed by the wall clock."""

import time

from cardsched.domain.ports import Clock


class SystemClock(Clock):
    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)
