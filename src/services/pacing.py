# src/services/pacing.py

"""Minimum-interval gate that throttles upstream requests."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger("price_tracker.pacing")


class PacedGate:
    """Lets callers through no more often than once per *min_interval*.

    The first pass is immediate.  Each later pass waits until
    *min_interval* seconds have elapsed since the previous pass,
    whatever the caller did in between.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_pass: float | None = None
        self._lock = asyncio.Lock()

    async def wait(self) -> float:
        """Block until the gate opens.  Returns the seconds waited."""
        async with self._lock:
            waited = 0.0
            if self._last_pass is not None:
                remaining = self.min_interval - (
                    self._clock() - self._last_pass
                )
                if remaining > 0:
                    logger.debug("Pacing: waiting %.2fs", remaining)
                    await self._sleep(remaining)
                    waited = remaining
            self._last_pass = self._clock()
            return waited

    def reset(self) -> None:
        """Forget the previous pass; the next wait is immediate."""
        self._last_pass = None
