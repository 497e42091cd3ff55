"""
Intelligent Waiter: bounded polling on top of the governor.

Used when a short wait for a gated, higher-priority source is cheaper than
settling for a lower-priority one. Running out of time is not an error: the
waiter returns False/None and the caller treats the source as unavailable.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Sequence

from football_intel.health.governor import SourceHealthGovernor

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0


class IntelligentWaiter:
    def __init__(
        self,
        governor: SourceHealthGovernor,
        poll_seconds: float = 1.0,
        default_timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.governor = governor
        self.poll_seconds = poll_seconds
        self.default_timeout = default_timeout
        self._sleep = sleep
        self._clock = clock

    async def wait_for(self, source: str, timeout: Optional[float] = None) -> bool:
        """
        Poll until `source` may be called or the timeout expires.

        Args:
            source: Source name.
            timeout: Seconds to wait at most (defaults to default_timeout).

        Returns:
            True if the source became available in time.
        """
        timeout = self.default_timeout if timeout is None else timeout
        deadline = self._clock() + timeout

        while True:
            if self.governor.can_request(source):
                return True
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.debug("[WAITER] %s still gated after %.1fs", source, timeout)
                return False
            await self._sleep(min(self.poll_seconds, remaining))

    async def wait_for_any(
        self,
        sources: Sequence[str],
        timeout: Optional[float] = None,
    ) -> Optional[str]:
        """Return the first source (in the given order) that opens up, or None."""
        timeout = self.default_timeout if timeout is None else timeout
        deadline = self._clock() + timeout

        while True:
            for source in sources:
                if self.governor.can_request(source):
                    return source
            remaining = deadline - self._clock()
            if remaining <= 0:
                return None
            await self._sleep(min(self.poll_seconds, remaining))

    async def wait_with_backoff(self, source: str, max_retries: int = 5) -> bool:
        """Retry with exponential sleeps (1, 2, 4... capped at 30s)."""
        for attempt in range(max_retries):
            if self.governor.can_request(source):
                return True
            delay = min(2 ** attempt, MAX_BACKOFF_SECONDS)
            logger.debug("[WAITER] %s gated, retry %d in %.0fs", source, attempt + 1, delay)
            await self._sleep(delay)
        return self.governor.can_request(source)

    async def smart_wait(self, preferred: Sequence[str], timeout: Optional[float] = None) -> Optional[str]:
        """Take any preferred source that is open right now, else wait for the quickest one."""
        for source in preferred:
            if self.governor.can_request(source):
                return source

        if not preferred:
            return None
        quickest = min(preferred, key=self.optimal_wait_time)
        if await self.wait_for(quickest, timeout):
            return quickest
        return None

    def optimal_wait_time(self, source: str) -> float:
        return self.governor.seconds_until_available(source)
