from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from aiolimiter import AsyncLimiter


class ConcurrencyGovernor:
    """
    Optional rate limiter + optional permit pool around each chunk request.

    Either part may be None; with both None every ``slot()`` is entered
    immediately. One governor is shared by all acquisitions of a Datasource,
    so the permit count bounds in-flight requests across ranges.
    """

    def __init__(
        self,
        *,
        semaphore: Optional[asyncio.Semaphore] = None,
        limiter: Optional[AsyncLimiter] = None,
    ) -> None:
        self.semaphore = semaphore
        self.limiter = limiter
        self.in_flight = 0
        self.peak_in_flight = 0

    @classmethod
    def build(
        cls,
        max_concurrent_requests: Optional[int] = None,
        requests_per_second: Optional[float] = None,
    ) -> "ConcurrencyGovernor":
        sem = asyncio.Semaphore(max_concurrent_requests) if max_concurrent_requests else None
        lim: Optional[AsyncLimiter] = None
        if requests_per_second:
            # AsyncLimiter cannot hand out a whole request when max_rate < 1
            lim = (AsyncLimiter(requests_per_second, 1.0) if requests_per_second >= 1
                   else AsyncLimiter(1, 1.0 / requests_per_second))
        return cls(semaphore=sem, limiter=lim)

    @classmethod
    def unlimited(cls) -> "ConcurrencyGovernor":
        return cls()

    @property
    def is_unlimited(self) -> bool:
        return self.semaphore is None and self.limiter is None

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        # rate first: a throttled caller must not sit on a permit while it waits
        if self.limiter is not None:
            await self.limiter.acquire()
        if self.semaphore is not None:
            await self.semaphore.acquire()
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            yield
        finally:
            self.in_flight -= 1
            if self.semaphore is not None:
                self.semaphore.release()
