from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..domain.errors import MalformedResponse, NetworkError, RetriesExhausted
from ..domain.filters import FilterDocument
from ..domain.models import AcquisitionStats, BlockRange, RangeResult, RawRecord
from ..ports.archive import ChunkFetcher, WorkerResolver
from .governor import ConcurrencyGovernor

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RangeAcquirer:
    """
    Walks one block range chunk by chunk.

    Each step resolves the worker for the current cursor and fetches from it,
    inside one governor slot. Retryable failures re-issue the same cursor after
    an exponential backoff (initial, 2x, 4x, ...); the counter and the delay
    reset after every successful chunk. UpstreamUnavailable (directory lookup)
    is never retried. Exhausting the retries discards the partial result.
    """

    def __init__(
        self,
        resolver: WorkerResolver,
        fetcher: ChunkFetcher,
        *,
        governor: Optional[ConcurrencyGovernor] = None,
        max_retries: int = 5,
        initial_backoff_s: float = 0.1,
        retry_malformed: bool = False,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.resolver = resolver
        self.fetcher = fetcher
        self.governor = governor or ConcurrencyGovernor.unlimited()
        self.max_retries = max_retries
        self.initial_backoff_s = initial_backoff_s
        self.retryable: tuple[type[Exception], ...] = (
            (NetworkError, MalformedResponse) if retry_malformed else (NetworkError,)
        )
        self._sleep = sleep

    async def acquire(self, query: FilterDocument, start: int, end: int) -> list[RawRecord]:
        if start >= end:
            return []
        return (await self.acquire_range(query, BlockRange(start, end))).records

    async def acquire_range(self, query: FilterDocument, rng: BlockRange) -> RangeResult:
        stats = AcquisitionStats()
        records: list[RawRecord] = []
        cursor = rng.start
        attempt = 0
        backoff = self.initial_backoff_s

        while cursor < rng.end:
            try:
                async with self.governor.slot():
                    worker = await self.resolver.resolve(cursor)
                    chunk = await self.fetcher.fetch(query, cursor, worker)
                if chunk.next_block <= cursor:
                    raise MalformedResponse(
                        f"worker {worker} made no progress: last block {chunk.last_block} < cursor {cursor}",
                        block=cursor,
                    )
            except self.retryable as e:
                attempt += 1
                stats.retries += 1
                if attempt >= self.max_retries:
                    log.error("retries exhausted", extra={"block": cursor, "attempts": attempt, "error": str(e)})
                    raise RetriesExhausted(cursor, attempt, e) from e
                log.warning("error fetching blocks starting at %d: %s; retrying in %.3fs",
                            cursor, e, backoff, extra={"block": cursor, "attempt": attempt})
                stats.backoffs.append(backoff)
                await self._sleep(backoff)
                backoff *= 2
                continue
            except MalformedResponse as e:
                if e.block is None:
                    e.block = cursor
                log.error("malformed response", extra={"block": cursor, "error": str(e)})
                raise

            records.extend(chunk.records)
            stats.chunks += 1
            stats.records += len(chunk.records)
            log.debug("chunk fetched", extra={"from_block": cursor, "last_block": chunk.last_block,
                                              "records": len(chunk.records)})
            cursor = chunk.next_block
            attempt = 0
            backoff = self.initial_backoff_s

        return RangeResult(range=rng, records=records, next_block=cursor, stats=stats)
