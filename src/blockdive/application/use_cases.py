from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from ..adapters.archive_httpx import HttpxArchive
from ..config import DatasourceConfig
from ..domain.filters import FilterDocument, extract_fields, get_dataset
from ..domain.materialize import Materializer
from ..domain.models import BlockRange, Chunk, MaterializedTable, RangeResult, RawRecord
from ..domain.value_types import WorkerUrl
from ..ports.archive import ChunkFetcher, HeightSource, WorkerResolver
from .acquire import RangeAcquirer, Sleep
from .governor import ConcurrencyGovernor
from .planning import plan_ranges

log = logging.getLogger(__name__)


class Archive(WorkerResolver, ChunkFetcher, HeightSource, Protocol):
    async def aclose(self) -> None: ...


def _block_number(rec: RawRecord) -> Optional[int]:
    if not isinstance(rec, dict):
        return None
    header = rec.get("header")
    n = header.get("number") if isinstance(header, dict) else None
    return n if isinstance(n, int) and not isinstance(n, bool) else None


def _within(records: list[RawRecord], rng: BlockRange) -> list[RawRecord]:
    """Drop the overshoot a worker returns past the end of a sub-range."""
    out: list[RawRecord] = []
    for rec in records:
        if not isinstance(rec, dict):
            continue
        n = _block_number(rec)
        if n is None or rng.start <= n < rng.end:
            out.append(rec)
    return out


class Datasource:
    """
    Entry point: archive lookups, range acquisition and table materialization
    behind one shared httpx client and one shared ConcurrencyGovernor.
    """

    def __init__(
        self,
        config: Optional[DatasourceConfig] = None,
        *,
        archive: Optional[Archive] = None,
        governor: Optional[ConcurrencyGovernor] = None,
        null_fill: bool = True,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or DatasourceConfig()
        self.archive: Archive = archive or HttpxArchive.from_config(self.config)
        self.governor = governor or ConcurrencyGovernor.build(
            self.config.max_concurrent_requests, self.config.requests_per_second,
        )
        self.acquirer = RangeAcquirer(
            self.archive, self.archive,
            governor=self.governor,
            max_retries=self.config.max_retries,
            initial_backoff_s=self.config.initial_backoff_s,
            retry_malformed=self.config.retry_malformed,
            sleep=sleep,
        )
        self.materializer = Materializer(null_fill=null_fill)

    async def get_dataset_height(self) -> int:
        return await self.archive.height()

    async def get_worker_url(self, block_number: int) -> WorkerUrl:
        return await self.archive.resolve(block_number)

    async def fetch_data(self, from_block: int, worker_url: WorkerUrl, query: FilterDocument) -> Chunk:
        return await self.archive.fetch(query, from_block, worker_url)

    async def get_data_in_range(self, query: FilterDocument, start_block: int, end_block: int) -> list[RawRecord]:
        return await self.acquirer.acquire(query, start_block, end_block)

    async def get_data_in_ranges(
        self,
        query: FilterDocument,
        start_block: int,
        end_block: int,
        step: int,
    ) -> list[RawRecord]:
        """
        Acquire [start, end) as independent sub-ranges of `step` blocks, concurrently.

        Results are concatenated in sub-range order and trimmed to each
        sub-range, so no block appears twice.
        """
        if start_block >= end_block:
            return []
        pieces = plan_ranges(BlockRange(start_block, end_block), step)
        log.info("acquiring %d sub-ranges", len(pieces),
                 extra={"start": start_block, "end": end_block, "step": step})
        tasks = [asyncio.ensure_future(self.acquirer.acquire_range(query, p)) for p in pieces]
        try:
            results: Sequence[RangeResult] = await asyncio.gather(*tasks)
        except BaseException:
            # a sibling failed or the caller cancelled: tear down the rest before re-raising
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        out: list[RawRecord] = []
        for res in results:
            out.extend(_within(res.records, res.range))
        return out

    async def get_table(
        self,
        query: FilterDocument,
        start_block: int,
        end_block: int,
        *,
        step: Optional[int] = None,
    ) -> MaterializedTable:
        dataset = get_dataset(query)
        fields = extract_fields(query, dataset)
        if step:
            records = await self.get_data_in_ranges(query, start_block, end_block, step)
        else:
            records = await self.get_data_in_range(query, start_block, end_block)
        result = self.materializer.materialize(dataset, records, fields)
        log.info("materialized %s", dataset.value,
                 extra={"records": len(records), "rows": result.num_rows, "columns": result.column_names})
        return result

    async def aclose(self) -> None:
        await self.archive.aclose()

    async def __aenter__(self) -> "Datasource":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
