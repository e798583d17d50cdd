# blockdive/ports/archive.py
from __future__ import annotations

from typing import Protocol

from ..domain.filters import FilterDocument
from ..domain.models import Chunk
from ..domain.value_types import WorkerUrl


class WorkerResolver(Protocol):
    """Port mapping a block number to the shard that serves it."""

    async def resolve(self, start_block: int) -> WorkerUrl:
        """Return the worker URL for `start_block`; raise UpstreamUnavailable on failure."""


class ChunkFetcher(Protocol):
    """Port for one bounded request against a resolved worker."""

    async def fetch(self, query: FilterDocument, from_block: int, worker: WorkerUrl) -> Chunk:
        """POST `query` (with fromBlock injected) and return the blocks plus the last block number.

        Raises NetworkError for transport failures and MalformedResponse for bodies
        that are not a JSON array ending in a record with an integer header.number.
        """


class HeightSource(Protocol):
    async def height(self) -> int:
        """Return the highest block currently indexed by the archive."""
