from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

import pyarrow as pa

from .value_types import Dataset, U64_MAX

RawRecord = dict[str, Any]     # one per-block JSON document as returned by a worker


@dataclass(slots=True, frozen=True)
class BlockRange:
    """Half-open block interval [start, end)."""
    start: int
    end: int

    def __post_init__(self) -> None:
        if not (0 <= self.start <= U64_MAX and 0 <= self.end <= U64_MAX):
            raise ValueError(f"block numbers must fit in u64: [{self.start}, {self.end})")
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) must be <= end ({self.end})")

    def span(self) -> int: return self.end - self.start
    def is_empty(self) -> bool: return self.start >= self.end


@dataclass(slots=True, frozen=True)
class Chunk:
    records: list[RawRecord]
    last_block: int                    # header.number of the final record

    @property
    def next_block(self) -> int:
        return self.last_block + 1


@dataclass(slots=True)
class AcquisitionStats:
    chunks: int = 0
    records: int = 0
    retries: int = 0
    backoffs: list[float] = field(default_factory=list)   # seconds slept, in order


@dataclass(slots=True, frozen=True)
class RangeResult:
    range: BlockRange
    records: list[RawRecord]
    next_block: int                    # cursor value when acquisition stopped (>= range.end)
    stats: AcquisitionStats


@dataclass(slots=True, frozen=True)
class MaterializedTable:
    dataset: Dataset
    table: pa.Table
    skipped: dict[str, int]            # per column: values present but rejected by coercion
    missing: dict[str, int]            # per column: rows lacking the key entirely

    @property
    def num_rows(self) -> int: return self.table.num_rows

    @property
    def column_names(self) -> list[str]: return list(self.table.column_names)

    @property
    def total_skipped(self) -> int: return sum(self.skipped.values())
