from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Sequence

import pyarrow as pa

from .columns import ColumnBuilder, make_column
from .errors import SchemaAssemblyFailure, UnknownDataset, ValueCoercionError
from .models import MaterializedTable, RawRecord
from .schema import RECORD_KEY, canonical_name, resolve_fields
from .value_types import Dataset

log = logging.getLogger(__name__)


def _rows(dataset: Dataset, record: RawRecord) -> Iterator[dict[str, Any]]:
    """Yield the row-sources of one worker record: its header, or each nested tx/log."""
    key = RECORD_KEY.get(dataset)
    if key is None:
        raise UnknownDataset(f"no record layout for dataset {dataset!r}")
    if not isinstance(record, dict):
        log.warning("record is %s, expected an object; record ignored", type(record).__name__)
        return
    node = record.get(key)
    if node is None:
        return
    if dataset is Dataset.BLOCKS:
        if isinstance(node, dict):
            yield node
        return
    if not isinstance(node, list):
        log.warning("record field %r is %s, expected a list; record ignored",
                    key, type(node).__name__)
        return
    for item in node:
        if isinstance(item, dict):
            yield item


class Materializer:
    """
    Turns a stream of raw per-block records into one Arrow table.

    With ``null_fill`` (default) a missing key or a rejected value becomes a null
    cell, so every column has one slot per row-source. Without it, only
    accepted values are appended; columns of unequal length then fail
    assembly with SchemaAssemblyFailure.
    """

    def __init__(self, *, null_fill: bool = True) -> None:
        self.null_fill = null_fill

    def materialize(
        self,
        dataset: Dataset,
        records: Iterable[RawRecord],
        requested_fields: Sequence[str],
    ) -> MaterializedTable:
        resolved = resolve_fields(dataset, requested_fields)
        ignored = [f for f in requested_fields if canonical_name(dataset, f) is None]
        if ignored:
            log.debug("fields outside the %s vocabulary ignored: %s", dataset.value, ignored)

        builders: dict[str, ColumnBuilder] = {name: make_column(name, kind) for name, kind in resolved}
        skipped = {name: 0 for name in builders}
        missing = {name: 0 for name in builders}

        for record in records:
            for row in _rows(dataset, record):
                for name, col in builders.items():
                    if name not in row:
                        missing[name] += 1
                        if self.null_fill: col.append_null()
                        continue
                    try:
                        col.append(row[name])
                    except ValueCoercionError as e:
                        skipped[name] += 1
                        if skipped[name] == 1:
                            log.warning("value skipped: %s", e, extra={"column": name})
                        else:
                            log.debug("value skipped: %s", e, extra={"column": name})
                        if self.null_fill: col.append_null()

        total = sum(skipped.values())
        if total:
            log.warning("%d value(s) skipped while materializing %s",
                        total, dataset.value, extra={"skipped": {k: v for k, v in skipped.items() if v}})

        return MaterializedTable(
            dataset=dataset,
            table=self._assemble(builders),
            skipped=skipped,
            missing=missing,
        )

    @staticmethod
    def _assemble(builders: dict[str, ColumnBuilder]) -> pa.Table:
        lengths = {name: len(col) for name, col in builders.items()}
        if len(set(lengths.values())) > 1:
            raise SchemaAssemblyFailure(f"columns have unequal lengths: {lengths}")
        names = list(builders)
        try:
            return pa.Table.from_arrays([builders[n].to_arrow() for n in names], names=names)
        except (pa.ArrowInvalid, pa.ArrowTypeError) as e:
            raise SchemaAssemblyFailure(str(e)) from e


def to_table(
    dataset: Dataset,
    records: Iterable[RawRecord],
    fields: Sequence[str],
    *,
    null_fill: bool = True,
) -> MaterializedTable:
    return Materializer(null_fill=null_fill).materialize(dataset, records, fields)
