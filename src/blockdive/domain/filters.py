from __future__ import annotations

import copy
from typing import Any, Mapping

from .errors import UnknownDataset
from .schema import SELECTION_KEY
from .value_types import Dataset

FilterDocument = Mapping[str, Any]

# first key present wins; a query that joins logs with their transactions is a logs query
_DATASET_KEYS: tuple[tuple[str, Dataset], ...] = (
    ("logs", Dataset.LOGS),
    ("transactions", Dataset.TRANSACTIONS),
    ("blocks", Dataset.BLOCKS),
)
_UNSUPPORTED_KEYS = ("traces", "stateDiffs")


def get_dataset(query: FilterDocument) -> Dataset:
    for key, dataset in _DATASET_KEYS:
        if key in query:
            return dataset
    for key in _UNSUPPORTED_KEYS:
        if key in query:
            raise UnknownDataset(f"{key!r} queries cannot be materialized")
    # plain header scans carry no item filter at all
    return Dataset.BLOCKS


def extract_fields(query: FilterDocument, dataset: Dataset | None = None) -> list[str]:
    """Field names flagged ``true`` under ``fields.<block|transaction|log>``, in document order."""
    ds = dataset or get_dataset(query)
    selection = (query.get("fields") or {}).get(SELECTION_KEY[ds]) or {}
    return [name for name, wanted in selection.items() if wanted is True]


def with_from_block(query: FilterDocument, from_block: int) -> dict[str, Any]:
    if not isinstance(query, Mapping):
        raise TypeError(f"filter document must be a JSON object, got {type(query).__name__}")
    out = copy.deepcopy(dict(query))
    out["fromBlock"] = int(from_block)
    return out
