"""
Closed field vocabulary per dataset.

Names are the keys a worker uses in its JSON response (camelCase). Callers may
also request the snake_case spelling used by some query builders
(``log_index``, ``transaction_hash``, ``gas_price``...); those resolve to the
same canonical column.
"""
from __future__ import annotations

import re
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from .value_types import Dataset, ValueKind

U64, HEX, STR, HEX_ARR, BOOL = (
    ValueKind.UINT64, ValueKind.HEX_BYTES, ValueKind.UTF8_STRING,
    ValueKind.HEX_BYTES_ARRAY, ValueKind.BOOL,
)

BLOCK_FIELDS: Mapping[str, ValueKind] = MappingProxyType({
    "number":           U64,
    "hash":             HEX,
    "parentHash":       HEX,
    "timestamp":        U64,
    "miner":            HEX,
    "nonce":            HEX,
    "sha3Uncles":       HEX,
    "logsBloom":        HEX,
    "transactionsRoot": HEX,
    "stateRoot":        HEX,
    "receiptsRoot":     HEX,
    "mixHash":          HEX,
    "extraData":        HEX,
    "difficulty":       HEX,
    "totalDifficulty":  HEX,
    "size":             U64,
    "gasLimit":         HEX,
    "gasUsed":          HEX,
    "baseFeePerGas":    HEX,
})

TRANSACTION_FIELDS: Mapping[str, ValueKind] = MappingProxyType({
    "id":                   STR,
    "transactionIndex":     U64,
    "hash":                 HEX,
    "from":                 HEX,
    "to":                   HEX,
    "input":                HEX,
    "sighash":              HEX,
    "nonce":                U64,
    "value":                HEX,   # wei does not fit in u64; kept as hex quantity
    "gas":                  HEX,
    "gasPrice":             HEX,
    "maxFeePerGas":         HEX,
    "maxPriorityFeePerGas": HEX,
    "gasUsed":              HEX,
    "cumulativeGasUsed":    HEX,
    "effectiveGasPrice":    HEX,
    "contractAddress":      HEX,
    "v":                    HEX,
    "r":                    HEX,
    "s":                    HEX,
    "yParity":              U64,
    "chainId":              U64,
    "type":                 U64,
    "status":               U64,
})

LOG_FIELDS: Mapping[str, ValueKind] = MappingProxyType({
    "id":               STR,
    "logIndex":         U64,
    "transactionIndex": U64,
    "transactionHash":  HEX,
    "address":          HEX,
    "data":             HEX,
    "topics":           HEX_ARR,
    "removed":          BOOL,
})

FIELD_SCHEMA: Mapping[Dataset, Mapping[str, ValueKind]] = MappingProxyType({
    Dataset.BLOCKS:       BLOCK_FIELDS,
    Dataset.TRANSACTIONS: TRANSACTION_FIELDS,
    Dataset.LOGS:         LOG_FIELDS,
})

# where the sub-records live inside a RawRecord; None = the header object itself
RECORD_KEY: Mapping[Dataset, str] = MappingProxyType({
    Dataset.BLOCKS:       "header",
    Dataset.TRANSACTIONS: "transactions",
    Dataset.LOGS:         "logs",
})

# key under the filter document's "fields" object
SELECTION_KEY: Mapping[Dataset, str] = MappingProxyType({
    Dataset.BLOCKS:       "block",
    Dataset.TRANSACTIONS: "transaction",
    Dataset.LOGS:         "log",
})

_SNAKE = re.compile(r"_([a-z0-9])")

def _to_camel(name: str) -> str:
    return _SNAKE.sub(lambda m: m.group(1).upper(), name.rstrip("_"))


def canonical_name(dataset: Dataset, name: str) -> Optional[str]:
    vocab = FIELD_SCHEMA[dataset]
    if name in vocab:
        return name
    camel = _to_camel(name)
    return camel if camel in vocab else None


def field_kind(dataset: Dataset, name: str) -> Optional[ValueKind]:
    canon = canonical_name(dataset, name)
    return None if canon is None else FIELD_SCHEMA[dataset][canon]


def resolve_fields(dataset: Dataset, requested: Sequence[str]) -> list[tuple[str, ValueKind]]:
    """Canonical (name, kind) pairs in request order; unknown names dropped, duplicates collapsed."""
    out: list[tuple[str, ValueKind]] = []
    seen: set[str] = set()
    for name in requested:
        canon = canonical_name(dataset, name)
        if canon is None or canon in seen:
            continue
        seen.add(canon)
        out.append((canon, FIELD_SCHEMA[dataset][canon]))
    return out
