from __future__ import annotations
from enum import Enum
from typing import NewType

BlockNumber = NewType("BlockNumber", int)   # non-negative, fits u64
WorkerUrl   = NewType("WorkerUrl", str)     # http(s) URL of the shard serving a block

U64_MAX = (1 << 64) - 1


class Dataset(str, Enum):
    BLOCKS = "blocks"
    TRANSACTIONS = "transactions"
    LOGS = "logs"


class ValueKind(str, Enum):
    UINT64 = "uint64"
    HEX_BYTES = "hex_bytes"
    UTF8_STRING = "utf8_string"
    HEX_BYTES_ARRAY = "hex_bytes_array"
    BOOL = "bool"
