from __future__ import annotations
import os
import pyarrow as pa
import pyarrow.parquet as pq

from ..domain.models import MaterializedTable


def _with_metadata(result: MaterializedTable) -> pa.Table:
    meta = dict(result.table.schema.metadata or {})
    meta[b"blockdive.dataset"] = result.dataset.value.encode()
    return result.table.replace_schema_metadata(meta)


def write_parquet(result: MaterializedTable, path: str, *, codec: str = "zstd") -> str:
    """Write atomically (tmp file + rename); returns the final path."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp = path + ".tmp"
    pq.write_table(_with_metadata(result), tmp, compression=codec)
    os.replace(tmp, path)
    return path
