from __future__ import annotations
from typing import Any, Generic, Optional, TypeVar

import pyarrow as pa
from eth_utils import is_0x_prefixed, is_hexstr, to_int

from .errors import ValueCoercionError
from .value_types import U64_MAX, ValueKind

T = TypeVar("T")


class ColumnBuilder(Generic[T]):
    """
    Append-only, typed buffer for one output column.

    ``append`` either stores the coerced value or raises ValueCoercionError and
    leaves the buffer untouched. ``append_null`` keeps a row slot open when the
    caller wants columns to stay row-aligned.
    """
    kind: ValueKind
    arrow_type: pa.DataType

    def __init__(self, name: str) -> None:
        self.name = name
        self._values: list[Optional[T]] = []

    def __len__(self) -> int:
        return len(self._values)

    def _coerce(self, value: Any) -> T:
        raise NotImplementedError

    def append(self, value: Any) -> None:
        self._values.append(self._coerce(value))

    def append_null(self) -> None:
        self._values.append(None)

    def to_arrow(self) -> pa.Array:
        return pa.array(self._values, type=self.arrow_type)

    def _reject(self, value: Any, expected: str) -> ValueCoercionError:
        shown = repr(value)
        if len(shown) > 80: shown = shown[:77] + "..."
        return ValueCoercionError(f"{self.name}: expected {expected}, got {type(value).__name__} {shown}")


class UInt64Column(ColumnBuilder[int]):
    kind = ValueKind.UINT64
    arrow_type = pa.uint64()

    def _coerce(self, value: Any) -> int:
        # bool is an int subclass; JSON true/false is never a block number
        if isinstance(value, bool):
            raise self._reject(value, "unsigned 64-bit integer")
        if isinstance(value, int):
            n = value
        elif isinstance(value, str):
            # quantities arrive as 0x-hex only; decimal text is not a wire form
            if not (is_0x_prefixed(value) and is_hexstr(value)):
                raise self._reject(value, "integer or 0x-hex quantity")
            try:
                n = to_int(hexstr=value)
            except ValueError:
                raise self._reject(value, "integer or 0x-hex quantity") from None
        else:
            raise self._reject(value, "unsigned 64-bit integer")
        if not 0 <= n <= U64_MAX:
            raise self._reject(value, "value within [0, 2**64)")
        return n


class HexBytesColumn(ColumnBuilder[str]):
    """Hex payloads pass through untouched; consumers validate the digits."""
    kind = ValueKind.HEX_BYTES
    arrow_type = pa.large_string()

    def _coerce(self, value: Any) -> str:
        if not isinstance(value, str):
            raise self._reject(value, "hex string")
        return value


class Utf8Column(ColumnBuilder[str]):
    kind = ValueKind.UTF8_STRING
    arrow_type = pa.large_string()

    def _coerce(self, value: Any) -> str:
        if not isinstance(value, str):
            raise self._reject(value, "string")
        return value


class HexBytesArrayColumn(ColumnBuilder[list]):
    kind = ValueKind.HEX_BYTES_ARRAY
    arrow_type = pa.large_list(pa.large_string())

    def _coerce(self, value: Any) -> list[str]:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise self._reject(value, "array of hex strings")
        return list(value)


class BoolColumn(ColumnBuilder[bool]):
    kind = ValueKind.BOOL
    arrow_type = pa.bool_()

    def _coerce(self, value: Any) -> bool:
        if not isinstance(value, bool):
            raise self._reject(value, "boolean")
        return value


_BUILDERS: dict[ValueKind, type[ColumnBuilder]] = {
    ValueKind.UINT64:          UInt64Column,
    ValueKind.HEX_BYTES:       HexBytesColumn,
    ValueKind.UTF8_STRING:     Utf8Column,
    ValueKind.HEX_BYTES_ARRAY: HexBytesArrayColumn,
    ValueKind.BOOL:            BoolColumn,
}

def make_column(name: str, kind: ValueKind) -> ColumnBuilder:
    return _BUILDERS[kind](name)
