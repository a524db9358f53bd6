"""Mapping of Athena column types to Arrow types.

The GetQueryResults API returns every value as a string; each column's declared
Athena type decides what the string is converted to. Types not listed here
(varchar, json, arrays, maps, rows, time, varbinary...) stay strings.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pyarrow as pa

MAX_DECIMAL_PRECISION = 38


@dataclass(frozen=True)
class ColumnInfo:
    """One column of a result set as declared by Athena."""

    name: str
    type: str
    precision: int = 0
    scale: int = 0
    nullable: str = "UNKNOWN"

    @classmethod
    def from_metadata(cls, metadata: dict[str, Any]) -> ColumnInfo:
        return cls(
            name=metadata["Name"],
            type=metadata["Type"].lower(),
            precision=metadata.get("Precision", 0),
            scale=metadata.get("Scale", 0),
            nullable=metadata.get("Nullable", "UNKNOWN"),
        )


def _to_bool(value: str) -> bool:
    return value.lower() == "true"


_ARROW_TYPES: dict[str, pa.DataType] = {
    "boolean": pa.bool_(),
    "tinyint": pa.int8(),
    "smallint": pa.int16(),
    "integer": pa.int32(),
    "int": pa.int32(),
    "bigint": pa.int64(),
    "float": pa.float32(),
    "real": pa.float32(),
    "double": pa.float64(),
    "date": pa.date32(),
    "timestamp": pa.timestamp("us"),
}

_CONVERTERS: dict[str, Callable[[str], Any]] = {
    "boolean": _to_bool,
    "tinyint": int,
    "smallint": int,
    "integer": int,
    "int": int,
    "bigint": int,
    "float": float,
    "real": float,
    "double": float,
    "decimal": Decimal,
    "date": date.fromisoformat,
    "timestamp": datetime.fromisoformat,
}


def _has_decimal_type(column: ColumnInfo) -> bool:
    return column.type == "decimal" and 0 < column.precision <= MAX_DECIMAL_PRECISION


def arrow_type(column: ColumnInfo) -> pa.DataType:
    """Arrow type for ``column``; unknown types are strings."""
    if column.type == "decimal":
        if _has_decimal_type(column):
            return pa.decimal128(column.precision, column.scale)
        return pa.string()
    return _ARROW_TYPES.get(column.type, pa.string())


def convert_value(column: ColumnInfo, value: str | None) -> Any:
    """Convert one raw string ``value`` to the Python type of ``column``."""
    if value is None:
        return None
    if column.type == "decimal" and not _has_decimal_type(column):
        return value
    converter = _CONVERTERS.get(column.type)
    if converter is None:
        return value
    return converter(value)


def athena_schema(columns: Sequence[ColumnInfo]) -> pa.Schema:
    """Arrow schema for a list of Athena columns."""
    return pa.schema([pa.field(c.name, arrow_type(c)) for c in columns])


def rows_to_table(columns: Sequence[ColumnInfo], rows: Sequence[Sequence[str | None]]) -> pa.Table:
    """Build a typed table from raw string rows."""
    schema = athena_schema(columns)
    arrays = [
        pa.array([convert_value(column, row[i]) for row in rows], type=schema.field(i).type)
        for i, column in enumerate(columns)
    ]
    return pa.Table.from_arrays(arrays, schema=schema)
