"""Tests for Athena to Arrow type mapping."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pyarrow as pa
import pytest

from athena_client.query.types import ColumnInfo, arrow_type, athena_schema, convert_value, rows_to_table


class TestColumnInfo:
    """Tests for ColumnInfo."""

    def test_from_metadata(self) -> None:
        column = ColumnInfo.from_metadata(
            {"Name": "price", "Type": "DECIMAL", "Precision": 10, "Scale": 2, "Nullable": "NULLABLE"}
        )
        assert column == ColumnInfo("price", "decimal", 10, 2, "NULLABLE")

    def test_from_metadata_defaults(self) -> None:
        column = ColumnInfo.from_metadata({"Name": "x", "Type": "varchar"})
        assert column.precision == 0
        assert column.nullable == "UNKNOWN"


class TestArrowType:
    """Tests for arrow_type."""

    @pytest.mark.parametrize(
        ("athena", "expected"),
        [
            ("boolean", pa.bool_()),
            ("tinyint", pa.int8()),
            ("smallint", pa.int16()),
            ("integer", pa.int32()),
            ("bigint", pa.int64()),
            ("float", pa.float32()),
            ("double", pa.float64()),
            ("date", pa.date32()),
            ("timestamp", pa.timestamp("us")),
            ("varchar", pa.string()),
            ("array", pa.string()),
            ("json", pa.string()),
        ],
    )
    def test_mapping(self, athena: str, expected: pa.DataType) -> None:
        assert arrow_type(ColumnInfo("c", athena)) == expected

    def test_decimal_with_precision(self) -> None:
        assert arrow_type(ColumnInfo("c", "decimal", 12, 3)) == pa.decimal128(12, 3)

    def test_decimal_without_precision_is_string(self) -> None:
        assert arrow_type(ColumnInfo("c", "decimal")) == pa.string()


class TestConvertValue:
    """Tests for convert_value."""

    def test_null(self) -> None:
        assert convert_value(ColumnInfo("c", "integer"), None) is None

    def test_scalars(self) -> None:
        assert convert_value(ColumnInfo("c", "boolean"), "true") is True
        assert convert_value(ColumnInfo("c", "boolean"), "false") is False
        assert convert_value(ColumnInfo("c", "bigint"), "42") == 42
        assert convert_value(ColumnInfo("c", "double"), "1.5") == 1.5
        assert convert_value(ColumnInfo("c", "decimal", 5, 2), "12.34") == Decimal("12.34")

    def test_temporal(self) -> None:
        assert convert_value(ColumnInfo("c", "date"), "2024-02-29") == date(2024, 2, 29)
        assert convert_value(ColumnInfo("c", "timestamp"), "2024-02-29 13:45:00.123") == datetime(
            2024, 2, 29, 13, 45, 0, 123000
        )

    def test_unknown_types_stay_strings(self) -> None:
        assert convert_value(ColumnInfo("c", "array"), "[1, 2]") == "[1, 2]"


class TestRowsToTable:
    """Tests for rows_to_table."""

    def test_typed_table(self) -> None:
        columns = [ColumnInfo("id", "integer"), ColumnInfo("name", "varchar"), ColumnInfo("ok", "boolean")]
        table = rows_to_table(columns, [["1", "a", "true"], ["2", None, None]])

        assert table.schema == athena_schema(columns)
        assert table.to_pydict() == {"id": [1, 2], "name": ["a", None], "ok": [True, None]}

    def test_empty_rows_keep_schema(self) -> None:
        columns = [ColumnInfo("id", "bigint")]
        table = rows_to_table(columns, [])
        assert table.num_rows == 0
        assert table.schema.field("id").type == pa.int64()
