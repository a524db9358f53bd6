"""Paginated fetch engine.

Turns the output of a finished execution into a single-pass stream of Arrow
tables. Two backends exist:

- ``InlineFetcher`` pages through ``get_query_results`` with continuation
  tokens and converts the string cells using the declared column types.
- ``ColumnarFetcher`` downloads the Parquet or ORC files an execution wrote
  and pages through them by row group (Parquet) or stripe (ORC).

Rows handed out are gone: fetchers never rewind.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pyarrow as pa
import pyarrow.orc as orc
import pyarrow.parquet as pq

from athena_client.observability import get_logger
from athena_client.query.models import InvalidStateError, ResultFormat
from athena_client.query.types import ColumnInfo, athena_schema, rows_to_table
from athena_client.utils import parse_s3_uri

if TYPE_CHECKING:
    from athena_client.query.models import QueryStatus

logger = get_logger(__name__)

RemoteCall = Callable[..., Any]

MAX_PAGE_SIZE = 1000

_SKIPPED_SUFFIXES = (".metadata", "-manifest.csv", "_$folder$")


class Fetcher(ABC):
    """Cursor over the output of one execution."""

    @property
    @abstractmethod
    def schema(self) -> pa.Schema:
        """Schema of the rows, available before any row is consumed."""

    @property
    @abstractmethod
    def exhausted(self) -> bool:
        """True once every row has been handed out."""

    @abstractmethod
    def fetch(self, n: int = -1) -> pa.Table:
        """Return up to ``n`` rows; ``-1`` for all remaining, ``0`` for none."""

    def close(self) -> None:  # noqa: B027
        """Release buffered rows."""


class InlineFetcher(Fetcher):
    """Reads rows returned directly by ``get_query_results``."""

    def __init__(self, athena: Any, execution_id: str, call: RemoteCall) -> None:
        self._athena = athena
        self._execution_id = execution_id
        self._call = call
        self._columns: list[ColumnInfo] | None = None
        self._buffer: deque[list[str | None]] = deque()
        self._next_token: str | None = None

    @property
    def columns(self) -> list[ColumnInfo]:
        self._ensure_started()
        if self._columns is None:
            raise InvalidStateError(f"No column metadata for {self._execution_id}")
        return self._columns

    @property
    def schema(self) -> pa.Schema:
        return athena_schema(self.columns)

    @property
    def exhausted(self) -> bool:
        return self._columns is not None and not self._buffer and self._next_token is None

    def _ensure_started(self) -> None:
        if self._columns is None:
            self._fetch_page()

    def _fetch_page(self) -> None:
        request: dict[str, Any] = {
            "QueryExecutionId": self._execution_id,
            "MaxResults": MAX_PAGE_SIZE,
        }
        if self._next_token:
            request["NextToken"] = self._next_token
        response = self._call(self._athena.get_query_results, **request)

        result_set = response["ResultSet"]
        rows = [[cell.get("VarCharValue") for cell in row["Data"]] for row in result_set.get("Rows", [])]

        if self._columns is None:
            self._columns = [
                ColumnInfo.from_metadata(m)
                for m in result_set.get("ResultSetMetadata", {}).get("ColumnInfo", [])
            ]
            # The first page of a SELECT repeats the column labels as a row.
            if rows and rows[0] == [c.name for c in self._columns]:
                rows = rows[1:]

        self._next_token = response.get("NextToken")
        self._buffer.extend(rows)
        logger.debug(
            "Fetched result page",
            execution_id=self._execution_id,
            rows=len(rows),
            has_more=self._next_token is not None,
        )

    def fetch(self, n: int = -1) -> pa.Table:
        columns = self.columns
        rows: list[list[str | None]] = []
        while n < 0 or len(rows) < n:
            if not self._buffer:
                if self._next_token is None:
                    break
                self._fetch_page()
                continue
            rows.append(self._buffer.popleft())
        return rows_to_table(columns, rows)

    def close(self) -> None:
        self._buffer.clear()
        self._next_token = None


class _ColumnarFile:
    """One downloaded Parquet or ORC object, read unit by unit."""

    def __init__(self, body: bytes, result_format: ResultFormat) -> None:
        source = pa.BufferReader(body)
        if result_format == ResultFormat.ORC:
            self._orc = orc.ORCFile(source)
            self._parquet = None
            self.schema = self._orc.schema
            self.num_units = self._orc.nstripes
        else:
            self._parquet = pq.ParquetFile(source)
            self._orc = None
            self.schema = self._parquet.schema_arrow
            self.num_units = self._parquet.num_row_groups

    def read(self, index: int) -> pa.Table:
        if self._parquet is not None:
            return self._parquet.read_row_group(index)
        return pa.Table.from_batches([self._orc.read_stripe(index)])


class ColumnarFetcher(Fetcher):
    """Reads the Parquet/ORC files written by a CTAS or UNLOAD execution."""

    def __init__(self, s3: Any, status: QueryStatus, result_format: ResultFormat, call: RemoteCall) -> None:
        self._s3 = s3
        self._status = status
        self._format = result_format
        self._call = call
        self._objects: list[tuple[str, str]] | None = None
        self._file_pos = 0
        self._current: _ColumnarFile | None = None
        self._unit_pos = 0
        self._pending: pa.Table | None = None
        self._schema: pa.Schema | None = None

    @property
    def objects(self) -> list[tuple[str, str]]:
        """``(bucket, key)`` of every data file, located on first use."""
        if self._objects is None:
            self._objects = self._locate_objects()
            logger.debug(
                "Located columnar output",
                execution_id=self._status.execution_id,
                files=len(self._objects),
            )
        return self._objects

    def _locate_objects(self) -> list[tuple[str, str]]:
        if self._status.data_manifest_location:
            bucket, key = parse_s3_uri(self._status.data_manifest_location)
            body = self._call(self._s3.get_object, Bucket=bucket, Key=key)["Body"].read()
            return [parse_s3_uri(line) for line in body.decode("utf-8").splitlines() if line.strip()]

        if not self._status.output_location:
            return []
        bucket, prefix = parse_s3_uri(self._status.output_location)
        prefix = prefix.rstrip("/") + "/" if prefix else ""
        objects: list[tuple[str, str]] = []
        token: str | None = None
        while True:
            request: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix}
            if token:
                request["ContinuationToken"] = token
            response = self._call(self._s3.list_objects_v2, **request)
            for item in response.get("Contents", []):
                key = item["Key"]
                if key.endswith("/") or key.endswith(_SKIPPED_SUFFIXES) or item.get("Size") == 0:
                    continue
                objects.append((bucket, key))
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")
        return sorted(objects)

    def _open_next(self) -> None:
        bucket, key = self.objects[self._file_pos]
        body = self._call(self._s3.get_object, Bucket=bucket, Key=key)["Body"].read()
        self._current = _ColumnarFile(body, self._format)
        self._file_pos += 1
        self._unit_pos = 0
        if self._schema is None:
            self._schema = self._current.schema

    def _next_unit(self) -> pa.Table | None:
        while True:
            if self._current is None:
                if self._file_pos >= len(self.objects):
                    return None
                self._open_next()
            current = self._current
            if current is None:
                raise InvalidStateError("Columnar result file was not opened")
            if self._unit_pos < current.num_units:
                table = current.read(self._unit_pos)
                self._unit_pos += 1
                return table
            self._current = None

    @property
    def schema(self) -> pa.Schema:
        if self._schema is None:
            if self._file_pos < len(self.objects):
                self._open_next()
            else:
                self._schema = pa.schema([])
        if self._schema is None:
            raise InvalidStateError("Columnar result schema is unavailable")
        return self._schema

    @property
    def exhausted(self) -> bool:
        return (
            self._objects is not None
            and self._pending is None
            and self._file_pos >= len(self._objects)
            and (self._current is None or self._unit_pos >= self._current.num_units)
        )

    def fetch(self, n: int = -1) -> pa.Table:
        schema = self.schema
        if n == 0:
            return schema.empty_table()

        pieces: list[pa.Table] = []
        fetched = 0
        while n < 0 or fetched < n:
            unit = self._pending if self._pending is not None else self._next_unit()
            self._pending = None
            if unit is None:
                break
            wanted = n - fetched
            if n > 0 and unit.num_rows > wanted:
                pieces.append(unit.slice(0, wanted))
                self._pending = unit.slice(wanted)
                fetched = n
            else:
                pieces.append(unit)
                fetched += unit.num_rows

        if not pieces:
            return schema.empty_table()
        return pa.concat_tables(pieces)

    def close(self) -> None:
        self._current = None
        self._pending = None


def make_fetcher(
    result_format: ResultFormat,
    *,
    athena: Any,
    s3: Any,
    status: QueryStatus,
    call: RemoteCall,
) -> Fetcher:
    """Build the fetcher for ``result_format``."""
    if result_format.is_columnar:
        return ColumnarFetcher(s3, status, result_format, call)
    return InlineFetcher(athena, status.execution_id, call)
