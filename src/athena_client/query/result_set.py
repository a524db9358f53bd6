"""Result set lifecycle for one Athena query.

A result set moves through::

    CREATED -> SUBMITTED -> RUNNING -> SUCCEEDED | FAILED | CANCELLED -> CLEARED

Submission consults the query cache first; a hit borrows the cached
execution id instead of submitting the query again. Only a fresh execution
that reaches SUCCEEDED is added to the cache, so the cache never points at a
failed query.
"""

from __future__ import annotations

import time
import warnings
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pyarrow as pa

from athena_client.observability import (
    decrement_active_polls,
    get_logger,
    get_tracer,
    increment_active_polls,
    record_bytes_scanned,
    record_query_duration,
    record_query_rows,
)
from athena_client.options import get_options
from athena_client.query.fetch import Fetcher, InlineFetcher, make_fetcher
from athena_client.query.models import (
    ConnectionClosedError,
    InvalidResultSetError,
    InvalidStateError,
    QueryExecutionError,
    QueryInterruptedError,
    QueryState,
    QueryStatistics,
    QueryStatus,
    RemoteCallError,
    ResultFormat,
    ResultSetState,
)
from athena_client.query.types import ColumnInfo
from athena_client.retry import poll_delay, remote_call
from athena_client.utils import detect_result_format, join_s3_uri, parse_s3_uri

if TYPE_CHECKING:
    from athena_client.connection import Connection

logger = get_logger(__name__)

_REMOTE_TO_LOCAL = {
    QueryState.QUEUED: ResultSetState.RUNNING,
    QueryState.RUNNING: ResultSetState.RUNNING,
    QueryState.SUCCEEDED: ResultSetState.SUCCEEDED,
    QueryState.FAILED: ResultSetState.FAILED,
    QueryState.CANCELLED: ResultSetState.CANCELLED,
}

CACHE_HINT = "Enable query caching with set_options(cache_size=...) to keep query output instead."


class ResultSet:
    """One query sent to Athena and the cursor over its output.

    Result sets are created by ``Connection.send_query``; they keep a
    non-owning reference to the connection and use its clients. The retry
    policy and whether the cache was enabled are captured when the result set
    is created.
    """

    def __init__(
        self,
        connection: Connection,
        statement: str,
        *,
        output_location: str | None = None,
        result_format: ResultFormat | None = None,
    ) -> None:
        options = get_options()
        self._connection = connection
        self._cache = connection.cache
        self._cache_enabled = self._cache.enabled
        self._retry = options.retry
        self._retry_quiet = options.retry_quiet

        self.statement = statement
        self.output_location = output_location or connection.s3_staging_dir
        self.result_format = result_format or detect_result_format(statement)
        self.execution_id: str | None = None
        self.from_cache = False
        self.state = ResultSetState.CREATED
        self.status: QueryStatus | None = None

        self._fetcher: Fetcher | None = None
        self._row_count = 0

    def __repr__(self) -> str:
        return f"<ResultSet execution_id={self.execution_id!r} state={self.state.value}>"

    def __enter__(self) -> ResultSet:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.state != ResultSetState.CLEARED:
            self.clear()

    @property
    def row_count(self) -> int:
        """Rows fetched so far."""
        return self._row_count

    def is_valid(self) -> bool:
        return self.state != ResultSetState.CLEARED and self._connection.is_valid()

    def _check_valid(self) -> None:
        if self.state == ResultSetState.CLEARED:
            raise InvalidResultSetError(self.execution_id)
        if not self._connection.is_valid():
            raise ConnectionClosedError()

    def _call(self, func: Callable[..., Any], **kwargs: Any) -> Any:
        """Invoke a remote operation under this result set's retry policy."""
        return remote_call(func, retry=self._retry, retry_quiet=self._retry_quiet, **kwargs)

    def send(self) -> ResultSet:
        """Submit the query, or adopt a cached execution of the same query."""
        self._check_valid()
        if self.state != ResultSetState.CREATED:
            raise InvalidStateError(f"Query already submitted as {self.execution_id}")

        cached_id = self._cache.lookup(self.statement) if self._cache_enabled else None
        if cached_id is not None:
            self.execution_id = cached_id
            self.from_cache = True
            logger.info("Reusing cached query execution", execution_id=cached_id)
        else:
            with get_tracer().start_as_current_span("athena.start_query_execution"):
                response = self._call(
                    self._connection.athena.start_query_execution, **self._submission_request()
                )
            self.execution_id = response["QueryExecutionId"]
            logger.info(
                "Query submitted",
                execution_id=self.execution_id,
                output_location=self.output_location,
                result_format=self.result_format.value,
            )
        self.state = ResultSetState.SUBMITTED
        return self

    def _submission_request(self) -> dict[str, Any]:
        conn = self._connection
        result_config: dict[str, Any] = {"OutputLocation": self.output_location}
        if conn.encryption_option:
            encryption: dict[str, Any] = {"EncryptionOption": conn.encryption_option}
            if conn.kms_key:
                encryption["KmsKey"] = conn.kms_key
            result_config["EncryptionConfiguration"] = encryption
        request: dict[str, Any] = {
            "QueryString": self.statement,
            "WorkGroup": conn.work_group,
            "ResultConfiguration": result_config,
        }
        if conn.schema_name:
            request["QueryExecutionContext"] = {"Database": conn.schema_name}
        return request

    def _refresh(self) -> QueryStatus:
        response = self._call(
            self._connection.athena.get_query_execution, QueryExecutionId=self.execution_id
        )
        status = QueryStatus.from_response(response)
        self._apply_status(status)
        return status

    def _apply_status(self, status: QueryStatus) -> None:
        previous = self.state
        self.status = status
        if status.output_location:
            self.output_location = status.output_location
        self.state = _REMOTE_TO_LOCAL[status.state]
        if self.state == previous:
            return

        logger.info(
            "Query state changed",
            execution_id=self.execution_id,
            old_state=previous.value,
            new_state=self.state.value,
            reason=status.state_change_reason,
        )
        if self.state == ResultSetState.SUCCEEDED and not self.from_cache:
            if status.data_scanned_bytes:
                record_bytes_scanned(status.data_scanned_bytes)
            if self._cache_enabled:
                self._cache.insert(self.statement, status.execution_id)

    def poll(self) -> QueryStatus:
        """Block until the execution reaches a terminal state.

        Returns:
            The terminal status. FAILED and CANCELLED are returned, not raised.

        Raises:
            QueryInterruptedError: If polling is interrupted. The remote query is
                stopped first when the connection asks for it; the result set
                stays valid and can be polled again.
            RemoteCallError: If a status request keeps failing.
        """
        self._check_valid()
        if self.state == ResultSetState.CREATED:
            self.send()
        if self.status is not None and self.status.state.is_terminal:
            return self.status

        conn = self._connection
        started = time.monotonic()
        attempt = 0
        increment_active_polls()
        try:
            with get_tracer().start_as_current_span("athena.poll") as span:
                span.set_attribute("athena.execution_id", self.execution_id or "")
                while True:
                    status = self._refresh()
                    if status.state.is_terminal:
                        break
                    time.sleep(poll_delay(attempt, conn.poll_interval, conn.max_poll_interval))
                    attempt += 1
        except KeyboardInterrupt as e:
            record_query_duration(time.monotonic() - started, "interrupted")
            self._interrupted(e)
        finally:
            decrement_active_polls()

        record_query_duration(time.monotonic() - started, status.state.value.lower())
        return status

    def _interrupted(self, exc: KeyboardInterrupt) -> None:
        if not self._connection.keyboard_interrupt:
            message = f"Query '{self.execution_id}' is still running on Athena."
        else:
            try:
                self._call(self._connection.athena.stop_query_execution, QueryExecutionId=self.execution_id)
            except (Exception, KeyboardInterrupt) as e:
                message = f"Query '{self.execution_id}' was interrupted but could not be cancelled."
                warnings.warn(f"{message} {e!r}", UserWarning, stacklevel=3)
                logger.warning("Failed to cancel query", execution_id=self.execution_id, error=repr(e))
            else:
                message = f"Query '{self.execution_id}' has been cancelled by user."
                logger.info("Query cancelled after interrupt", execution_id=self.execution_id)
        raise QueryInterruptedError(message, self.execution_id, self.status) from exc

    def has_completed(self) -> bool:
        """Check once, without blocking, whether the execution has finished."""
        self._check_valid()
        if self.state == ResultSetState.CREATED:
            self.send()
        if self.status is not None and self.status.state.is_terminal:
            return True
        return self._refresh().state.is_terminal

    def raise_for_status(self) -> None:
        """Raise ``QueryExecutionError`` if the execution FAILED."""
        if self.status is not None and self.status.state == QueryState.FAILED:
            raise QueryExecutionError(
                self.status.execution_id, self.status.state, self.status.state_change_reason
            )

    def _get_fetcher(self) -> Fetcher:
        if self._fetcher is None:
            if self.status is None:
                raise InvalidStateError("Query has not been submitted")
            self._fetcher = make_fetcher(
                self.result_format,
                athena=self._connection.athena,
                s3=self._connection.s3,
                status=self.status,
                call=self._call,
            )
        return self._fetcher

    def schema(self) -> pa.Schema:
        """Column names and types of the output, without consuming rows."""
        self._check_valid()
        self.poll()
        self.raise_for_status()
        if self.state == ResultSetState.CANCELLED:
            return pa.schema([])
        return self._get_fetcher().schema

    def column_info(self) -> list[ColumnInfo]:
        """Declared columns of the output.

        Inline results report the Athena types; columnar results report the
        Arrow types of their files.
        """
        self._check_valid()
        self.poll()
        self.raise_for_status()
        if self.state == ResultSetState.CANCELLED:
            return []
        fetcher = self._get_fetcher()
        if isinstance(fetcher, InlineFetcher):
            return list(fetcher.columns)
        return [ColumnInfo(field.name, str(field.type)) for field in fetcher.schema]

    def fetch(self, n: int = -1) -> pa.Table:
        """Fetch the next ``n`` rows, polling to completion first.

        Args:
            n: ``-1`` for every remaining row, ``0`` for an empty table that
                still carries the schema, a positive number for up to that
                many rows.

        Returns:
            The rows as an Arrow table. A cancelled query yields an empty table.

        Raises:
            QueryExecutionError: If the query FAILED.
            InvalidResultSetError: If the result set has been cleared.
        """
        if not isinstance(n, int) or n < -1:
            raise ValueError("n must be -1, 0 or a positive integer")
        self._check_valid()
        self.poll()
        self.raise_for_status()
        if self.state == ResultSetState.CANCELLED:
            return pa.table({})

        table = self._get_fetcher().fetch(n)
        self._row_count += table.num_rows
        record_query_rows(table.num_rows)
        return table

    @property
    def exhausted(self) -> bool:
        """True once every row has been fetched."""
        if self.state == ResultSetState.CANCELLED:
            return True
        return self._fetcher is not None and self._fetcher.exhausted

    def statistics(self) -> QueryStatistics:
        """Statistics from the last known status and the rows fetched so far."""
        self._check_valid()
        if self.status is None and self.execution_id is not None:
            self._refresh()
        return QueryStatistics.from_status(self.status, self._row_count)

    def get_info(self) -> dict[str, Any]:
        self._check_valid()
        return {
            "statement": self.statement,
            "execution_id": self.execution_id,
            "state": self.state.value,
            "output_location": self.output_location,
            "result_format": self.result_format.value,
            "from_cache": self.from_cache,
            "row_count": self._row_count,
            "state_change_reason": self.status.state_change_reason if self.status else None,
        }

    def clear(self) -> None:
        """Release the result set.

        Buffered rows are dropped. While query caching is disabled the output
        object and its ``.metadata`` companion are deleted from S3; a failed
        deletion only warns. While caching is enabled the output stays so a
        later cache hit can read it.
        """
        if self.state == ResultSetState.CLEARED:
            warnings.warn("Result set already cleared.", UserWarning, stacklevel=2)
            return

        if self._fetcher is not None:
            self._fetcher.close()
            self._fetcher = None

        if (
            not self._cache.enabled
            and self.execution_id is not None
            and self.output_location
            and self._connection.is_valid()
        ):
            self._delete_output()

        self.state = ResultSetState.CLEARED
        logger.debug("Result set cleared", execution_id=self.execution_id)

    def _output_object(self) -> str:
        if self.status is not None and self.status.output_location:
            return self.status.output_location
        return join_s3_uri(self.output_location, f"{self.execution_id}.csv")

    def _delete_output(self) -> None:
        output = self._output_object()
        bucket, key = parse_s3_uri(output)
        delete = {"Objects": [{"Key": key}, {"Key": f"{key}.metadata"}], "Quiet": True}
        try:
            response = self._call(self._connection.s3.delete_objects, Bucket=bucket, Delete=delete)
        except RemoteCallError as e:
            errors = [str(e)]
        else:
            errors = [f"{err.get('Key')}: {err.get('Code')}" for err in response.get("Errors", [])]

        if errors:
            logger.warning(
                "Failed to delete query output",
                execution_id=self.execution_id,
                output_location=output,
                errors=errors,
            )
            warnings.warn(
                f"Could not remove query output {output} ({'; '.join(errors)}). {CACHE_HINT}",
                UserWarning,
                stacklevel=3,
            )
