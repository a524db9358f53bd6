"""Data models for query execution.

Provides:
- Remote query states and local result set states
- A parsed snapshot of the remote status payload
- Derived query statistics
- The error hierarchy raised by the client
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class QueryState(str, Enum):
    """Athena query execution states."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self not in (QueryState.QUEUED, QueryState.RUNNING)


class ResultSetState(str, Enum):
    """Lifecycle of a result set on the client side."""

    CREATED = "created"
    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    CLEARED = "cleared"


class ResultFormat(str, Enum):
    """How the output of a query is read back."""

    INLINE = "inline"
    PARQUET = "parquet"
    ORC = "orc"

    @property
    def is_columnar(self) -> bool:
        return self is not ResultFormat.INLINE


@dataclass(frozen=True)
class QueryStatus:
    """Last known remote status of one execution."""

    execution_id: str
    state: QueryState
    state_change_reason: str | None = None
    statement_type: str | None = None
    output_location: str | None = None
    data_manifest_location: str | None = None
    data_scanned_bytes: int | None = None
    engine_execution_time_ms: int | None = None
    total_execution_time_ms: int | None = None
    query_queue_time_ms: int | None = None
    query_planning_time_ms: int | None = None
    submission_date_time: datetime | None = None
    completion_date_time: datetime | None = None

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> QueryStatus:
        """Build a status from a ``get_query_execution`` response."""
        execution = response["QueryExecution"]
        status = execution.get("Status", {})
        stats = execution.get("Statistics", {})
        result_config = execution.get("ResultConfiguration", {})
        return cls(
            execution_id=execution["QueryExecutionId"],
            state=QueryState(status["State"]),
            state_change_reason=status.get("StateChangeReason"),
            statement_type=execution.get("StatementType"),
            output_location=result_config.get("OutputLocation"),
            data_manifest_location=stats.get("DataManifestLocation"),
            data_scanned_bytes=stats.get("DataScannedInBytes"),
            engine_execution_time_ms=stats.get("EngineExecutionTimeInMillis"),
            total_execution_time_ms=stats.get("TotalExecutionTimeInMillis"),
            query_queue_time_ms=stats.get("QueryQueueTimeInMillis"),
            query_planning_time_ms=stats.get("QueryPlanningTimeInMillis"),
            submission_date_time=status.get("SubmissionDateTime"),
            completion_date_time=status.get("CompletionDateTime"),
        )


@dataclass(frozen=True)
class QueryStatistics:
    """Read-only statistics snapshot of a result set."""

    execution_id: str | None
    state: QueryState | None
    data_scanned_bytes: int
    engine_execution_time_ms: int
    total_execution_time_ms: int
    query_queue_time_ms: int
    query_planning_time_ms: int
    row_count: int

    @classmethod
    def from_status(cls, status: QueryStatus | None, row_count: int) -> QueryStatistics:
        if status is None:
            return cls(None, None, 0, 0, 0, 0, 0, row_count)
        return cls(
            execution_id=status.execution_id,
            state=status.state,
            data_scanned_bytes=status.data_scanned_bytes or 0,
            engine_execution_time_ms=status.engine_execution_time_ms or 0,
            total_execution_time_ms=status.total_execution_time_ms or 0,
            query_queue_time_ms=status.query_queue_time_ms or 0,
            query_planning_time_ms=status.query_planning_time_ms or 0,
            row_count=row_count,
        )


class AthenaClientError(Exception):
    """Base class for errors raised by the client."""


class ConfigurationError(AthenaClientError):
    """Raised when required configuration is missing or invalid."""


class RemoteCallError(AthenaClientError):
    """Raised when a remote call fails after the retry policy gave up."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


class QueryExecutionError(AthenaClientError):
    """Raised when the remote service reports the query as FAILED."""

    def __init__(self, execution_id: str, state: QueryState, reason: str | None) -> None:
        super().__init__(reason or f"Query {execution_id} {state.value}")
        self.execution_id = execution_id
        self.state = state
        self.reason = reason


class QueryInterruptedError(AthenaClientError):
    """Raised when polling is interrupted; carries the last known status."""

    def __init__(self, message: str, execution_id: str | None, status: QueryStatus | None) -> None:
        super().__init__(message)
        self.execution_id = execution_id
        self.status = status


class InvalidStateError(AthenaClientError):
    """Raised for operations on a closed connection or cleared result set."""


class ConnectionClosedError(InvalidStateError):
    """Raised when using a connection after ``close()``."""

    def __init__(self) -> None:
        super().__init__("Connection already closed.")


class InvalidResultSetError(InvalidStateError):
    """Raised when using a result set after ``clear()``."""

    def __init__(self, execution_id: str | None = None) -> None:
        super().__init__(f"Invalid result set: {execution_id or 'not submitted'} has been cleared.")
        self.execution_id = execution_id
