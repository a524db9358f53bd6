"""Client for running SQL on Amazon Athena and reading the results as Arrow tables."""

__version__ = "0.1.0"

from athena_client.connection import Connection, connect  # noqa: E402
from athena_client.options import DriverOptions, get_options, set_options  # noqa: E402
from athena_client.query.cache import QueryCache, get_query_cache  # noqa: E402
from athena_client.query.models import (  # noqa: E402
    AthenaClientError,
    ConfigurationError,
    ConnectionClosedError,
    InvalidResultSetError,
    InvalidStateError,
    QueryExecutionError,
    QueryInterruptedError,
    QueryState,
    QueryStatistics,
    RemoteCallError,
    ResultFormat,
    ResultSetState,
)
from athena_client.query.result_set import ResultSet  # noqa: E402

__all__ = [
    "AthenaClientError",
    "ConfigurationError",
    "Connection",
    "ConnectionClosedError",
    "DriverOptions",
    "InvalidResultSetError",
    "InvalidStateError",
    "QueryCache",
    "QueryExecutionError",
    "QueryInterruptedError",
    "QueryState",
    "QueryStatistics",
    "RemoteCallError",
    "ResultFormat",
    "ResultSet",
    "ResultSetState",
    "__version__",
    "connect",
    "get_options",
    "get_query_cache",
    "set_options",
]
