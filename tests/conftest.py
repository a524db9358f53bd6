"""Shared fixtures: scripted AWS clients and a connection wired to them."""

from __future__ import annotations

import itertools
import os
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest

from athena_client.config import reset_settings
from athena_client.connection import Connection
from athena_client.observability import reset_observability
from athena_client.options import reset_options
from athena_client.query.cache import reset_query_cache

if TYPE_CHECKING:
    from collections.abc import Generator

STAGING = "s3://results-bucket/staging/"

DEFAULT_COLUMNS = [("id", "integer"), ("name", "varchar")]
DEFAULT_ROWS = [["1", "alpha"], ["2", "beta"], ["3", None]]


def column_info(name: str, type_: str, **extra: Any) -> dict[str, Any]:
    return {"Name": name, "Type": type_, "Nullable": "UNKNOWN", **extra}


def row(*values: str | None) -> dict[str, Any]:
    return {"Data": [{} if v is None else {"VarCharValue": v} for v in values]}


class FakeAthena:
    """Athena client double.

    Every submitted execution walks through ``script`` (one state per
    ``get_query_execution`` call, the last one repeating) and returns the
    rows in ``pages``.
    """

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.script: list[str] = ["SUCCEEDED"]
        self.reason: str | None = None
        self.data_scanned = 2048
        self.manifest: str | None = None
        self.columns = [column_info(n, t) for n, t in DEFAULT_COLUMNS]
        self.pages: list[list[list[str | None]]] = [
            [[n for n, _ in DEFAULT_COLUMNS], *DEFAULT_ROWS],
        ]
        self._progress: dict[str, int] = {}

        self.start_query_execution = MagicMock(side_effect=self._start)
        self.get_query_execution = MagicMock(side_effect=self._get)
        self.get_query_results = MagicMock(side_effect=self._results)
        self.stop_query_execution = MagicMock(return_value={})
        self.get_work_group = MagicMock(return_value={"WorkGroup": {"Configuration": {}}})

    def _start(self, **request: Any) -> dict[str, Any]:
        execution_id = f"query-{next(self._ids)}"
        self._progress[execution_id] = 0
        return {"QueryExecutionId": execution_id}

    def output_location(self, execution_id: str) -> str:
        return f"{STAGING}{execution_id}.csv"

    def _get(self, QueryExecutionId: str) -> dict[str, Any]:  # noqa: N803
        step = self._progress.get(QueryExecutionId, len(self.script) - 1)
        state = self.script[min(step, len(self.script) - 1)]
        self._progress[QueryExecutionId] = step + 1
        statistics: dict[str, Any] = {
            "DataScannedInBytes": self.data_scanned,
            "EngineExecutionTimeInMillis": 1200,
            "TotalExecutionTimeInMillis": 1500,
            "QueryQueueTimeInMillis": 100,
            "QueryPlanningTimeInMillis": 200,
        }
        if self.manifest:
            statistics["DataManifestLocation"] = self.manifest
        status: dict[str, Any] = {"State": state}
        if self.reason:
            status["StateChangeReason"] = self.reason
        return {
            "QueryExecution": {
                "QueryExecutionId": QueryExecutionId,
                "StatementType": "DML",
                "ResultConfiguration": {"OutputLocation": self.output_location(QueryExecutionId)},
                "Status": status,
                "Statistics": statistics,
            }
        }

    def _results(self, QueryExecutionId: str, MaxResults: int, NextToken: str | None = None) -> dict[str, Any]:  # noqa: N803
        index = int(NextToken) if NextToken else 0
        response: dict[str, Any] = {
            "ResultSet": {
                "Rows": [row(*values) for values in self.pages[index]],
                "ResultSetMetadata": {"ColumnInfo": self.columns},
            }
        }
        if index + 1 < len(self.pages):
            response["NextToken"] = str(index + 1)
        return response


@pytest.fixture(autouse=True)
def clean_state(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset global state and client environment before and after each test."""
    for key in list(os.environ):
        if key.startswith("ATHENA_CLIENT_") or key == "AWS_ATHENA_S3_STAGING_DIR":
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    reset_options()
    reset_query_cache()
    reset_observability()
    yield
    reset_settings()
    reset_options()
    reset_query_cache()
    reset_observability()


@pytest.fixture
def athena() -> FakeAthena:
    return FakeAthena()


@pytest.fixture
def s3() -> MagicMock:
    client = MagicMock()
    client.delete_objects.return_value = {"Deleted": []}
    return client


@pytest.fixture
def glue() -> MagicMock:
    return MagicMock()


@pytest.fixture
def no_sleep(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Record sleeps instead of waiting."""
    sleep = MagicMock()
    monkeypatch.setattr("athena_client.query.result_set.time.sleep", sleep)
    return sleep


@pytest.fixture
def connection(athena: FakeAthena, s3: MagicMock, glue: MagicMock, no_sleep: MagicMock) -> Connection:
    return Connection(
        athena=athena,
        s3=s3,
        glue=glue,
        s3_staging_dir=STAGING,
        schema_name="sales",
    )
