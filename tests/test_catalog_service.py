"""Tests for CatalogService."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from athena_client.catalog.service import CatalogService
from athena_client.query.models import RemoteCallError


def client_error(code: str, operation: str = "GetTable") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("athena_client.retry.time.sleep") as sleep:
        yield sleep


@pytest.fixture
def glue() -> MagicMock:
    client = MagicMock()
    client.get_databases.return_value = {"DatabaseList": [{"Name": "sales"}, {"Name": "hr"}]}
    tables = {
        "sales": [
            {"Name": "orders", "DatabaseName": "sales", "TableType": "EXTERNAL_TABLE"},
            {"Name": "orders_view", "DatabaseName": "sales", "TableType": "VIRTUAL_VIEW"},
        ],
        "hr": [{"Name": "staff", "DatabaseName": "hr", "TableType": "EXTERNAL_TABLE"}],
    }
    client.get_tables.side_effect = lambda DatabaseName, **kw: {"TableList": tables[DatabaseName]}  # noqa: N803
    return client


@pytest.fixture
def service(glue: MagicMock) -> CatalogService:
    return CatalogService(glue, default_schema="sales")


class TestSplitName:
    """Tests for split_name."""

    def test_qualified(self, service: CatalogService) -> None:
        assert service.split_name("hr.staff") == ("hr", "staff")

    def test_bare_name_uses_default_schema(self, service: CatalogService) -> None:
        assert service.split_name("orders") == ("sales", "orders")


class TestListDatabases:
    """Tests for list_databases."""

    def test_list_databases(self, service: CatalogService) -> None:
        assert service.list_databases() == ["sales", "hr"]

    def test_follows_next_token(self, service: CatalogService, glue: MagicMock) -> None:
        """Test that every page of a paginated listing is read."""
        glue.get_databases.side_effect = [
            {"DatabaseList": [{"Name": "a"}], "NextToken": "page-2"},
            {"DatabaseList": [{"Name": "b"}]},
        ]
        assert service.list_databases() == ["a", "b"]
        assert glue.get_databases.call_args.kwargs == {"NextToken": "page-2"}


class TestListTables:
    """Tests for list_tables and get_tables."""

    def test_single_schema(self, service: CatalogService, glue: MagicMock) -> None:
        assert service.list_tables("hr") == ["staff"]
        glue.get_databases.assert_not_called()

    def test_all_schemas(self, service: CatalogService) -> None:
        assert service.list_tables() == ["orders", "orders_view", "staff"]

    def test_get_tables(self, service: CatalogService) -> None:
        tables = service.get_tables("sales")
        assert [(t.schema_name, t.table_name, t.table_type) for t in tables] == [
            ("sales", "orders", "EXTERNAL_TABLE"),
            ("sales", "orders_view", "VIRTUAL_VIEW"),
        ]

    def test_unreadable_database_skipped(self, service: CatalogService, glue: MagicMock) -> None:
        """Test that a full listing leaves out databases the caller cannot read."""

        def get_tables(DatabaseName: str, **kwargs):  # noqa: N803
            if DatabaseName == "hr":
                raise client_error("AccessDeniedException", "GetTables")
            return {"TableList": [{"Name": "orders", "DatabaseName": "sales"}]}

        glue.get_tables.side_effect = get_tables
        assert service.list_tables() == ["orders"]

    def test_unreadable_named_database_raises(self, service: CatalogService, glue: MagicMock) -> None:
        glue.get_tables.side_effect = client_error("AccessDeniedException", "GetTables")
        with pytest.raises(RemoteCallError):
            service.list_tables("hr")

    def test_other_errors_propagate(self, service: CatalogService, glue: MagicMock) -> None:
        glue.get_tables.side_effect = client_error("InvalidInputException", "GetTables")
        with pytest.raises(RemoteCallError):
            service.list_tables()


class TestListFields:
    """Tests for list_fields."""

    def test_columns_then_partition_keys(self, service: CatalogService, glue: MagicMock) -> None:
        glue.get_table.return_value = {
            "Table": {
                "Name": "orders",
                "StorageDescriptor": {"Columns": [{"Name": "id"}, {"Name": "amount"}]},
                "PartitionKeys": [{"Name": "dt"}],
            }
        }
        fields = service.list_fields("orders")

        assert fields.columns == ["id", "amount"]
        assert fields.partition_keys == ["dt"]
        assert fields.names == ["id", "amount", "dt"]
        glue.get_table.assert_called_once_with(DatabaseName="sales", Name="orders")


class TestExistsTable:
    """Tests for exists_table."""

    def test_exists(self, service: CatalogService, glue: MagicMock) -> None:
        glue.get_table.return_value = {"Table": {"Name": "orders"}}
        assert service.exists_table("Sales.Orders")
        glue.get_table.assert_called_once_with(DatabaseName="sales", Name="orders")

    def test_missing(self, service: CatalogService, glue: MagicMock, no_sleep: MagicMock) -> None:
        """Test that a missing table is an answer and is not retried."""
        glue.get_table.side_effect = client_error("EntityNotFoundException")
        assert not service.exists_table("missing")
        glue.get_table.assert_called_once()
        no_sleep.assert_not_called()

    def test_throttling_retried(self, service: CatalogService, glue: MagicMock) -> None:
        glue.get_table.side_effect = [client_error("ThrottlingException"), {"Table": {"Name": "orders"}}]
        assert service.exists_table("orders")
        assert glue.get_table.call_count == 2

    def test_access_denied_raises(self, service: CatalogService, glue: MagicMock) -> None:
        glue.get_table.side_effect = client_error("AccessDeniedException")
        with pytest.raises(RemoteCallError, match="get_table"):
            service.exists_table("orders")

    def test_network_error_raises(self, service: CatalogService, glue: MagicMock) -> None:
        glue.get_table.side_effect = EndpointConnectionError(endpoint_url="https://glue")
        with pytest.raises(RemoteCallError):
            service.exists_table("orders")
        assert glue.get_table.call_count == 5
