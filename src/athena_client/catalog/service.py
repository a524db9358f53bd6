"""Catalog service for Glue metadata operations.

This module wraps the Glue data catalog calls the connection needs to browse
databases and tables. Every call goes through the retry helper.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from athena_client.models.catalog import TableFields, TableSummary
from athena_client.observability import get_logger
from athena_client.options import get_options
from athena_client.query.models import RemoteCallError
from athena_client.retry import error_code, remote_call, retry_api_call

logger = get_logger(__name__)

NOT_FOUND = "EntityNotFoundException"
ACCESS_DENIED = "AccessDeniedException"


class CatalogService:
    """Service for Glue catalog operations.

    Args:
        glue: A boto3 Glue client.
        default_schema: Database used when a table name carries no schema.
    """

    def __init__(self, glue: Any, default_schema: str = "default") -> None:
        self._glue = glue
        self.default_schema = default_schema

    def _call(self, func: Callable[..., Any], **kwargs: Any) -> Any:
        options = get_options()
        return remote_call(func, retry=options.retry, retry_quiet=options.retry_quiet, **kwargs)

    def _paginate(self, func: Callable[..., Any], key: str, **kwargs: Any) -> Iterator[dict[str, Any]]:
        token: str | None = None
        while True:
            request = dict(kwargs)
            if token:
                request["NextToken"] = token
            response = self._call(func, **request)
            yield from response.get(key, [])
            token = response.get("NextToken")
            if not token:
                return

    def split_name(self, name: str) -> tuple[str, str]:
        """Split ``db.table`` into its parts; bare names use the default schema."""
        if "." in name:
            schema, table = name.split(".", 1)
            return schema, table
        return self.default_schema, name

    def list_databases(self) -> list[str]:
        """List database names in the catalog."""
        return [db["Name"] for db in self._paginate(self._glue.get_databases, "DatabaseList")]

    def _tables(self, schema: str) -> list[dict[str, Any]]:
        return list(self._paginate(self._glue.get_tables, "TableList", DatabaseName=schema))

    def _tables_by_schema(self, schema: str | None) -> Iterator[tuple[str, list[dict[str, Any]]]]:
        if schema is not None:
            yield schema, self._tables(schema)
            return
        for name in self.list_databases():
            try:
                yield name, self._tables(name)
            except RemoteCallError as e:
                # Databases the caller cannot read are left out of a full listing.
                if error_code(e.__cause__) != ACCESS_DENIED:
                    raise
                logger.warning("Skipping unreadable database", schema=name, error=str(e))

    def list_tables(self, schema: str | None = None) -> list[str]:
        """List table names in ``schema``, or in every database when None."""
        return [t["Name"] for _, tables in self._tables_by_schema(schema) for t in tables]

    def get_tables(self, schema: str | None = None) -> list[TableSummary]:
        """List tables with their database and table type."""
        return [
            TableSummary(
                schema_name=t.get("DatabaseName", name),
                table_name=t["Name"],
                table_type=t.get("TableType"),
            )
            for name, tables in self._tables_by_schema(schema)
            for t in tables
        ]

    def get_table(self, name: str) -> dict[str, Any]:
        """Raw Glue table definition."""
        schema, table = self.split_name(name)
        return self._call(self._glue.get_table, DatabaseName=schema, Name=table)["Table"]

    def list_fields(self, name: str) -> TableFields:
        """Column names followed by partition key names."""
        table = self.get_table(name)
        return TableFields(
            columns=[c["Name"] for c in table.get("StorageDescriptor", {}).get("Columns", [])],
            partition_keys=[p["Name"] for p in table.get("PartitionKeys", [])],
        )

    def exists_table(self, name: str) -> bool:
        """Check whether a table exists.

        A missing table returns False without retrying; throttling and network
        errors are retried.
        """
        schema, table = self.split_name(name)
        try:
            retry_api_call(self._glue.get_table, DatabaseName=schema.lower(), Name=table.lower())
        except ClientError as e:
            if error_code(e) == NOT_FOUND:
                return False
            raise RemoteCallError("get_table", str(e)) from e
        except BotoCoreError as e:
            raise RemoteCallError("get_table", str(e)) from e
        return True
