"""Connection to Athena.

A connection owns the boto3 clients (Athena, S3, Glue), the default output
location and the polling policy. Result sets borrow all of these; closing the
connection invalidates every result set created from it.
"""

from __future__ import annotations

import warnings
from dataclasses import asdict
from typing import Any

import boto3
import pyarrow as pa
from botocore.exceptions import BotoCoreError, ClientError

from athena_client import __version__
from athena_client.catalog.service import CatalogService
from athena_client.config import get_settings
from athena_client.models.catalog import TableSummary
from athena_client.observability import get_logger
from athena_client.query.cache import QueryCache, get_query_cache
from athena_client.query.models import (
    ConfigurationError,
    ConnectionClosedError,
    ResultFormat,
)
from athena_client.query.result_set import ResultSet

logger = get_logger(__name__)


class Connection:
    """An open session against Athena.

    Args:
        athena: boto3 Athena client.
        s3: boto3 S3 client.
        glue: boto3 Glue client.
        s3_staging_dir: Default output location for query results.
        work_group: Work group queries are submitted to.
        schema_name: Default database.
        poll_interval: Fixed seconds between status polls; None backs off
            exponentially up to ``max_poll_interval``.
        max_poll_interval: Upper bound of the backoff delay.
        keyboard_interrupt: Stop the remote query when polling is interrupted.
        encryption_option: Result encryption option, e.g. ``SSE_S3``.
        kms_key: KMS key for ``SSE_KMS``/``CSE_KMS``.
        cache: Query cache to use; defaults to the process-wide cache.
        region_name: Region of the clients, reported by ``get_info``.
        profile_name: Profile of the clients, reported by ``get_info``.
    """

    def __init__(
        self,
        *,
        athena: Any,
        s3: Any,
        glue: Any,
        s3_staging_dir: str,
        work_group: str = "primary",
        schema_name: str = "default",
        poll_interval: float | None = None,
        max_poll_interval: float = 10.0,
        keyboard_interrupt: bool = True,
        encryption_option: str | None = None,
        kms_key: str | None = None,
        cache: QueryCache | None = None,
        region_name: str | None = None,
        profile_name: str | None = None,
    ) -> None:
        if not s3_staging_dir:
            raise ConfigurationError("s3_staging_dir is required")
        self.athena = athena
        self.s3 = s3
        self.glue = glue
        self.s3_staging_dir = s3_staging_dir
        self.work_group = work_group
        self.schema_name = schema_name
        self.poll_interval = poll_interval
        self.max_poll_interval = max_poll_interval
        self.keyboard_interrupt = keyboard_interrupt
        self.encryption_option = encryption_option
        self.kms_key = kms_key
        self.cache = cache if cache is not None else get_query_cache()
        self.region_name = region_name
        self.profile_name = profile_name
        self.catalog = CatalogService(glue, default_schema=schema_name)
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<Connection work_group={self.work_group!r} {state}>"

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self._closed:
            self.close()

    def is_valid(self) -> bool:
        """True until ``close()`` is called."""
        return not self._closed

    def _check_valid(self) -> None:
        if self._closed:
            raise ConnectionClosedError()

    def close(self) -> None:
        """Close the connection and drop its clients. Closing twice only warns."""
        if self._closed:
            warnings.warn("Connection already closed.", UserWarning, stacklevel=2)
            return
        self._closed = True
        self.athena = self.s3 = self.glue = None
        self.catalog = CatalogService(None, default_schema=self.schema_name)
        logger.debug("Connection closed", work_group=self.work_group)

    def send_query(
        self,
        statement: str,
        *,
        output_location: str | None = None,
        result_format: ResultFormat | None = None,
    ) -> ResultSet:
        """Submit ``statement`` and return without waiting for it to finish.

        Args:
            statement: SQL to run.
            output_location: Overrides the connection's ``s3_staging_dir``.
            result_format: How to read the output; detected from the statement
                when omitted.

        Returns:
            A submitted result set. Polling happens on ``poll``/``fetch``.
        """
        self._check_valid()
        result_set = ResultSet(
            self, statement, output_location=output_location, result_format=result_format
        )
        return result_set.send()

    send_statement = send_query

    def execute(
        self,
        statement: str,
        *,
        output_location: str | None = None,
        result_format: ResultFormat | None = None,
    ) -> ResultSet:
        """Submit ``statement`` and block until it finishes.

        Raises:
            QueryExecutionError: If Athena reports the query as FAILED.
        """
        result_set = self.send_query(
            statement, output_location=output_location, result_format=result_format
        )
        result_set.poll()
        result_set.raise_for_status()
        return result_set

    def get_query(self, statement: str, *, statistics: bool = False) -> pa.Table:
        """Run ``statement``, fetch every row and clear the result set."""
        self._check_valid()
        result_set = self.send_query(statement)
        try:
            table = result_set.fetch(-1)
            if statistics:
                logger.info("Query statistics", **asdict(result_set.statistics()))
        finally:
            result_set.clear()
        return table

    def get_info(self) -> dict[str, Any]:
        """Connection metadata and library versions."""
        self._check_valid()
        return {
            "profile_name": self.profile_name,
            "region_name": self.region_name,
            "s3_staging": self.s3_staging_dir,
            "dbms.name": self.schema_name,
            "work_group": self.work_group,
            "poll_interval": self.poll_interval,
            "encryption_option": self.encryption_option,
            "kms_key": self.kms_key,
            "keyboard_interrupt": self.keyboard_interrupt,
            "cache_size": self.cache.capacity,
            "boto3": boto3.__version__,
            "athena_client": __version__,
        }

    def list_tables(self, schema: str | None = None) -> list[str]:
        """Table names in ``schema``, or in every database when None."""
        self._check_valid()
        return self.catalog.list_tables(schema)

    def get_tables(self, schema: str | None = None) -> list[TableSummary]:
        """Tables with their database and type."""
        self._check_valid()
        return self.catalog.get_tables(schema)

    def list_fields(self, name: str) -> list[str]:
        """Column names of ``name`` (``db.table`` or a table in the default schema)."""
        self._check_valid()
        return self.catalog.list_fields(name).names

    def exists_table(self, name: str) -> bool:
        self._check_valid()
        return self.catalog.exists_table(name)

    def get_partition(self, name: str) -> pa.Table:
        """Partitions of ``name`` as reported by ``SHOW PARTITIONS``."""
        schema, table = self.catalog.split_name(name)
        return self.get_query(f"SHOW PARTITIONS {schema}.{table}")

    def show_create_table(self, name: str) -> str:
        """DDL of ``name`` as reported by ``SHOW CREATE TABLE``."""
        schema, table = self.catalog.split_name(name)
        result = self.get_query(f"SHOW CREATE TABLE {schema}.{table}")
        if result.num_columns == 0:
            return ""
        return "\n".join(line or "" for line in result.column(0).to_pylist())


def _work_group_output_location(athena: Any, work_group: str) -> str | None:
    try:
        response = athena.get_work_group(WorkGroup=work_group)
    except (ClientError, BotoCoreError) as e:
        logger.warning("Could not read work group configuration", work_group=work_group, error=str(e))
        return None
    return (
        response.get("WorkGroup", {})
        .get("Configuration", {})
        .get("ResultConfiguration", {})
        .get("OutputLocation")
    )


def connect(
    *,
    s3_staging_dir: str | None = None,
    work_group: str | None = None,
    schema_name: str | None = None,
    poll_interval: float | None = None,
    keyboard_interrupt: bool | None = None,
    encryption_option: str | None = None,
    kms_key: str | None = None,
    region_name: str | None = None,
    profile_name: str | None = None,
    aws_access_key_id: str | None = None,
    aws_secret_access_key: str | None = None,
    aws_session_token: str | None = None,
    cache: QueryCache | None = None,
) -> Connection:
    """Open a connection, filling unset arguments from settings.

    The output location is taken from ``s3_staging_dir``, then the
    configured/``AWS_ATHENA_S3_STAGING_DIR`` value, then the work group's own
    result configuration.

    Raises:
        ConfigurationError: If no output location can be found.
    """
    settings = get_settings()
    athena_config = settings.athena
    aws_config = settings.aws

    session_kwargs = {
        "region_name": region_name or aws_config.region_name,
        "profile_name": profile_name or aws_config.profile_name,
        "aws_access_key_id": aws_access_key_id or aws_config.aws_access_key_id,
        "aws_secret_access_key": aws_secret_access_key or aws_config.aws_secret_access_key,
        "aws_session_token": aws_session_token or aws_config.aws_session_token,
    }
    session = boto3.Session(**{k: v for k, v in session_kwargs.items() if v is not None})

    athena = session.client("athena")
    s3 = session.client("s3")
    glue = session.client("glue")

    work_group = work_group or athena_config.work_group
    staging = s3_staging_dir or settings.s3_staging_dir
    if not staging:
        staging = _work_group_output_location(athena, work_group)
    if not staging:
        raise ConfigurationError(
            "Please set `s3_staging_dir` as an argument, in ATHENA_CLIENT_ATHENA__S3_STAGING_DIR "
            "or AWS_ATHENA_S3_STAGING_DIR, or configure an output location on the work group."
        )

    connection = Connection(
        athena=athena,
        s3=s3,
        glue=glue,
        s3_staging_dir=staging,
        work_group=work_group,
        schema_name=schema_name or athena_config.schema_name,
        poll_interval=poll_interval if poll_interval is not None else athena_config.poll_interval,
        max_poll_interval=athena_config.max_poll_interval,
        keyboard_interrupt=(
            keyboard_interrupt if keyboard_interrupt is not None else athena_config.keyboard_interrupt
        ),
        encryption_option=encryption_option or athena_config.encryption_option,
        kms_key=kms_key or athena_config.kms_key,
        cache=cache,
        region_name=session.region_name,
        profile_name=session.profile_name,
    )
    logger.info("Connected to Athena", work_group=work_group, s3_staging_dir=staging)
    return connection
