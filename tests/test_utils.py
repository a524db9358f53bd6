"""Tests for S3 URI and statement helpers."""

from __future__ import annotations

import pytest

from athena_client.query.models import ResultFormat
from athena_client.utils import detect_result_format, join_s3_uri, parse_s3_uri


class TestParseS3Uri:
    """Tests for parse_s3_uri."""

    def test_bucket_and_key(self) -> None:
        assert parse_s3_uri("s3://bucket/path/to/file.csv") == ("bucket", "path/to/file.csv")

    def test_bucket_only(self) -> None:
        assert parse_s3_uri("s3://bucket") == ("bucket", "")
        assert parse_s3_uri("s3://bucket/") == ("bucket", "")

    @pytest.mark.parametrize("uri", ["", "bucket/key", "https://bucket/key"])
    def test_invalid(self, uri: str) -> None:
        with pytest.raises(ValueError, match="Invalid S3 URI"):
            parse_s3_uri(uri)


def test_join_s3_uri() -> None:
    assert join_s3_uri("s3://bucket/staging/", "q.csv") == "s3://bucket/staging/q.csv"
    assert join_s3_uri("s3://bucket/staging", "q.csv") == "s3://bucket/staging/q.csv"


class TestDetectResultFormat:
    """Tests for detect_result_format."""

    @pytest.mark.parametrize(
        ("statement", "expected"),
        [
            ("SELECT * FROM t", ResultFormat.INLINE),
            ("SHOW PARTITIONS db.t", ResultFormat.INLINE),
            ("CREATE TABLE db.t2 AS SELECT * FROM t", ResultFormat.PARQUET),
            (
                "create table db.t2\nWITH (format = 'ORC', external_location = 's3://b/p/')\nas select 1",
                ResultFormat.ORC,
            ),
            ("CREATE TABLE db.t2 WITH (format = 'JSON') AS SELECT 1", ResultFormat.INLINE),
            ("UNLOAD (SELECT * FROM t) TO 's3://b/p/' WITH (format = 'PARQUET')", ResultFormat.PARQUET),
            ("unload (select 1) to 's3://b/p/'", ResultFormat.PARQUET),
            ("CREATE TABLE db.t (id int) LOCATION 's3://b/p/'", ResultFormat.INLINE),
        ],
    )
    def test_detection(self, statement: str, expected: ResultFormat) -> None:
        assert detect_result_format(statement) == expected
