from __future__ import annotations

import re

from athena_client.query.models import ResultFormat

_S3_URI = re.compile(r"^s3://([^/]+)/?(.*)$")
_CTAS = re.compile(r"^\s*CREATE\s+TABLE\s+.+?\s+AS\s", re.IGNORECASE | re.DOTALL)
_UNLOAD = re.compile(r"^\s*UNLOAD\s*\(", re.IGNORECASE)
_FORMAT = re.compile(r"\bformat\s*=\s*'(\w+)'", re.IGNORECASE)


def parse_s3_uri(uri: str) -> tuple[str, str]:
    """Parse s3://bucket/key -> (bucket, key)."""
    m = _S3_URI.match((uri or "").strip())
    if not m:
        raise ValueError(f"Invalid S3 URI: {uri}")
    return m.group(1), m.group(2)


def join_s3_uri(prefix: str, name: str) -> str:
    return prefix.rstrip("/") + "/" + name


def detect_result_format(statement: str) -> ResultFormat:
    """Guess how the output of ``statement`` has to be read.

    CTAS and UNLOAD statements write Parquet unless another format is named;
    Parquet and ORC outputs are read as files, anything else inline.
    """
    if not (_CTAS.match(statement) or _UNLOAD.match(statement)):
        return ResultFormat.INLINE
    m = _FORMAT.search(statement)
    file_format = m.group(1).lower() if m else "parquet"
    if file_format == "parquet":
        return ResultFormat.PARQUET
    if file_format == "orc":
        return ResultFormat.ORC
    return ResultFormat.INLINE
