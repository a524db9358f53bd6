"""Models package for the Athena client."""

from athena_client.models.catalog import TableFields, TableSummary

__all__ = [
    "TableFields",
    "TableSummary",
]
