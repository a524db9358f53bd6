"""Catalog data models for database and table browsing."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TableSummary(BaseModel):
    """A table registered in the Glue data catalog."""

    schema_name: str = Field(..., description="Database (schema) the table belongs to")
    table_name: str = Field(..., description="Table name")
    table_type: str | None = Field(
        default=None,
        description="Glue table type",
        examples=["EXTERNAL_TABLE", "VIRTUAL_VIEW"],
    )


class TableFields(BaseModel):
    """Column and partition key names of a table."""

    columns: list[str] = Field(default_factory=list, description="Regular columns, in order")
    partition_keys: list[str] = Field(default_factory=list, description="Partition columns")

    @property
    def names(self) -> list[str]:
        return [*self.columns, *self.partition_keys]
