"""Data models for SQL Gateway.

Pydantic models for the shapes that cross component boundaries: the
data-source descriptor built by the provisioner, the column metadata and
rows returned by the executor, and the per-column type descriptors the
encoder turns into the schema block.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JsonType(StrEnum):
    """JSON type of a column value; every column is also nullable."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMBER = "number"
    STRING = "string"
    OBJECT = "object"
    ARRAY = "array"


class Extension(StrEnum):
    """Marks a JSON value that stands in for a richer source type."""

    BIGINT = "bigint"
    BUFFER = "buffer"
    DATE = "date"


class TypeDescriptor(BaseModel):
    """JSON-Schema fragment for the values of one column."""

    model_config = ConfigDict(frozen=True)

    json_type: JsonType
    extension: Extension | None = None
    items: TypeDescriptor | None = None

    def to_schema(self) -> dict[str, Any]:
        """Render as ``{"type": ["null", <json_type>]}`` plus markers."""
        schema: dict[str, Any] = {"type": ["null", self.json_type.value]}
        if self.extension is not None:
            schema[self.extension.value] = True
        if self.items is not None:
            schema["items"] = self.items.to_schema()
        return schema


class ColumnDescriptor(BaseModel):
    """Metadata for a single result column."""

    model_config = ConfigDict(frozen=True)

    name: str
    type_code: int
    type_hint: str | None = None


class QueryResult(BaseModel):
    """Fully materialized result of one statement.

    Rows are plain tuples aligned positionally with ``columns``; any
    driver-specific row metadata has been stripped by the executor.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    columns: list[ColumnDescriptor]
    rows: list[tuple[Any, ...]]
    row_count: int


class QueryRequest(BaseModel):
    """Decoded request body: one statement and its positional parameters."""

    sql: str = Field(min_length=1)
    params: list[Any] = Field(default_factory=list)


class DataSourceDescriptor(BaseModel):
    """Driver-level connection description for one data source.

    ``options`` holds the vendor connection options (driver path, transport,
    auth mechanism, Kerberos realm...) merged with the URL-derived fields.
    """

    model_config = ConfigDict(frozen=True)

    engine: str
    host: str
    port: int | None = None
    path: str = ""
    options: dict[str, Any] = Field(default_factory=dict)
    connect_timeout: int = 10
    query_timeout: float | None = None
