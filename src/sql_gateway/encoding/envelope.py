"""Streaming JSON encoder for query results.

Writes ``{"data":[<row>,...],"schema":{...}}`` incrementally: one row is
serialized at a time and the schema block is appended after the data
array, so the full document is never held as a single string.

If a write fails after the data phase has begun, the output is a
truncated, invalid document. The writer never reports such a document
as complete, and callers must treat the response as failed.
"""

from __future__ import annotations

import datetime
import decimal
import json
import math
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from sql_gateway.core.exceptions import EncodingError
from sql_gateway.core.logging import get_logger
from sql_gateway.core.models import Extension
from sql_gateway.core.types import ODBC_TYPES

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from sql_gateway.core.models import ColumnDescriptor, QueryResult, TypeDescriptor
    from sql_gateway.core.types import TypeTable

_DATA_OPEN = b'{"data":['
_ROW_SEPARATOR = b","
_DATA_CLOSE = b"]"
_SCHEMA_OPEN = b',"schema":'
_DOCUMENT_CLOSE = b"}"


class Sink(Protocol):
    """Append-only byte destination; a blocking write is backpressure."""

    def write(self, data: bytes, /) -> Any: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, decimal.Decimal):
        return float(value) if value.is_finite() else None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"type": "Buffer", "data": list(bytes(value))}
    if isinstance(value, (uuid.UUID, datetime.timedelta)):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _plain_value(value: Any) -> Any:
    # JSON has no NaN or Infinity; they become null, at any depth.
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, (list, tuple)):
        return [_plain_value(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain_value(item) for key, item in value.items()}
    return value


def _bigint_value(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    # int8[] values arrive as (nested) lists.
    if isinstance(value, (list, tuple)):
        return [_bigint_value(item) for item in value]
    return _plain_value(value)


def _holds_bigints(descriptor: TypeDescriptor) -> bool:
    if descriptor.extension is Extension.BIGINT:
        return True
    items = descriptor.items
    return items is not None and items.extension is Extension.BIGINT


def _dumps(obj: Any) -> bytes:
    return json.dumps(
        obj,
        default=_json_default,
        ensure_ascii=False,
        allow_nan=False,
        separators=(",", ":"),
    ).encode("utf-8")


class _Phase(Enum):
    PENDING = "pending"
    DATA = "data"
    SCHEMA = "schema"
    COMPLETE = "complete"
    FAILED = "failed"


class EnvelopeWriter:
    """Incremental writer for the two-phase result document.

    Calls must follow ``begin_data``, ``write_row``..., ``end_data``,
    ``write_schema``. Any sink failure moves the writer to a failed state;
    ``completed`` is only True once the document has been closed.
    """

    def __init__(self, sink: Sink) -> None:
        self._sink = sink
        self._phase = _Phase.PENDING
        self.rows_written = 0
        self.bytes_written = 0

    @property
    def completed(self) -> bool:
        return self._phase is _Phase.COMPLETE

    @property
    def failed(self) -> bool:
        return self._phase is _Phase.FAILED

    def _expect(self, phase: _Phase, action: str) -> None:
        if self._phase is not phase:
            msg = f"Cannot {action} while envelope is {self._phase.value}"
            raise RuntimeError(msg)

    def _write(self, chunk: bytes) -> None:
        try:
            self._sink.write(chunk)
        except (OSError, ValueError) as e:
            self._phase = _Phase.FAILED
            msg = f"Failed writing result: {e}"
            raise EncodingError(msg) from e
        self.bytes_written += len(chunk)

    def begin_data(self) -> None:
        self._expect(_Phase.PENDING, "begin data")
        self._write(_DATA_OPEN)
        self._phase = _Phase.DATA

    def write_row(self, chunk: bytes) -> None:
        self._expect(_Phase.DATA, "write a row")
        if self.rows_written:
            self._write(_ROW_SEPARATOR + chunk)
        else:
            self._write(chunk)
        self.rows_written += 1

    def end_data(self) -> None:
        self._expect(_Phase.DATA, "end data")
        self._write(_DATA_CLOSE)
        self._phase = _Phase.SCHEMA

    def write_schema(self, chunk: bytes) -> None:
        self._expect(_Phase.SCHEMA, "write the schema")
        self._write(_SCHEMA_OPEN + chunk + _DOCUMENT_CLOSE)
        self._phase = _Phase.COMPLETE


class _ChunkBuffer:
    """Sink that holds written chunks until they are drained."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes, /) -> None:
        self._chunks.append(data)

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def build_schema(
    columns: Sequence[ColumnDescriptor], table: TypeTable = ODBC_TYPES
) -> dict[str, Any]:
    """JSON-Schema for one row, properties in column order."""
    descriptors = [table.lookup(c.type_code, c.type_hint) for c in columns]
    return _schema_from(columns, descriptors)


def _schema_from(
    columns: Sequence[ColumnDescriptor], descriptors: Sequence[TypeDescriptor]
) -> dict[str, Any]:
    properties = {
        col.name: descriptor.to_schema()
        for col, descriptor in zip(columns, descriptors, strict=True)
    }
    return {
        "type": "array",
        "items": {"type": "object", "properties": properties},
    }


class ResultEncoder:
    """Encodes a QueryResult as the data + schema document.

    ``encode`` pushes into a sink; ``iter_chunks`` yields the same bytes
    for pull-based transports such as a streaming HTTP response.
    """

    def __init__(self, table: TypeTable = ODBC_TYPES) -> None:
        self.table = table

    def encode(self, result: QueryResult, sink: Sink) -> EnvelopeWriter:
        """Write the whole document to ``sink``.

        Raises EncodingError if the sink fails or a value has no JSON form.
        """
        writer = EnvelopeWriter(sink)
        for _ in self._steps(result, writer):
            pass
        return writer

    def iter_chunks(self, result: QueryResult) -> Iterator[bytes]:
        """Yield the document lazily, one row (or phase marker) at a time."""
        buffer = _ChunkBuffer()
        writer = EnvelopeWriter(buffer)
        for _ in self._steps(result, writer):
            chunk = buffer.drain()
            if chunk:
                yield chunk

    def _steps(self, result: QueryResult, writer: EnvelopeWriter) -> Iterator[None]:
        log = get_logger(__name__)
        columns = result.columns
        descriptors = [self.table.lookup(c.type_code, c.type_hint) for c in columns]
        names = [c.name for c in columns]
        converters: list[Callable[[Any], Any]] = [
            _bigint_value if _holds_bigints(d) else _plain_value for d in descriptors
        ]

        writer.begin_data()
        yield
        for row in result.rows:
            writer.write_row(self._encode_row(names, converters, row))
            yield
        writer.end_data()
        yield

        writer.write_schema(_dumps(_schema_from(columns, descriptors)))
        log.debug(
            "result encoded",
            rows=writer.rows_written,
            bytes=writer.bytes_written,
            completed=writer.completed,
        )
        yield

    @staticmethod
    def _encode_row(
        names: Sequence[str],
        converters: Sequence[Callable[[Any], Any]],
        row: Sequence[Any],
    ) -> bytes:
        try:
            record = {
                name: None if value is None else convert(value)
                for name, convert, value in zip(names, converters, row, strict=True)
            }
            return _dumps(record)
        except (TypeError, ValueError) as e:
            msg = f"Cannot encode row as JSON: {e}"
            raise EncodingError(msg) from e
