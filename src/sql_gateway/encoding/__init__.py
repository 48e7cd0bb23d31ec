"""Result envelope encoding."""

from sql_gateway.encoding.envelope import (
    EnvelopeWriter,
    ResultEncoder,
    Sink,
    build_schema,
)

__all__ = ["EnvelopeWriter", "ResultEncoder", "Sink", "build_schema"]
