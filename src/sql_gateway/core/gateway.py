"""Request pipeline for SQL Gateway.

acquire -> execute -> release -> encode. The executor materializes every
row before returning, so the connection goes back to the pool before the
first output byte is written. Acquisition and query failures therefore
never leave partial output behind; only encoding can fail mid-stream.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sql_gateway.core.executor import execute
from sql_gateway.core.logging import get_logger
from sql_gateway.core.provisioner import ConnectionProvisioner
from sql_gateway.encoding.envelope import ResultEncoder

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from sql_gateway.core.config import ResolvedConfig
    from sql_gateway.core.models import QueryResult
    from sql_gateway.encoding.envelope import EnvelopeWriter, Sink


class QueryGateway:
    """Runs statements for one data source and encodes their results.

    Safe to share across threads: the pool is the only shared state.
    """

    def __init__(
        self,
        provisioner: ConnectionProvisioner,
        encoder: ResultEncoder | None = None,
    ) -> None:
        self.provisioner = provisioner
        if encoder is None:
            encoder = ResultEncoder(provisioner.driver.type_table)
        self.encoder = encoder

    @classmethod
    def from_config(cls, config: ResolvedConfig) -> QueryGateway:
        return cls(ConnectionProvisioner.from_config(config))

    def __enter__(self) -> QueryGateway:
        self.provisioner.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def run(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Execute a statement on a borrowed connection."""
        log = get_logger(__name__)
        with self.provisioner.connection() as handle:
            result = execute(handle, sql, params)
        log.info(
            "query executed",
            engine=self.provisioner.descriptor.engine,
            rows=result.row_count,
            columns=len(result.columns),
        )
        return result

    def query(self, sql: str, params: Sequence[Any], sink: Sink) -> EnvelopeWriter:
        """Execute and write the result document to ``sink``."""
        result = self.run(sql, params)
        return self.encoder.encode(result, sink)

    def stream(self, sql: str, params: Sequence[Any] = ()) -> Iterator[bytes]:
        """Execute now and return an iterator over the encoded document."""
        result = self.run(sql, params)
        return self.encoder.iter_chunks(result)

    def close(self) -> None:
        self.provisioner.close()
