"""Driver protocol shared by all engines.

A driver turns a DataSourceDescriptor into DB-API connections (directly or
through a pool), runs a statement on a cursor, describes the result
columns as ColumnDescriptors and classifies native driver errors into
the gateway hierarchy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from urllib.parse import ParseResult

    from sql_gateway.core.config import ResolvedConfig
    from sql_gateway.core.exceptions import GatewayError
    from sql_gateway.core.models import ColumnDescriptor, DataSourceDescriptor
    from sql_gateway.core.types import TypeTable


@runtime_checkable
class Pool(Protocol):
    """Bounded connection pool with blocking acquisition."""

    def getconn(self, timeout: float | None = None) -> Any: ...

    def putconn(self, conn: Any) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class Driver(Protocol):
    """Engine-specific connection, execution and metadata handling."""

    engine: str
    schemes: frozenset[str]
    type_table: TypeTable
    # Option keys whose values must never be logged.
    secret_options: frozenset[str]

    def build_options(
        self, parsed: ParseResult, config: ResolvedConfig
    ) -> dict[str, Any]:
        """Merge URL-derived fields with the vendor option set."""
        ...

    def connect(self, descriptor: DataSourceDescriptor) -> Any:
        """Open one physical connection."""
        ...

    def open_pool(
        self, descriptor: DataSourceDescriptor, size: int, timeout: float
    ) -> Pool: ...

    def run(self, cursor: Any, sql: str, params: Sequence[Any]) -> None:
        """Execute a statement with positionally bound parameters."""
        ...

    def describe(self, description: Sequence[Any]) -> list[ColumnDescriptor]: ...

    def fetch_rows(self, cursor: Any) -> list[tuple[Any, ...]]: ...

    def classify(self, exc: BaseException) -> GatewayError | None:
        """Map a native driver error to a gateway error, or None if foreign."""
        ...

    def is_disconnect(self, exc: BaseException) -> bool:
        """True when the error left the connection unusable."""
        ...


class ConnectionHandle:
    """A live session lent to exactly one in-flight query.

    Released (not destroyed) by the provisioner once the query completes
    or fails. A handle marked ``broken`` is closed instead of pooled.
    """

    def __init__(self, connection: Any, driver: Driver, pooled: bool) -> None:
        self.connection = connection
        self.driver = driver
        self.pooled = pooled
        self.broken = False
        self.released = False

    def __repr__(self) -> str:
        state = "released" if self.released else "active"
        return f"<ConnectionHandle engine={self.driver.engine} {state}>"
