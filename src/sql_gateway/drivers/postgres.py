"""PostgreSQL driver for SQL Gateway.

Wraps psycopg v3 connections and psycopg_pool with statement timeout,
Kerberos (GSSAPI) options and exception mapping to the GatewayError
hierarchy. Column type codes are PostgreSQL type OIDs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, unquote

import psycopg
import psycopg.errors
from psycopg.conninfo import make_conninfo
from psycopg_pool import ConnectionPool

from sql_gateway.core.exceptions import (
    ConfigurationError,
    GatewayError,
    QueryError,
    TimeoutError,
)
from sql_gateway.core.models import ColumnDescriptor
from sql_gateway.core.types import POSTGRES_TYPES

if TYPE_CHECKING:
    from collections.abc import Sequence
    from urllib.parse import ParseResult

    from sql_gateway.core.config import ResolvedConfig
    from sql_gateway.core.models import DataSourceDescriptor

_VALID_SSLMODES = frozenset(
    {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}
)


class PostgresDriver:
    """psycopg v3 driver for PostgreSQL-protocol engines."""

    engine = "postgres"
    schemes = frozenset({"postgresql", "postgres"})
    type_table = POSTGRES_TYPES
    secret_options = frozenset({"password"})

    def build_options(
        self, parsed: ParseResult, config: ResolvedConfig
    ) -> dict[str, Any]:
        query_params = parse_qs(parsed.query)
        sslmode = query_params.get("sslmode", ["require"])[0]
        if sslmode not in _VALID_SSLMODES:
            valid = ", ".join(sorted(_VALID_SSLMODES))
            msg = f"Invalid sslmode: '{sslmode}'. Must be one of: {valid}"
            raise ConfigurationError(msg)

        options: dict[str, Any] = {
            "host": parsed.hostname,
            "port": parsed.port or 5432,
            "dbname": parsed.path.strip("/") or "postgres",
            "sslmode": sslmode,
            "gssencmode": "prefer",
            "connect_timeout": config.connect_timeout,
            "application_name": config.application_name,
        }
        if parsed.username:
            options["user"] = unquote(parsed.username)
        if parsed.password:
            options["password"] = unquote(parsed.password)
        if config.krb_service_name:
            options["krbsrvname"] = config.krb_service_name
        timeout_ms = int(config.query_timeout * 1000)
        options["options"] = f"-c statement_timeout={timeout_ms}"
        return options

    def _conninfo(self, descriptor: DataSourceDescriptor) -> str:
        return make_conninfo(**descriptor.options)

    def connect(self, descriptor: DataSourceDescriptor) -> psycopg.Connection[Any]:
        return psycopg.connect(self._conninfo(descriptor), autocommit=True)

    def open_pool(
        self, descriptor: DataSourceDescriptor, size: int, timeout: float
    ) -> ConnectionPool:
        return ConnectionPool(
            self._conninfo(descriptor),
            min_size=1,
            max_size=size,
            timeout=timeout,
            kwargs={"autocommit": True},
            check=ConnectionPool.check_connection,
            name=f"sql-gateway-{descriptor.host}",
            open=True,
        )

    def run(self, cursor: Any, sql: str, params: Sequence[Any]) -> None:
        # No params means no placeholder parsing, so literal % stays intact.
        cursor.execute(sql, list(params) if params else None)

    def describe(self, description: Sequence[Any]) -> list[ColumnDescriptor]:
        return [
            ColumnDescriptor(name=desc.name, type_code=desc.type_code)
            for desc in description
        ]

    def fetch_rows(self, cursor: Any) -> list[tuple[Any, ...]]:
        return cursor.fetchall()

    def classify(self, exc: BaseException) -> GatewayError | None:
        if isinstance(exc, psycopg.errors.QueryCanceled):
            return TimeoutError(f"Query timed out: {exc}", code=exc.sqlstate)
        if isinstance(exc, psycopg.Error):
            return QueryError(f"SQL error: {exc}", code=exc.sqlstate)
        return None

    def is_disconnect(self, exc: BaseException) -> bool:
        return isinstance(exc, psycopg.OperationalError) and not isinstance(
            exc, psycopg.errors.QueryCanceled
        )
