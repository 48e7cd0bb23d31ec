"""Spark driver for SQL Gateway.

Connects through the Simba Spark ODBC driver using pyodbc, over Thrift
HTTP transport with Kerberos authentication.

pyodbc reports each result column as a Python type plus precision rather
than the raw ODBC type code, so ``describe`` maps them back onto the
``sql.h`` constants the ODBC type table is keyed on.
"""

from __future__ import annotations

import datetime
import decimal
import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy import exc as sa_exc
from sqlalchemy.pool import QueuePool

from sql_gateway.core import types as sqltypes
from sql_gateway.core.exceptions import (
    ConfigurationError,
    ConnectionError,
    GatewayError,
    QueryError,
    TimeoutError,
)
from sql_gateway.core.models import ColumnDescriptor

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from urllib.parse import ParseResult

    from sql_gateway.core.config import ResolvedConfig
    from sql_gateway.core.models import DataSourceDescriptor

_FETCH_BATCH = 1000

# SQLSTATEs for "timeout expired" and "connection timeout expired".
_TIMEOUT_STATES = frozenset({"HYT00", "HYT01"})

_DEFAULT_PORTS = {"https": 443, "http": 80, "spark": 443}


def _pyodbc() -> Any:
    # pyodbc loads the ODBC driver manager on import.
    import pyodbc

    return pyodbc


def make_connection_string(options: dict[str, Any]) -> str:
    """Join options as ``key=value;...``, bracing values with separators."""
    parts = []
    for key, value in options.items():
        if isinstance(value, bool):
            text = "true" if value else "false"
        else:
            text = str(value)
        if any(ch in text for ch in ";{}="):
            text = "{" + text.replace("}", "}}") + "}"
        parts.append(f"{key}={text}")
    return ";".join(parts)


def odbc_type_code(type_code: Any, precision: int | None) -> int:
    """Recover the ODBC SQL type constant from a pyodbc description entry."""
    if not isinstance(type_code, type):
        return sqltypes.SQL_VARCHAR
    if issubclass(type_code, bool):
        return sqltypes.SQL_BIT
    if issubclass(type_code, int):
        if precision is None or precision > 10:
            return sqltypes.SQL_BIGINT
        if precision <= 3:
            return sqltypes.SQL_TINYINT
        if precision <= 5:
            return sqltypes.SQL_SMALLINT
        return sqltypes.SQL_INTEGER
    if issubclass(type_code, float):
        return sqltypes.SQL_DOUBLE
    if issubclass(type_code, decimal.Decimal):
        return sqltypes.SQL_DECIMAL
    if issubclass(type_code, (bytes, bytearray)):
        return sqltypes.SQL_VARBINARY
    # datetime is a subclass of date, check it first.
    if issubclass(type_code, datetime.datetime):
        return sqltypes.SQL_TYPE_TIMESTAMP
    if issubclass(type_code, datetime.date):
        return sqltypes.SQL_TYPE_DATE
    if issubclass(type_code, datetime.time):
        return sqltypes.SQL_TYPE_TIME
    if issubclass(type_code, uuid.UUID):
        return sqltypes.SQL_GUID
    return sqltypes.SQL_VARCHAR


def _ping(
    dbapi_connection: Any, connection_record: Any, connection_proxy: Any
) -> None:
    # Idle connections may have been dropped by the gateway; make the pool
    # discard them and connect again instead of handing them out.
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("SELECT 1")
    except Exception as e:
        raise sa_exc.DisconnectionError(str(e)) from e
    cursor.close()


class OdbcPool:
    """Bounded pool of pyodbc connections on top of SQLAlchemy's QueuePool.

    Lends out the raw DB-API connection so callers see the same object the
    driver produced. A connection returned closed is invalidated rather
    than checked back in.
    """

    def __init__(
        self, connect: Callable[[], Any], max_size: int, timeout: float
    ) -> None:
        self.max_size = max_size
        self.timeout = timeout
        self._pool = QueuePool(
            connect,
            pool_size=max_size,
            max_overflow=0,
            timeout=timeout,
            reset_on_return=None,
        )
        event.listen(self._pool, "checkout", _ping)
        self._checked_out: dict[int, Any] = {}
        self._closed = False

    def getconn(self, timeout: float | None = None) -> Any:
        """Borrow a connection; ``timeout`` is fixed when the pool is built."""
        if self._closed:
            raise ConnectionError("Connection pool is closed")
        try:
            proxy = self._pool.connect()
        except sa_exc.TimeoutError as e:
            msg = (
                f"Connection pool exhausted: no connection available after "
                f"{self.timeout}s (max size {self.max_size})"
            )
            raise ConnectionError(msg) from e
        conn = proxy.dbapi_connection
        self._checked_out[id(conn)] = proxy
        return conn

    def putconn(self, conn: Any) -> None:
        proxy = self._checked_out.pop(id(conn), None)
        if proxy is None:
            conn.close()
        elif self._closed or getattr(conn, "closed", False):
            proxy.invalidate()
        else:
            proxy.close()

    def close(self) -> None:
        self._closed = True
        self._pool.dispose()


class SparkDriver:
    """Simba Spark ODBC driver accessed through pyodbc."""

    engine = "spark"
    schemes = frozenset({"http", "https", "spark"})
    type_table = sqltypes.ODBC_TYPES
    secret_options = frozenset({"PWD", "UID", "Auth_AccessToken"})

    def build_options(
        self, parsed: ParseResult, config: ResolvedConfig
    ) -> dict[str, Any]:
        if not config.driver_path:
            msg = (
                "No ODBC driver path is known for this platform; "
                "set [driver_paths] in the config file"
            )
            raise ConfigurationError(msg)
        options: dict[str, Any] = {"Driver": config.driver_path}
        for name, value in config.http_headers.items():
            options[f"http.header.{name}"] = value
        options.update(
            {
                "HOST": parsed.hostname,
                "PORT": parsed.port or _DEFAULT_PORTS.get(parsed.scheme, 443),
                "HTTPPath": parsed.path or "/",
                "SSL": 1,
                "SparkServerType": 3,
                "Schema": config.schema_name,
                "TransportMode": "http",
                "ThriftTransport": 2,
                "UseNativeQuery": 1,
                "AuthMech": 1,
                "KrbServiceName": config.krb_service_name or "HTTP",
                "KrbAuthType": 2,
            }
        )
        if config.krb_host_fqdn:
            options["KrbHostFQDN"] = config.krb_host_fqdn
        if config.krb_realm:
            options["KrbRealm"] = config.krb_realm
        return options

    def connect(self, descriptor: DataSourceDescriptor) -> Any:
        pyodbc = _pyodbc()
        conn = pyodbc.connect(
            make_connection_string(descriptor.options),
            autocommit=True,
            timeout=descriptor.connect_timeout,
        )
        if descriptor.query_timeout:
            # Applies to every cursor created from this connection.
            conn.timeout = int(descriptor.query_timeout)
        return conn

    def open_pool(
        self, descriptor: DataSourceDescriptor, size: int, timeout: float
    ) -> OdbcPool:
        return OdbcPool(lambda: self.connect(descriptor), size, timeout)

    def run(self, cursor: Any, sql: str, params: Sequence[Any]) -> None:
        if params:
            cursor.execute(sql, *params)
        else:
            cursor.execute(sql)

    def describe(self, description: Sequence[Any]) -> list[ColumnDescriptor]:
        return [
            ColumnDescriptor(name=desc[0], type_code=odbc_type_code(desc[1], desc[4]))
            for desc in description
        ]

    def fetch_rows(self, cursor: Any) -> list[tuple[Any, ...]]:
        # pyodbc.Row carries cursor_description; keep only the values.
        rows: list[tuple[Any, ...]] = []
        while batch := cursor.fetchmany(_FETCH_BATCH):
            rows.extend(tuple(row) for row in batch)
        return rows

    @staticmethod
    def _sqlstate(exc: BaseException) -> str | None:
        if exc.args and isinstance(exc.args[0], str) and len(exc.args) > 1:
            return exc.args[0]
        return None

    def classify(self, exc: BaseException) -> GatewayError | None:
        pyodbc = _pyodbc()
        if not isinstance(exc, pyodbc.Error):
            return None
        sqlstate = self._sqlstate(exc)
        message = str(exc.args[1]) if len(exc.args) > 1 else str(exc)
        if sqlstate in _TIMEOUT_STATES:
            return TimeoutError(f"Query timed out: {message}", code=sqlstate)
        return QueryError(f"SQL error: {message}", code=sqlstate)

    def is_disconnect(self, exc: BaseException) -> bool:
        sqlstate = self._sqlstate(exc)
        return sqlstate is not None and sqlstate.startswith("08")
