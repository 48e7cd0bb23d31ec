"""Query execution for SQL Gateway.

Runs one statement on a borrowed connection with positionally bound
parameters and returns the fully materialized rows plus column metadata.
Native driver errors are mapped onto the GatewayError hierarchy.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import sentry_sdk

from sql_gateway.core.exceptions import GatewayError, TimeoutError
from sql_gateway.core.logging import get_logger
from sql_gateway.core.models import ColumnDescriptor, QueryResult

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sql_gateway.drivers.base import ConnectionHandle


def execute(
    handle: ConnectionHandle, sql: str, params: Sequence[Any] = ()
) -> QueryResult:
    """Execute SQL and return a QueryResult.

    Raises QueryError (or its TimeoutError subclass) carrying the engine's
    message and SQLSTATE. A handle whose connection was lost is marked
    broken so the provisioner discards it on release.
    """
    log = get_logger(__name__)
    driver = handle.driver

    sql_normalized = " ".join(sql.split())
    log.debug("executing query", sql=sql_normalized, params=len(params))
    with sentry_sdk.start_span(
        op="db.query", description=sql_normalized[:100]
    ) as span:
        span.set_data("db.system", driver.engine)
        start_time = time.monotonic()
        cursor = None
        try:
            cursor = handle.connection.cursor()
            driver.run(cursor, sql, params)

            columns: list[ColumnDescriptor] = []
            rows: list[tuple[Any, ...]] = []
            if cursor.description:
                columns = driver.describe(cursor.description)
                rows = driver.fetch_rows(cursor)
        except GatewayError:
            raise
        except Exception as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            span.set_data("duration_ms", duration_ms)
            if driver.is_disconnect(e):
                handle.broken = True
            error = driver.classify(e)
            if error is None:
                raise
            if isinstance(error, TimeoutError):
                span.set_status("deadline_exceeded")
            else:
                span.set_status("internal_error")
            log.error(
                "query failed",
                sql=sql_normalized,
                error=error.message,
                code=getattr(error, "code", None),
                duration_ms=f"{duration_ms:.1f}",
            )
            raise error from e
        finally:
            if cursor is not None:
                _close_cursor(cursor)

        duration_ms = (time.monotonic() - start_time) * 1000
        span.set_data("row_count", len(rows))
        span.set_data("duration_ms", duration_ms)
        log.debug(
            "query complete",
            duration_ms=f"{duration_ms:.1f}",
            row_count=len(rows),
        )

    # Rows are already tuples; skip re-validating the whole result set.
    return QueryResult.model_construct(
        columns=columns,
        rows=rows,
        row_count=len(rows),
    )


def _close_cursor(cursor: Any) -> None:
    try:
        cursor.close()
    except Exception as e:
        get_logger(__name__).warning("error closing cursor", error=str(e))
