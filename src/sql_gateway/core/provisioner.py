"""Connection provisioning for SQL Gateway.

Builds the DataSourceDescriptor for a data-source URL and lends out
ConnectionHandles, either from a bounded pool or as ad hoc connections.
Both modes expose the same acquire/release discipline, so callers never
know whether pooling is on.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from sql_gateway.core.exceptions import ConfigurationError, ConnectionError
from sql_gateway.core.logging import get_logger
from sql_gateway.core.models import DataSourceDescriptor
from sql_gateway.drivers import DRIVERS, driver_for_scheme
from sql_gateway.drivers.base import ConnectionHandle

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sql_gateway.core.config import ResolvedConfig
    from sql_gateway.drivers.base import Driver, Pool


def mask_options(
    options: dict[str, Any], secret_keys: frozenset[str]
) -> dict[str, Any]:
    return {
        key: "***" if key in secret_keys else value for key, value in options.items()
    }


def mask_url(url: str) -> str:
    """Replace the password in a data-source URL with ``***``."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@", 1)
    return parsed._replace(netloc=netloc).geturl()


def build_descriptor(
    url: str | None, config: ResolvedConfig
) -> DataSourceDescriptor:
    """Parse the data-source URL and merge it with the vendor option set.

    Raises ConfigurationError if the URL is missing or unparseable, its
    scheme has no driver, or the driver binary for this platform is unknown.
    """
    log = get_logger(__name__)
    if not url:
        raise ConfigurationError("No data-source URL configured")

    try:
        parsed = urlparse(url)
        # Accessing port validates it.
        port = parsed.port
    except ValueError as e:
        msg = f"Invalid data-source URL {url!r}: {e}"
        raise ConfigurationError(msg) from e

    if not parsed.scheme or not parsed.hostname:
        msg = f"Invalid data-source URL {url!r}: expected scheme://host[:port]/path"
        raise ConfigurationError(msg)

    try:
        driver = driver_for_scheme(parsed.scheme)
    except KeyError as e:
        raise ConfigurationError(e.args[0]) from e

    options = driver.build_options(parsed, config)
    descriptor = DataSourceDescriptor(
        engine=driver.engine,
        host=parsed.hostname,
        port=port,
        path=parsed.path,
        options=options,
        connect_timeout=config.connect_timeout,
        query_timeout=config.query_timeout,
    )

    log.info(
        "data source configured",
        engine=descriptor.engine,
        host=descriptor.host,
        port=descriptor.port,
        path=descriptor.path,
    )
    masked = mask_options(options, driver.secret_options)
    log.info("connection options", options=masked)
    return descriptor


class ConnectionProvisioner:
    """Hands out connections for one data source.

    Pooled mode borrows from a bounded pool and blocks (without spinning)
    while the pool is at capacity, up to ``acquire_timeout``. Ad hoc mode
    opens a physical connection per acquire and closes it on release.
    """

    def __init__(
        self,
        descriptor: DataSourceDescriptor,
        *,
        pooled: bool = True,
        pool_size: int = 5,
        acquire_timeout: float = 30.0,
        driver: Driver | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.pooled = pooled
        self.pool_size = pool_size
        self.acquire_timeout = acquire_timeout
        self.driver = driver if driver is not None else DRIVERS[descriptor.engine]
        self._pool: Pool | None = None

    @classmethod
    def from_config(cls, config: ResolvedConfig) -> ConnectionProvisioner:
        return cls(
            build_descriptor(config.url, config),
            pooled=config.pooled,
            pool_size=config.pool_size,
            acquire_timeout=config.acquire_timeout,
        )

    def __enter__(self) -> ConnectionProvisioner:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def open(self) -> None:
        """Create the pool in pooled mode; a no-op otherwise or if open."""
        if self.pooled:
            self._ensure_pool()

    def _ensure_pool(self) -> Pool:
        if self._pool is None:
            self._pool = self.driver.open_pool(
                self.descriptor, self.pool_size, self.acquire_timeout
            )
        return self._pool

    def acquire(self) -> ConnectionHandle:
        """Borrow a live connection.

        Raises ConnectionError on pool timeout or connection failure.
        """
        log = get_logger(__name__)
        try:
            if self.pooled:
                pool = self._ensure_pool()
                conn = pool.getconn(timeout=self.acquire_timeout)
            else:
                conn = self.driver.connect(self.descriptor)
        except ConnectionError:
            raise
        except Exception as e:
            msg = (
                f"Connection failed to {self.descriptor.host}:{self.descriptor.port}"
                f"{self.descriptor.path}: {e}"
            )
            log.error("connection failed", host=self.descriptor.host, error=str(e))
            raise ConnectionError(msg) from e

        log.debug("connection acquired", host=self.descriptor.host, pooled=self.pooled)
        return ConnectionHandle(conn, self.driver, pooled=self.pooled)

    def release(self, handle: ConnectionHandle) -> None:
        """Return a connection to the pool, or close it.

        Broken and ad hoc connections are closed. Releasing twice is a no-op.
        """
        if handle.released:
            return
        handle.released = True
        log = get_logger(__name__)

        if handle.broken or not handle.pooled:
            try:
                handle.connection.close()
            except Exception as e:
                log.warning("error closing connection", error=str(e))
        if handle.pooled and self._pool is not None:
            self._pool.putconn(handle.connection)
        log.debug("connection released", broken=handle.broken, pooled=handle.pooled)

    @contextmanager
    def connection(self) -> Iterator[ConnectionHandle]:
        """Acquire a handle and always release it, even on failure."""
        handle = self.acquire()
        try:
            yield handle
        finally:
            self.release(handle)

    def close(self) -> None:
        """Close the pool and every idle connection in it."""
        if self._pool is not None:
            self._pool.close()
            self._pool = None
