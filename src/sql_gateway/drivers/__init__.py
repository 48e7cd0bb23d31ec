"""Engine drivers, looked up by data-source URL scheme."""

from __future__ import annotations

from sql_gateway.drivers.base import ConnectionHandle, Driver, Pool
from sql_gateway.drivers.postgres import PostgresDriver
from sql_gateway.drivers.spark import SparkDriver

DRIVERS: dict[str, Driver] = {
    SparkDriver.engine: SparkDriver(),
    PostgresDriver.engine: PostgresDriver(),
}


def driver_for_scheme(scheme: str) -> Driver:
    """Return the driver serving a URL scheme.

    Raises KeyError if no driver handles the scheme.
    """
    for driver in DRIVERS.values():
        if scheme.lower() in driver.schemes:
            return driver
    schemes = ", ".join(sorted(s for d in DRIVERS.values() for s in d.schemes))
    msg = f"Unsupported URL scheme {scheme!r}. Supported: {schemes}"
    raise KeyError(msg)


__all__ = [
    "DRIVERS",
    "ConnectionHandle",
    "Driver",
    "Pool",
    "PostgresDriver",
    "SparkDriver",
    "driver_for_scheme",
]
