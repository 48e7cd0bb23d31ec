"""Sentry integration for error tracking and performance monitoring.

Sentry is initialized early in main() after logging setup. Without a DSN
the SDK stays disabled and spans are no-ops.
"""

from __future__ import annotations

import sentry_sdk

from sql_gateway.__about__ import __version__


def setup_sentry(dsn: str | None, environment: str = "local") -> bool:
    """Initialize Sentry when a DSN is configured.

    Returns True if the SDK was initialized.
    """
    if not dsn:
        return False
    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=0.03,
        environment=environment,
        release=__version__,
        attach_stacktrace=True,
        send_default_pii=False,
    )
    return True
