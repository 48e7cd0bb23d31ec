"""Exception hierarchy for SQL Gateway.

All exceptions carry an exit_code for CLI return value mapping and are
propagated to the request boundary. The only locally recovered condition,
an unrecognized driver type code, never raises.
"""

from __future__ import annotations

from sql_gateway.core.exit_codes import ExitCode


class GatewayError(Exception):
    """Base exception for all SQL Gateway errors."""

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(GatewayError):
    """Unparseable data-source URL, missing driver path, malformed config."""

    exit_code: int = ExitCode.CONFIG_ERROR


class ConnectionError(GatewayError):
    """Pool exhaustion, network or authentication failure on acquire."""

    exit_code: int = ExitCode.NETWORK_ERROR


class QueryError(GatewayError):
    """Malformed SQL, constraint violation, connection lost mid-query.

    ``code`` holds the engine's native error code (SQLSTATE) when known.
    """

    exit_code: int = ExitCode.QUERY_ERROR

    def __init__(self, message: str, code: str | None = None) -> None:
        self.code = code
        super().__init__(message)


class TimeoutError(QueryError):
    """Statement exceeded the configured query timeout."""

    exit_code: int = ExitCode.TIMEOUT


class EncodingError(GatewayError):
    """Sink write failure or a value with no JSON representation."""

    exit_code: int = ExitCode.OUTPUT_ERROR


class InputError(GatewayError):
    """File not found, invalid parameters."""

    exit_code: int = ExitCode.INPUT_ERROR
