"""HTTP server command."""

from __future__ import annotations

from typing import Annotated

import typer
import uvicorn

from sql_gateway.cli.commands._shared import get_config
from sql_gateway.core.logging import get_logger, setup_logging
from sql_gateway.server import create_app


def serve_command(
    ctx: typer.Context,
    host: Annotated[
        str,
        typer.Option("--host", help="Interface to bind"),
    ] = "127.0.0.1",
    port: Annotated[
        int,
        typer.Option("--port", help="Port to listen on"),
    ] = 8080,
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Write logs as JSON lines"),
    ] = False,
) -> None:
    """Serve POST /query over HTTP for the configured data source."""
    obj = ctx.ensure_object(dict)
    if json_logs:
        setup_logging(obj.get("verbose", False), json_logs=True)

    config = get_config(ctx)
    app = create_app(config)
    get_logger(__name__).info(
        "starting server", host=host, port=port, source=config.active_source
    )
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="debug" if obj.get("verbose") else "info",
    )
