"""SQL Gateway main entry point and command registration."""

from __future__ import annotations

import atexit
from pathlib import Path  # noqa: TC003
from typing import Annotated

import sentry_sdk
import typer

from sql_gateway.__about__ import __version__
from sql_gateway.cli.commands.config import config_app
from sql_gateway.cli.commands.query import query_command
from sql_gateway.cli.commands.serve import serve_command
from sql_gateway.core.config import load_config
from sql_gateway.core.exceptions import GatewayError
from sql_gateway.core.logging import setup_logging
from sql_gateway.core.monitoring import setup_sentry

app = typer.Typer(
    help="SQL Gateway - run SQL and stream results as JSON with a row schema",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")
app.command("query")(query_command)
app.command("serve")(serve_command)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sql-gateway {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose logging"),
    ] = False,
    source: Annotated[
        str | None,
        typer.Option("--source", "-S", help="Named data source from the config file"),
    ] = None,
    url: Annotated[
        str | None,
        typer.Option("--url", "-u", help="Data-source URL"),
    ] = None,
    pool_size: Annotated[
        int | None,
        typer.Option("--pool-size", help="Maximum pooled connections", min=1),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config file"),
    ] = None,
) -> None:
    """SQL Gateway - run SQL and stream results as JSON with a row schema."""
    setup_logging(verbose)
    if setup_sentry(load_config(config_file).sentry_dsn):
        transaction = sentry_sdk.start_transaction(
            op="cli", name=ctx.invoked_subcommand or "sql-gateway"
        )
        transaction.__enter__()

        def cleanup() -> None:
            transaction.__exit__(None, None, None)
            sentry_sdk.flush(timeout=2)

        atexit.register(cleanup)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["source"] = source
    ctx.obj["url"] = url
    ctx.obj["pool_size"] = pool_size
    ctx.obj["config_file"] = config_file


def run() -> None:
    """Entry point with global error handling."""
    try:
        app()
    except GatewayError as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e.message}", err=True)
        raise SystemExit(e.exit_code) from None
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None
