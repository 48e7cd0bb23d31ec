from __future__ import annotations

import sys
from typing import Annotated

import typer

from sql_gateway.cli.commands._shared import get_gateway
from sql_gateway.core.exceptions import InputError
from sql_gateway.core.exit_codes import ExitCode
from sql_gateway.core.query_source import parse_params, resolve_query_source


def query_command(
    ctx: typer.Context,
    file: Annotated[
        str | None,
        typer.Argument(help="SQL file to execute"),
    ] = None,
    execute: Annotated[
        str | None,
        typer.Option("--execute", "-e", help="Execute inline SQL query"),
    ] = None,
    param: Annotated[
        list[str] | None,
        typer.Option(
            "--param",
            "-p",
            help="Positional bind parameter (JSON literal or plain string), repeatable",
        ),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Query timeout in seconds"),
    ] = None,
) -> None:
    """Execute a SQL query and write the data + schema document to stdout."""
    try:
        is_tty = sys.stdin.isatty()
    except (ValueError, AttributeError):
        is_tty = False
    if execute is None and file is None and is_tty:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    try:
        sql = resolve_query_source(inline=execute, file_path=file)
    except InputError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(ExitCode.INPUT_ERROR) from exc
    params = parse_params(param)

    # One request per process: no point keeping a pool.
    with get_gateway(ctx, timeout=timeout, pooled=False) as gateway:
        sys.stdout.flush()
        out = sys.stdout.buffer
        gateway.query(sql, params, out)
        out.write(b"\n")
        out.flush()
