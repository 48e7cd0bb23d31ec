"""Configuration management CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

import typer

from sql_gateway.cli.commands._shared import get_config
from sql_gateway.core.config import DEFAULT_CONFIG_PATH, load_config
from sql_gateway.core.provisioner import (
    build_descriptor,
    mask_options,
    mask_url,
)
from sql_gateway.drivers import DRIVERS

if TYPE_CHECKING:
    from pathlib import Path

config_app = typer.Typer(help="Configuration management commands")


@config_app.callback(invoke_without_command=True)
def config_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _or_unset(value: object) -> str:
    return "not set" if value is None else str(value)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    options: Annotated[
        bool,
        typer.Option("--options", help="Also build and print the connection options"),
    ] = False,
) -> None:
    """Display resolved configuration with source attribution."""
    resolved = get_config(ctx)
    sources = resolved.sources

    typer.echo("Data Source (resolved):")
    fields = [
        ("url", _or_unset(resolved.url and mask_url(resolved.url))),
        ("krb_realm", _or_unset(resolved.krb_realm)),
        ("krb_service_name", _or_unset(resolved.krb_service_name)),
        ("krb_host_fqdn", _or_unset(resolved.krb_host_fqdn)),
        ("driver_path", _or_unset(resolved.driver_path)),
    ]
    for field_name, value in fields:
        source = sources.get(field_name, "default")
        typer.echo(f"  {field_name}: {value} ({source})")

    typer.echo("")
    typer.echo("Connections:")
    for field_name, value in [
        ("pooled", str(resolved.pooled)),
        ("pool_size", str(resolved.pool_size)),
        ("acquire_timeout", f"{resolved.acquire_timeout}s"),
        ("query_timeout", f"{resolved.query_timeout}s"),
    ]:
        source = sources.get(field_name, "default")
        typer.echo(f"  {field_name}: {value} ({source})")

    if options:
        descriptor = build_descriptor(resolved.url, resolved)
        driver = DRIVERS[descriptor.engine]
        typer.echo("")
        typer.echo(f"Connection Options ({descriptor.engine}):")
        masked = mask_options(descriptor.options, driver.secret_options)
        for key, value in masked.items():
            typer.echo(f"  {key}: {value}")

    typer.echo("")
    typer.echo(f"Active Source: {resolved.active_source or 'none'}")
    config_path: Path | None = ctx.ensure_object(dict).get("config_file")
    typer.echo(f"Config File: {config_path or DEFAULT_CONFIG_PATH}")


@config_app.command("sources")
def config_sources(ctx: typer.Context) -> None:
    """List configured data sources."""
    obj = ctx.ensure_object(dict)
    config_path: Path | None = obj.get("config_file")
    app_config = load_config(config_path)
    active = obj.get("source") or app_config.default_source

    if not app_config.sources:
        typer.echo("No sources configured.")
        typer.echo(f"Add sources to: {config_path or DEFAULT_CONFIG_PATH}")
        return

    typer.echo("Available Sources:")
    typer.echo("")
    for name, profile in sorted(app_config.sources.items()):
        is_active = name == active
        marker = "* " if is_active else "  "
        label = " (active)" if is_active else ""
        typer.echo(f"{marker}{name}{label}")
        url = _or_unset(profile.url and mask_url(profile.url))
        typer.echo(f"      url: {url}")
        if profile.krb_realm:
            typer.echo(f"      krb_realm: {profile.krb_realm}")
        typer.echo("")
