"""Shared CLI plumbing for command modules.

Config resolution from the global options and gateway construction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sql_gateway.core.config import load_config, resolve_config
from sql_gateway.core.gateway import QueryGateway

if TYPE_CHECKING:
    import typer

    from sql_gateway.core.config import ResolvedConfig


def get_config(ctx: typer.Context, **overrides: Any) -> ResolvedConfig:
    """Resolve configuration from the global options plus ``overrides``."""
    obj = ctx.ensure_object(dict)
    config = load_config(obj.get("config_file"))

    cli_overrides: dict[str, Any] = {}
    for key in ("url", "pool_size"):
        val = obj.get(key)
        if val is not None:
            cli_overrides[key] = val
    for key, val in overrides.items():
        if val is not None:
            cli_overrides[key] = val

    return resolve_config(
        config,
        source_name=obj.get("source"),
        **cli_overrides,
    )


def get_gateway(ctx: typer.Context, **overrides: Any) -> QueryGateway:
    return QueryGateway.from_config(get_config(ctx, **overrides))
