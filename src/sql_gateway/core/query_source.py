"""Request input resolution for the SQL Gateway CLI.

The SQL text comes from one of three sources:
1. Inline (-e flag)  - highest priority
2. File path         - middle priority
3. stdin             - lowest priority

Bind parameters come from repeated -p flags, each read as a JSON literal
when it parses as one and as a plain string otherwise.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from sql_gateway.core.exceptions import InputError


def resolve_query_source(
    inline: str | None,
    file_path: str | None,
) -> str:
    """Resolve SQL query from inline, file, or stdin.

    Precedence: inline > file > stdin.
    Raises InputError when no source is available or the SQL is blank.
    """
    if inline is not None:
        sql = inline
    elif file_path is not None:
        p = Path(file_path)
        if not p.exists():
            msg = (
                f"Query file not found: {file_path}\n"
                "Use -e for inline queries or pipe query via stdin."
            )
            raise InputError(msg)
        sql = p.read_text()
    elif not sys.stdin.isatty():
        sql = sys.stdin.read()
    else:
        msg = "No query provided. Use -e, file path, or pipe to stdin."
        raise InputError(msg)

    if not sql.strip():
        raise InputError("Query is empty.")
    return sql


def parse_param(raw: str) -> Any:
    """``42`` -> 42, ``null`` -> None, ``"42"`` -> "42", ``abc`` -> "abc"."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def parse_params(raw_params: list[str] | None) -> list[Any]:
    return [parse_param(raw) for raw in raw_params or []]
