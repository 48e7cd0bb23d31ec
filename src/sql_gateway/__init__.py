"""SQL Gateway - stream query results as JSON with an inferred row schema."""

from sql_gateway.__about__ import __version__

__all__ = ["__version__"]
