"""Driver type code to JSON-Schema mapping.

Each engine contributes one TypeTable keyed by its native type codes
(ODBC ``sql.h`` constants for Spark, type OIDs for PostgreSQL). Lookups
never fail: a code missing from the table resolves to null-or-string.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from psycopg import postgres
from pydantic import BaseModel, ConfigDict

from sql_gateway.core.models import Extension, JsonType, TypeDescriptor

BOOLEAN = TypeDescriptor(json_type=JsonType.BOOLEAN)
INTEGER = TypeDescriptor(json_type=JsonType.INTEGER)
NUMBER = TypeDescriptor(json_type=JsonType.NUMBER)
STRING = TypeDescriptor(json_type=JsonType.STRING)
OBJECT = TypeDescriptor(json_type=JsonType.OBJECT)
ARRAY = TypeDescriptor(json_type=JsonType.ARRAY, items=OBJECT)
BIGINT = TypeDescriptor(json_type=JsonType.STRING, extension=Extension.BIGINT)
BIGINT_ARRAY = TypeDescriptor(json_type=JsonType.ARRAY, items=BIGINT)
BUFFER = TypeDescriptor(json_type=JsonType.OBJECT, extension=Extension.BUFFER)
DATE = TypeDescriptor(json_type=JsonType.STRING, extension=Extension.DATE)

# String is a better guess than object for anything we do not recognize.
DEFAULT = STRING

# Hints (charset names, collations, charset numbers) meaning binary storage.
_BINARY_HINTS = frozenset({"binary", "63"})


class TypeTable(BaseModel):
    """Type code lookup for one engine."""

    model_config = ConfigDict(frozen=True)

    engine: str
    entries: dict[int, TypeDescriptor]
    # Character codes that hold raw bytes when flagged with a binary hint.
    textual_codes: frozenset[int] = frozenset()

    def lookup(self, code: int, hint: str | None = None) -> TypeDescriptor:
        if hint is not None and code in self.textual_codes:
            if hint.strip().lower() in _BINARY_HINTS:
                return BUFFER
        return self.entries.get(code, DEFAULT)


def _build_entries(
    groups: Mapping[TypeDescriptor, Iterable[int]],
) -> dict[int, TypeDescriptor]:
    entries: dict[int, TypeDescriptor] = {}
    for descriptor, codes in groups.items():
        for code in codes:
            if code in entries:
                msg = f"Type code {code} mapped twice"
                raise ValueError(msg)
            entries[code] = descriptor
    return entries


# https://github.com/microsoft/ODBC-Specification/blob/master/Windows/inc/sql.h
# plus sqlext.h for the extended and interval codes.
SQL_CHAR = 1
SQL_NUMERIC = 2
SQL_DECIMAL = 3
SQL_INTEGER = 4
SQL_SMALLINT = 5
SQL_FLOAT = 6
SQL_REAL = 7
SQL_DOUBLE = 8
SQL_DATETIME = 9
SQL_TIME = 10
SQL_TIMESTAMP = 11
SQL_VARCHAR = 12
SQL_UDT = 17
SQL_ROW = 19
SQL_ARRAY = 50
SQL_MULTISET = 55
SQL_TYPE_DATE = 91
SQL_TYPE_TIME = 92
SQL_TYPE_TIMESTAMP = 93
SQL_TYPE_TIME_WITH_TIMEZONE = 94
SQL_TYPE_TIMESTAMP_WITH_TIMEZONE = 95
SQL_UNKNOWN_TYPE = 0
SQL_LONGVARCHAR = -1
SQL_BINARY = -2
SQL_VARBINARY = -3
SQL_LONGVARBINARY = -4
SQL_BIGINT = -5
SQL_TINYINT = -6
SQL_BIT = -7
SQL_WCHAR = -8
SQL_WVARCHAR = -9
SQL_WLONGVARCHAR = -10
SQL_GUID = -11

ODBC_TYPES = TypeTable(
    engine="spark",
    entries=_build_entries(
        {
            BOOLEAN: (SQL_BIT,),
            INTEGER: (SQL_TINYINT, SQL_SMALLINT, SQL_INTEGER),
            BIGINT: (SQL_BIGINT,),
            NUMBER: (SQL_NUMERIC, SQL_DECIMAL, SQL_FLOAT, SQL_REAL, SQL_DOUBLE),
            DATE: (
                SQL_DATETIME,
                SQL_TIME,
                SQL_TIMESTAMP,
                SQL_TYPE_DATE,
                SQL_TYPE_TIME,
                SQL_TYPE_TIMESTAMP,
                SQL_TYPE_TIME_WITH_TIMEZONE,
                SQL_TYPE_TIMESTAMP_WITH_TIMEZONE,
            ),
            BUFFER: (SQL_BINARY, SQL_VARBINARY, SQL_LONGVARBINARY),
            OBJECT: (SQL_UNKNOWN_TYPE, SQL_UDT, SQL_ROW),
            ARRAY: (SQL_ARRAY, SQL_MULTISET),
            STRING: (
                SQL_CHAR,
                SQL_VARCHAR,
                SQL_LONGVARCHAR,
                SQL_WCHAR,
                SQL_WVARCHAR,
                SQL_WLONGVARCHAR,
                SQL_GUID,
            ),
        }
    ),
    textual_codes=frozenset(
        {
            SQL_CHAR,
            SQL_VARCHAR,
            SQL_LONGVARCHAR,
            SQL_WCHAR,
            SQL_WVARCHAR,
            SQL_WLONGVARCHAR,
        }
    ),
)

# pg_type OIDs, see src/include/catalog/pg_type.dat
PG_INT8 = 20


def _postgres_array_oids() -> tuple[int, ...]:
    # Every builtin type psycopg knows carries the OID of its array type.
    return tuple(
        sorted(
            info.array_oid
            for info in postgres.types
            if info.array_oid and info.oid != PG_INT8
        )
    )


POSTGRES_TYPES = TypeTable(
    engine="postgres",
    entries=_build_entries(
        {
            BOOLEAN: (16,),  # bool
            INTEGER: (21, 23, 26),  # int2, int4, oid
            BIGINT: (PG_INT8,),
            NUMBER: (700, 701, 1700),  # float4, float8, numeric
            DATE: (1082, 1083, 1114, 1184, 1266),  # date, time, timestamp[tz], timetz
            BUFFER: (17,),  # bytea
            OBJECT: (114, 3802, 2249, 2278),  # json, jsonb, record, void
            ARRAY: _postgres_array_oids(),
            BIGINT_ARRAY: (postgres.types[PG_INT8].array_oid,),
            # money renders with a currency symbol, e.g. "$1,000.00"
            STRING: (18, 19, 25, 790, 1042, 1043, 1186, 2950),
        }
    ),
    textual_codes=frozenset({18, 25, 1042, 1043}),
)


TYPE_TABLES: dict[str, TypeTable] = {
    ODBC_TYPES.engine: ODBC_TYPES,
    POSTGRES_TYPES.engine: POSTGRES_TYPES,
}


def get_type_table(engine: str) -> TypeTable:
    """Return the type table for an engine.

    Raises KeyError if the engine has no registered table.
    """
    if engine not in TYPE_TABLES:
        available = ", ".join(sorted(TYPE_TABLES))
        msg = f"Unknown engine {engine!r}. Available: {available}"
        raise KeyError(msg)
    return TYPE_TABLES[engine]


def map_type(
    code: int, hint: str | None = None, table: TypeTable = ODBC_TYPES
) -> TypeDescriptor:
    """Map a driver type code (and optional charset hint) to a descriptor."""
    return table.lookup(code, hint)
