from __future__ import annotations

import re

from .errors import ValidationError

# Postgres truncates identifiers longer than NAMEDATALEN - 1 bytes.
MAX_IDENTIFIER_BYTES = 63

_TYPE_NAME_RE = re.compile(
    r"^[A-Za-z_][A-Za-z0-9_$]*"
    r"(\.[A-Za-z_][A-Za-z0-9_$]*)?"
    r"( [A-Za-z_][A-Za-z0-9_]*)*"
    r"(\(\s*\d+\s*(,\s*\d+\s*)?\))?"
    r"( [A-Za-z_][A-Za-z0-9_]*)*"
    r"(\[\d*\])*$"
)

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off", ""}


def quote_ident(identifier: str, field_name: str = "identifier") -> str:
    """Quote a user-supplied identifier for interpolation into DDL."""
    if not isinstance(identifier, str) or not identifier:
        raise ValidationError(f"Invalid identifier for {field_name}: must be a non-empty string")
    if "\x00" in identifier:
        raise ValidationError(f"Invalid identifier for {field_name}: contains a NUL byte")
    if len(identifier.encode("utf-8")) > MAX_IDENTIFIER_BYTES:
        raise ValidationError(
            f"Invalid identifier for {field_name}: longer than {MAX_IDENTIFIER_BYTES} bytes"
        )
    return '"' + identifier.replace('"', '""') + '"'


def quote_qualified(schema: str, name: str) -> str:
    return f"{quote_ident(schema, 'schema')}.{quote_ident(name, 'name')}"


def quote_literal(value: str) -> str:
    """Quote a string literal where the statement cannot take bind parameters."""
    if "\x00" in value:
        raise ValidationError("String literal contains a NUL byte")
    escaped = value.replace("'", "''")
    if "\\" in escaped:
        return "E'" + escaped.replace("\\", "\\\\") + "'"
    return "'" + escaped + "'"


def validate_type_name(data_type: str) -> str:
    """Check that a type name is syntactically safe; existence is left to the server."""
    normalized = " ".join((data_type or "").split())
    if not normalized or not _TYPE_NAME_RE.match(normalized):
        raise ValidationError(f"Unsupported type name: {data_type!r}")
    return normalized


def detect_statement_type(sql: str) -> str:
    stripped = sql.strip().split()
    if not stripped:
        raise ValidationError("SQL statement is empty")
    return stripped[0].upper().rstrip(";")


def parse_bool_flag(value: str | bool | None, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValidationError(f"Invalid boolean flag: {value!r}")
