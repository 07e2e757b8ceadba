from __future__ import annotations

import logging
from datetime import timezone
from typing import Any

from .assembler import MetadataAssembler
from .descriptor import ConnectionConfig
from .errors import ValidationError
from .executor import QueryExecutor
from .guardrails import quote_ident, quote_literal, quote_qualified, validate_type_name
from .logging_utils import log_extra
from .models import ColumnSpec, RoleCreate, SchemaCreate, SchemaPatch, TableCreate

# (attribute, keyword when true, keyword when false)
_ROLE_FLAGS = (
    ("is_superuser", "SUPERUSER", "NOSUPERUSER"),
    ("can_create_db", "CREATEDB", "NOCREATEDB"),
    ("can_create_role", "CREATEROLE", "NOCREATEROLE"),
    ("can_login", "LOGIN", "NOLOGIN"),
    ("is_replication_role", "REPLICATION", "NOREPLICATION"),
    ("can_bypass_rls", "BYPASSRLS", "NOBYPASSRLS"),
    ("inherit_role", "INHERIT", "NOINHERIT"),
)


def column_definition(column: ColumnSpec) -> str:
    parts = [quote_ident(column.name, "column name"), validate_type_name(column.data_type)]
    if column.is_identity:
        parts.append("GENERATED BY DEFAULT AS IDENTITY")
    if not column.is_nullable:
        parts.append("NOT NULL")
    return " ".join(parts)


def create_table_statements(body: TableCreate) -> list[str]:
    if not body.columns:
        raise ValidationError("A table needs at least one column")

    names = [column.name for column in body.columns]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate column names: {', '.join(duplicates)}")
    unknown = [key for key in body.primary_keys if key not in names]
    if unknown:
        raise ValidationError(f"Primary key columns are not declared: {', '.join(unknown)}")

    qualified = quote_qualified(body.schema_name, body.name)
    definitions = [column_definition(column) for column in body.columns]
    if body.primary_keys:
        keys = ", ".join(quote_ident(key, "primary key") for key in body.primary_keys)
        definitions.append(f"PRIMARY KEY ({keys})")

    statements = [f"CREATE TABLE {qualified} ({', '.join(definitions)})"]
    if body.comment is not None:
        statements.append(f"COMMENT ON TABLE {qualified} IS {quote_literal(body.comment)}")
    return statements


def create_role_statement(body: RoleCreate) -> str:
    """
    Render ``CREATE ROLE`` for the supplied attributes.

    Attributes left as ``None`` are not emitted, so the server default applies.
    A ``valid_until`` without an offset is taken as UTC.
    """
    options: list[str] = []
    for attribute, enabled, disabled in _ROLE_FLAGS:
        value = getattr(body, attribute)
        if value is not None:
            options.append(enabled if value else disabled)
    if body.connection_limit is not None:
        options.append(f"CONNECTION LIMIT {int(body.connection_limit)}")
    if body.password is not None:
        options.append(f"PASSWORD {quote_literal(body.password)}")
    if body.valid_until is not None:
        valid_until = body.valid_until
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=timezone.utc)
        options.append(f"VALID UNTIL {quote_literal(valid_until.isoformat())}")

    statement = f"CREATE ROLE {quote_ident(body.name, 'role name')}"
    if options:
        statement += " WITH " + " ".join(options)
    return statement


class MutationPlanner:
    """Turns create/alter requests into quoted DDL and reads the result back."""

    def __init__(self, executor: QueryExecutor, assembler: MetadataAssembler) -> None:
        self._executor = executor
        self._assembler = assembler
        self._log = logging.getLogger(__name__)

    async def _apply(self, connection: ConnectionConfig, operation: str, statements: list[str]) -> None:
        await self._executor.execute_transaction(connection, statements)
        self._log.info(
            "Mutation applied",
            extra=log_extra(
                operation=operation,
                statement_count=len(statements),
                database=connection.safe_dsn(),
            ),
        )

    async def create_schema(self, connection: ConnectionConfig, body: SchemaCreate) -> dict[str, Any]:
        statement = f"CREATE SCHEMA {quote_ident(body.name, 'schema name')}"
        if body.owner is not None:
            statement += f" AUTHORIZATION {quote_ident(body.owner, 'owner')}"
        await self._apply(connection, "create_schema", [statement])
        return await self._assembler.get_schema(connection, name=body.name)

    async def patch_schema(
        self, connection: ConnectionConfig, schema_id: int, body: SchemaPatch
    ) -> dict[str, Any]:
        current = await self._assembler.get_schema(connection, schema_id=schema_id)
        schema = quote_ident(current["name"], "schema name")

        statements: list[str] = []
        if body.owner is not None:
            statements.append(f"ALTER SCHEMA {schema} OWNER TO {quote_ident(body.owner, 'owner')}")
        if body.name is not None and body.name != current["name"]:
            statements.append(f"ALTER SCHEMA {schema} RENAME TO {quote_ident(body.name, 'schema name')}")
        if not statements:
            return current

        await self._apply(connection, "patch_schema", statements)
        return await self._assembler.get_schema(connection, schema_id=schema_id)

    async def create_table(self, connection: ConnectionConfig, body: TableCreate) -> dict[str, Any]:
        await self._apply(connection, "create_table", create_table_statements(body))
        return await self._assembler.get_table(connection, body.schema_name, body.name)

    async def create_role(self, connection: ConnectionConfig, body: RoleCreate) -> dict[str, Any]:
        await self._apply(connection, "create_role", [create_role_statement(body)])
        return await self._assembler.get_role(connection, body.name)
