from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Sequence

from . import catalog
from .descriptor import ConnectionConfig
from .errors import NotFoundError
from .executor import QueryExecutor

Row = dict[str, Any]
TableKey = tuple[str, str]

_TABLE_SOURCES = ("columns", "primary_keys", "grants", "policies")


def group_rows(rows: Iterable[Row], keys: Sequence[str]) -> dict[tuple[Any, ...], list[Row]]:
    """
    Index flat catalog rows by the values of ``keys``.

    Rows keep their catalog order inside each group.
    """
    grouped: dict[tuple[Any, ...], list[Row]] = defaultdict(list)
    for row in rows:
        grouped[tuple(row[key] for key in keys)].append(row)
    return dict(grouped)


def _relationships_by_table(rows: Iterable[Row]) -> dict[TableKey, list[Row]]:
    grouped: dict[TableKey, list[Row]] = defaultdict(list)
    for row in rows:
        source = (row["source_schema"], row["source_table_name"])
        target = (row["target_table_schema"], row["target_table_name"])
        grouped[source].append(row)
        if target != source:
            grouped[target].append(row)
    return dict(grouped)


class MetadataAssembler:
    """Builds the listing payloads out of catalog queries."""

    def __init__(self, executor: QueryExecutor) -> None:
        self._executor = executor
        self._log = logging.getLogger(__name__)

    async def _fetch(self, connection: ConnectionConfig, query: catalog.CatalogQuery) -> list[Row]:
        return await self._executor.execute(connection, query.sql, query.params)

    async def list_schemas(
        self,
        connection: ConnectionConfig,
        include_system_schemas: bool = False,
        schema_id: int | None = None,
        name: str | None = None,
    ) -> list[Row]:
        return await self._fetch(connection, catalog.schemas(include_system_schemas, schema_id, name))

    async def get_schema(
        self,
        connection: ConnectionConfig,
        schema_id: int | None = None,
        name: str | None = None,
    ) -> Row:
        rows = await self.list_schemas(connection, True, schema_id=schema_id, name=name)
        if not rows:
            raise NotFoundError(f"Schema not found: {name if schema_id is None else schema_id}")
        return rows[0]

    async def list_tables(
        self,
        connection: ConnectionConfig,
        include_system_schemas: bool = False,
        schema: str | None = None,
        name: str | None = None,
    ) -> list[Row]:
        """
        List tables with their nested columns, keys, grants, policies and relationships.

        All six catalog queries run in one read-only snapshot, so a table
        created or dropped concurrently is either fully present or absent.
        """
        queries = [
            catalog.tables(include_system_schemas, schema, name),
            catalog.columns(include_system_schemas, schema, name),
            catalog.primary_keys(include_system_schemas, schema, name),
            catalog.grants(include_system_schemas, schema, name),
            catalog.policies(include_system_schemas, schema, name),
            catalog.relationships(include_system_schemas, schema, name),
        ]
        results = await self._executor.execute_snapshot(connection, queries)

        grouped = {
            "columns": group_rows(results["columns"], ("schema", "table")),
            "primary_keys": group_rows(results["primary_keys"], ("schema", "table")),
            "grants": group_rows(results["grants"], ("schema", "table_name")),
            "policies": group_rows(results["policies"], ("schema", "table")),
        }
        relationships = _relationships_by_table(results["relationships"])

        tables: list[Row] = []
        for row in results["tables"]:
            key = (row["schema"], row["name"])
            table = dict(row)
            for source in _TABLE_SOURCES:
                table[source] = list(grouped[source].get(key, []))
            table["columns"].sort(key=lambda column: column["ordinal_position"])
            table["primary_keys"] = [pk["name"] for pk in table["primary_keys"]]
            table["relationships"] = list(relationships.get(key, []))
            tables.append(table)

        self._log.debug("Assembled %d tables", len(tables))
        return tables

    async def get_table(self, connection: ConnectionConfig, schema: str, name: str) -> Row:
        tables = await self.list_tables(connection, True, schema=schema, name=name)
        if not tables:
            raise NotFoundError(f"Table not found: {schema}.{name}")
        return tables[0]

    async def list_types(
        self, connection: ConnectionConfig, include_system_schemas: bool = False
    ) -> list[Row]:
        return await self._fetch(connection, catalog.types(include_system_schemas))

    async def list_functions(
        self, connection: ConnectionConfig, include_system_schemas: bool = False
    ) -> list[Row]:
        return await self._fetch(connection, catalog.functions(include_system_schemas))

    async def list_extensions(
        self, connection: ConnectionConfig, include_system_schemas: bool = True
    ) -> list[Row]:
        """Installed extensions, including those in system schemas unless excluded."""
        return await self._fetch(connection, catalog.extensions(include_system_schemas))

    async def list_roles(
        self,
        connection: ConnectionConfig,
        include_system_schemas: bool = False,
        include_default_roles: bool = False,
        name: str | None = None,
    ) -> list[Row]:
        queries = [
            catalog.roles(include_default_roles, name),
            catalog.role_grants(include_system_schemas, name),
        ]
        results = await self._executor.execute_snapshot(connection, queries)
        grants = group_rows(results["role_grants"], ("grantee",))

        roles: list[Row] = []
        for row in results["roles"]:
            role = dict(row)
            role["grants"] = [
                {key: value for key, value in grant.items() if key != "grantee"}
                for grant in grants.get((row["name"],), [])
            ]
            roles.append(role)
        return roles

    async def get_role(self, connection: ConnectionConfig, name: str) -> Row:
        roles = await self.list_roles(connection, include_default_roles=True, name=name)
        if not roles:
            raise NotFoundError(f"Role not found: {name}")
        return roles[0]

    async def list_config(self, connection: ConnectionConfig) -> list[Row]:
        return await self._fetch(connection, catalog.config_settings())

    async def get_version(self, connection: ConnectionConfig) -> Row:
        rows = await self._fetch(connection, catalog.version())
        return rows[0]
