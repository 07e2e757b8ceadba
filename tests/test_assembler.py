"""Tests for flat-to-hierarchical metadata assembly."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pg_meta.assembler import MetadataAssembler, group_rows
from pg_meta.errors import NotFoundError, QueryError


def table_row(schema: str, name: str, table_id: int) -> dict:
    return {
        "id": table_id,
        "schema": schema,
        "name": name,
        "owner": "postgres",
        "rls_enabled": False,
        "rls_forced": False,
        "bytes": 8192,
        "size": "8192 bytes",
        "live_rows_estimate": 1,
        "dead_rows_estimate": 0,
        "comment": None,
    }


def column_row(schema: str, table: str, name: str, position: int) -> dict:
    return {
        "schema": schema,
        "table": table,
        "name": name,
        "ordinal_position": position,
        "data_type": "bigint",
        "is_identity": False,
        "is_nullable": True,
        "is_updatable": True,
    }


FOREIGN_KEY = {
    "id": 16500,
    "constraint_name": "todos_user_id_fkey",
    "source_schema": "public",
    "source_table_name": "todos",
    "source_column_name": "user_id",
    "target_table_schema": "public",
    "target_table_name": "users",
    "target_column_name": "id",
}

SELF_REFERENCE = {
    "id": 16600,
    "constraint_name": "users_manager_id_fkey",
    "source_schema": "public",
    "source_table_name": "users",
    "source_column_name": "manager_id",
    "target_table_schema": "public",
    "target_table_name": "users",
    "target_column_name": "id",
}


def snapshot_results() -> dict:
    return {
        "tables": [
            table_row("public", "todos", 16400),
            table_row("public", "users", 16410),
            table_row("public", "orphans", 16420),
        ],
        "columns": [
            column_row("public", "users", "name", 2),
            column_row("public", "users", "id", 1),
            column_row("public", "todos", "id", 1),
            column_row("public", "todos", "user_id", 2),
        ],
        "primary_keys": [
            {"table_id": 16410, "schema": "public", "table": "users", "name": "id"},
            {"table_id": 16400, "schema": "public", "table": "todos", "name": "id"},
        ],
        "grants": [
            {
                "grantor": "postgres",
                "grantee": "postgres",
                "schema": "public",
                "table_name": "users",
                "privilege_type": "SELECT",
                "is_grantable": True,
                "with_hierarchy": True,
            }
        ],
        "policies": [],
        "relationships": [FOREIGN_KEY, SELF_REFERENCE],
    }


def make_executor() -> MagicMock:
    executor = MagicMock()
    executor.execute = AsyncMock(return_value=[])
    executor.execute_snapshot = AsyncMock(return_value=snapshot_results())
    return executor


def test_group_rows_keeps_order() -> None:
    rows = [{"k": "a", "v": 1}, {"k": "b", "v": 2}, {"k": "a", "v": 3}]
    grouped = group_rows(rows, ("k",))
    assert grouped[("a",)] == [{"k": "a", "v": 1}, {"k": "a", "v": 3}]
    assert grouped[("b",)] == [{"k": "b", "v": 2}]


class TestListTables:
    def test_nested_sequences_always_present(self, connection) -> None:
        assembler = MetadataAssembler(make_executor())
        tables = asyncio.run(assembler.list_tables(connection))

        assert [t["name"] for t in tables] == ["todos", "users", "orphans"]
        for table in tables:
            for key in ("columns", "primary_keys", "grants", "policies", "relationships"):
                assert isinstance(table[key], list)

        orphans = tables[2]
        assert orphans["columns"] == []
        assert orphans["relationships"] == []

    def test_columns_follow_ordinal_position(self, connection) -> None:
        assembler = MetadataAssembler(make_executor())
        users = asyncio.run(assembler.list_tables(connection))[1]
        assert [c["name"] for c in users["columns"]] == ["id", "name"]
        assert users["primary_keys"] == ["id"]
        assert users["grants"][0]["privilege_type"] == "SELECT"

    def test_relationships_attach_to_both_ends(self, connection) -> None:
        assembler = MetadataAssembler(make_executor())
        todos, users, _ = asyncio.run(assembler.list_tables(connection))

        assert todos["relationships"] == [FOREIGN_KEY]
        assert users["relationships"] == [FOREIGN_KEY, SELF_REFERENCE]

    def test_runs_one_snapshot(self, connection) -> None:
        executor = make_executor()
        assembler = MetadataAssembler(executor)
        asyncio.run(assembler.list_tables(connection, include_system_schemas=True))

        executor.execute_snapshot.assert_awaited_once()
        queries = executor.execute_snapshot.await_args.args[1]
        assert [q.name for q in queries] == [
            "tables",
            "columns",
            "primary_keys",
            "grants",
            "policies",
            "relationships",
        ]
        assert all("NOT IN ('information_schema'" not in q.sql for q in queries)
        executor.execute.assert_not_awaited()

    def test_catalog_failure_fails_whole_listing(self, connection) -> None:
        executor = make_executor()
        executor.execute_snapshot.side_effect = QueryError("permission denied", code="42501")
        assembler = MetadataAssembler(executor)
        with pytest.raises(QueryError):
            asyncio.run(assembler.list_tables(connection))

    def test_get_table_not_found(self, connection) -> None:
        executor = make_executor()
        executor.execute_snapshot.return_value = {
            "tables": [],
            "columns": [],
            "primary_keys": [],
            "grants": [],
            "policies": [],
            "relationships": [],
        }
        assembler = MetadataAssembler(executor)
        with pytest.raises(NotFoundError):
            asyncio.run(assembler.get_table(connection, "public", "missing"))


class TestListRoles:
    def test_grants_grouped_by_grantee(self, connection) -> None:
        executor = make_executor()
        executor.execute_snapshot.return_value = {
            "roles": [
                {"id": 10, "name": "postgres", "connection_limit": -1, "valid_until": None},
                {"id": 20, "name": "reader", "connection_limit": 5, "valid_until": None},
            ],
            "role_grants": [
                {
                    "grantee": "postgres",
                    "schema": "public",
                    "table_name": "users",
                    "privilege": "SELECT",
                    "is_grantable": True,
                }
            ],
        }
        assembler = MetadataAssembler(executor)
        postgres, reader = asyncio.run(assembler.list_roles(connection))

        assert postgres["grants"] == [
            {"schema": "public", "table_name": "users", "privilege": "SELECT", "is_grantable": True}
        ]
        assert reader["grants"] == []
        queries = executor.execute_snapshot.await_args.args[1]
        assert "NOT LIKE 'pg\\_%'" in queries[0].sql
        assert "NOT IN ('information_schema'" in queries[1].sql


class TestFlatListings:
    def test_get_schema_not_found(self, connection) -> None:
        assembler = MetadataAssembler(make_executor())
        with pytest.raises(NotFoundError):
            asyncio.run(assembler.get_schema(connection, schema_id=99999))

    def test_get_schema_by_id(self, connection) -> None:
        executor = make_executor()
        executor.execute.return_value = [{"id": 2200, "name": "public", "owner": "postgres"}]
        assembler = MetadataAssembler(executor)

        schema = asyncio.run(assembler.get_schema(connection, schema_id=2200))

        assert schema["name"] == "public"
        params = executor.execute.await_args.args[2]
        assert params == (2200, None)

    def test_get_version_returns_first_row(self, connection) -> None:
        executor = make_executor()
        executor.execute.return_value = [
            {"version_number": "120003", "version": "12.3", "version_string": "PostgreSQL 12.3"}
        ]
        assembler = MetadataAssembler(executor)
        assert asyncio.run(assembler.get_version(connection))["version_number"] == "120003"

    @pytest.mark.parametrize("method", ["list_types", "list_functions"])
    def test_system_filter_is_forwarded(self, connection, method) -> None:
        executor = make_executor()
        assembler = MetadataAssembler(executor)

        asyncio.run(getattr(assembler, method)(connection, False))
        excluded_sql = executor.execute.await_args.args[1]
        asyncio.run(getattr(assembler, method)(connection, True))
        included_sql = executor.execute.await_args.args[1]

        assert "NOT IN ('information_schema'" in excluded_sql
        assert "NOT IN ('information_schema'" not in included_sql
