"""Parameterized catalog queries.

Every builder takes ``include_system_schemas`` and filters through
:func:`system_schema_filter`, so schemas, tables, types, functions and role
grants all hide exactly the same namespaces. Optional name filters are bound
as ``$n`` parameters; ``NULL`` means "no filter".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

SYSTEM_SCHEMAS = ("information_schema", "pg_catalog", "pg_toast")
SYSTEM_SCHEMA_PATTERNS = ("pg\\_temp\\_%", "pg\\_toast\\_temp\\_%")


@dataclass(frozen=True)
class CatalogQuery:
    name: str
    sql: str
    params: tuple[Any, ...] = ()


def system_schema_filter(column: str, include_system_schemas: bool) -> str:
    if include_system_schemas:
        return "TRUE"
    reserved = ", ".join(f"'{name}'" for name in SYSTEM_SCHEMAS)
    patterns = " AND ".join(f"{column} NOT LIKE '{pattern}'" for pattern in SYSTEM_SCHEMA_PATTERNS)
    return f"({column} NOT IN ({reserved}) AND {patterns})"


def schemas(
    include_system_schemas: bool = False,
    schema_id: int | None = None,
    name: str | None = None,
) -> CatalogQuery:
    sql = f"""
        SELECT
            n.oid::int8 AS id,
            n.nspname AS name,
            pg_catalog.pg_get_userbyid(n.nspowner) AS owner
        FROM pg_catalog.pg_namespace n
        WHERE {system_schema_filter("n.nspname", include_system_schemas)}
          AND ($1::int8 IS NULL OR n.oid::int8 = $1::int8)
          AND ($2::text IS NULL OR n.nspname = $2::text)
        ORDER BY n.nspname
    """
    return CatalogQuery("schemas", sql, (schema_id, name))


def tables(
    include_system_schemas: bool = False,
    schema: str | None = None,
    table: str | None = None,
) -> CatalogQuery:
    sql = f"""
        SELECT
            c.oid::int8 AS id,
            n.nspname AS schema,
            c.relname AS name,
            pg_catalog.pg_get_userbyid(c.relowner) AS owner,
            c.relrowsecurity AS rls_enabled,
            c.relforcerowsecurity AS rls_forced,
            pg_catalog.pg_total_relation_size(c.oid)::int8 AS bytes,
            pg_catalog.pg_size_pretty(pg_catalog.pg_total_relation_size(c.oid)) AS size,
            pg_catalog.pg_stat_get_live_tuples(c.oid)::int8 AS live_rows_estimate,
            pg_catalog.pg_stat_get_dead_tuples(c.oid)::int8 AS dead_rows_estimate,
            pg_catalog.obj_description(c.oid, 'pg_class') AS comment
        FROM pg_catalog.pg_class c
        JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
        WHERE c.relkind IN ('r', 'p')
          AND {system_schema_filter("n.nspname", include_system_schemas)}
          AND ($1::text IS NULL OR n.nspname = $1::text)
          AND ($2::text IS NULL OR c.relname = $2::text)
        ORDER BY n.nspname, c.relname
    """
    return CatalogQuery("tables", sql, (schema, table))


def columns(
    include_system_schemas: bool = False,
    schema: str | None = None,
    table: str | None = None,
) -> CatalogQuery:
    sql = f"""
        SELECT
            a.attrelid::int8 AS table_id,
            c.table_schema AS schema,
            c.table_name AS "table",
            c.column_name AS name,
            c.ordinal_position::int AS ordinal_position,
            c.data_type,
            c.udt_name AS format,
            c.column_default AS default_value,
            c.is_identity = 'YES' AS is_identity,
            c.identity_generation,
            c.is_nullable = 'YES' AS is_nullable,
            c.is_updatable = 'YES' AS is_updatable,
            pg_catalog.col_description(a.attrelid, a.attnum) AS comment
        FROM information_schema.columns c
        JOIN pg_catalog.pg_namespace n ON n.nspname = c.table_schema
        JOIN pg_catalog.pg_class cl ON cl.relnamespace = n.oid AND cl.relname = c.table_name
        JOIN pg_catalog.pg_attribute a ON a.attrelid = cl.oid AND a.attname = c.column_name
        WHERE {system_schema_filter("c.table_schema", include_system_schemas)}
          AND ($1::text IS NULL OR c.table_schema = $1::text)
          AND ($2::text IS NULL OR c.table_name = $2::text)
        ORDER BY c.table_schema, c.table_name, c.ordinal_position
    """
    return CatalogQuery("columns", sql, (schema, table))


def primary_keys(
    include_system_schemas: bool = False,
    schema: str | None = None,
    table: str | None = None,
) -> CatalogQuery:
    sql = f"""
        SELECT
            c.oid::int8 AS table_id,
            n.nspname AS schema,
            c.relname AS "table",
            a.attname AS name
        FROM pg_catalog.pg_index i
        JOIN pg_catalog.pg_class c ON c.oid = i.indrelid
        JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
        JOIN pg_catalog.pg_attribute a ON a.attrelid = c.oid AND a.attnum = ANY (i.indkey)
        WHERE i.indisprimary
          AND {system_schema_filter("n.nspname", include_system_schemas)}
          AND ($1::text IS NULL OR n.nspname = $1::text)
          AND ($2::text IS NULL OR c.relname = $2::text)
        ORDER BY n.nspname, c.relname, array_position(i.indkey::int2[], a.attnum)
    """
    return CatalogQuery("primary_keys", sql, (schema, table))


def relationships(
    include_system_schemas: bool = False,
    schema: str | None = None,
    table: str | None = None,
) -> CatalogQuery:
    # A table filter matches the constraint from either end.
    sql = f"""
        SELECT
            con.oid::int8 AS id,
            con.conname AS constraint_name,
            sn.nspname AS source_schema,
            sc.relname AS source_table_name,
            sa.attname AS source_column_name,
            tn.nspname AS target_table_schema,
            tc.relname AS target_table_name,
            ta.attname AS target_column_name
        FROM pg_catalog.pg_constraint con
        CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
            WITH ORDINALITY AS k(source_attnum, target_attnum, position)
        JOIN pg_catalog.pg_class sc ON sc.oid = con.conrelid
        JOIN pg_catalog.pg_namespace sn ON sn.oid = sc.relnamespace
        JOIN pg_catalog.pg_attribute sa ON sa.attrelid = con.conrelid AND sa.attnum = k.source_attnum
        JOIN pg_catalog.pg_class tc ON tc.oid = con.confrelid
        JOIN pg_catalog.pg_namespace tn ON tn.oid = tc.relnamespace
        JOIN pg_catalog.pg_attribute ta ON ta.attrelid = con.confrelid AND ta.attnum = k.target_attnum
        WHERE con.contype = 'f'
          AND {system_schema_filter("sn.nspname", include_system_schemas)}
          AND {system_schema_filter("tn.nspname", include_system_schemas)}
          AND (
            (($1::text IS NULL OR sn.nspname = $1::text) AND ($2::text IS NULL OR sc.relname = $2::text))
            OR (($1::text IS NULL OR tn.nspname = $1::text) AND ($2::text IS NULL OR tc.relname = $2::text))
          )
        ORDER BY sn.nspname, sc.relname, con.conname, k.position
    """
    return CatalogQuery("relationships", sql, (schema, table))


def grants(
    include_system_schemas: bool = False,
    schema: str | None = None,
    table: str | None = None,
) -> CatalogQuery:
    sql = f"""
        SELECT
            g.grantor,
            g.grantee,
            g.table_schema AS schema,
            g.table_name,
            g.privilege_type,
            g.is_grantable = 'YES' AS is_grantable,
            g.with_hierarchy = 'YES' AS with_hierarchy
        FROM information_schema.role_table_grants g
        WHERE {system_schema_filter("g.table_schema", include_system_schemas)}
          AND ($1::text IS NULL OR g.table_schema = $1::text)
          AND ($2::text IS NULL OR g.table_name = $2::text)
        ORDER BY g.table_schema, g.table_name, g.grantee, g.privilege_type
    """
    return CatalogQuery("grants", sql, (schema, table))


def policies(
    include_system_schemas: bool = False,
    schema: str | None = None,
    table: str | None = None,
) -> CatalogQuery:
    sql = f"""
        SELECT
            p.oid::int8 AS id,
            n.nspname AS schema,
            c.relname AS "table",
            p.polname AS name,
            CASE WHEN p.polpermissive THEN 'PERMISSIVE' ELSE 'RESTRICTIVE' END AS action,
            ARRAY(
                SELECT CASE WHEN r = 0 THEN 'public' ELSE pg_catalog.pg_get_userbyid(r) END
                FROM unnest(p.polroles) AS r
            )::text[] AS roles,
            CASE p.polcmd
                WHEN 'r' THEN 'SELECT'
                WHEN 'a' THEN 'INSERT'
                WHEN 'w' THEN 'UPDATE'
                WHEN 'd' THEN 'DELETE'
                ELSE 'ALL'
            END AS command,
            pg_catalog.pg_get_expr(p.polqual, p.polrelid) AS definition,
            pg_catalog.pg_get_expr(p.polwithcheck, p.polrelid) AS "check"
        FROM pg_catalog.pg_policy p
        JOIN pg_catalog.pg_class c ON c.oid = p.polrelid
        JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
        WHERE {system_schema_filter("n.nspname", include_system_schemas)}
          AND ($1::text IS NULL OR n.nspname = $1::text)
          AND ($2::text IS NULL OR c.relname = $2::text)
        ORDER BY n.nspname, c.relname, p.polname
    """
    return CatalogQuery("policies", sql, (schema, table))


def types(include_system_schemas: bool = False) -> CatalogQuery:
    # Skips implicit array types and table row types.
    sql = f"""
        SELECT
            t.oid::int8 AS id,
            n.nspname AS schema,
            t.typname AS name,
            pg_catalog.format_type(t.oid, NULL) AS format,
            ARRAY(
                SELECT e.enumlabel
                FROM pg_catalog.pg_enum e
                WHERE e.enumtypid = t.oid
                ORDER BY e.enumsortorder
            )::text[] AS enums,
            pg_catalog.obj_description(t.oid, 'pg_type') AS description
        FROM pg_catalog.pg_type t
        JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
        WHERE (t.typrelid = 0 OR (SELECT c.relkind = 'c' FROM pg_catalog.pg_class c WHERE c.oid = t.typrelid))
          AND NOT EXISTS (
            SELECT 1 FROM pg_catalog.pg_type el
            WHERE el.oid = t.typelem AND el.typarray = t.oid
          )
          AND {system_schema_filter("n.nspname", include_system_schemas)}
        ORDER BY n.nspname, t.typname
    """
    return CatalogQuery("types", sql)


def functions(include_system_schemas: bool = False) -> CatalogQuery:
    sql = f"""
        SELECT
            p.oid::int8 AS id,
            n.nspname AS schema,
            p.proname AS name,
            l.lanname AS language,
            p.prosrc AS definition,
            pg_catalog.pg_get_function_arguments(p.oid) AS argument_types,
            pg_catalog.pg_get_function_result(p.oid) AS return_type,
            CASE p.prokind
                WHEN 'f' THEN 'function'
                WHEN 'p' THEN 'procedure'
                WHEN 'a' THEN 'aggregate'
                WHEN 'w' THEN 'window'
            END AS kind
        FROM pg_catalog.pg_proc p
        JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
        JOIN pg_catalog.pg_language l ON l.oid = p.prolang
        WHERE {system_schema_filter("n.nspname", include_system_schemas)}
        ORDER BY n.nspname, p.proname, p.oid
    """
    return CatalogQuery("functions", sql)


def extensions(include_system_schemas: bool = True) -> CatalogQuery:
    sql = f"""
        SELECT
            e.extname AS name,
            n.nspname AS schema,
            e.extversion AS installed_version,
            a.default_version,
            a.comment
        FROM pg_catalog.pg_extension e
        JOIN pg_catalog.pg_namespace n ON n.oid = e.extnamespace
        LEFT JOIN pg_catalog.pg_available_extensions a ON a.name = e.extname
        WHERE {system_schema_filter("n.nspname", include_system_schemas)}
        ORDER BY e.extname
    """
    return CatalogQuery("extensions", sql)


def roles(include_default_roles: bool = False, name: str | None = None) -> CatalogQuery:
    default_roles = "TRUE" if include_default_roles else "r.rolname NOT LIKE 'pg\\_%'"
    sql = f"""
        SELECT
            r.oid::int8 AS id,
            r.rolname AS name,
            r.rolsuper AS is_superuser,
            r.rolcreaterole AS can_create_role,
            r.rolcreatedb AS can_create_db,
            r.rolcanlogin AS can_login,
            r.rolreplication AS is_replication_role,
            r.rolbypassrls AS can_bypass_rls,
            r.rolinherit AS inherit_role,
            r.rolconnlimit AS connection_limit,
            to_char(
                r.rolvaliduntil AT TIME ZONE 'UTC',
                'YYYY-MM-DD"T"HH24:MI:SS.MS"Z"'
            ) AS valid_until,
            r.rolconfig AS config
        FROM pg_catalog.pg_roles r
        WHERE {default_roles}
          AND ($1::text IS NULL OR r.rolname = $1::text)
        ORDER BY r.rolname
    """
    return CatalogQuery("roles", sql, (name,))


def role_grants(include_system_schemas: bool = False, name: str | None = None) -> CatalogQuery:
    sql = f"""
        SELECT
            g.grantee,
            g.table_schema AS schema,
            g.table_name,
            g.privilege_type AS privilege,
            g.is_grantable = 'YES' AS is_grantable
        FROM information_schema.role_table_grants g
        WHERE {system_schema_filter("g.table_schema", include_system_schemas)}
          AND ($1::text IS NULL OR g.grantee = $1::text)
        ORDER BY g.grantee, g.table_schema, g.table_name, g.privilege_type
    """
    return CatalogQuery("role_grants", sql, (name,))


def config_settings() -> CatalogQuery:
    sql = """
        SELECT
            s.name,
            s.setting,
            s.unit,
            s.category,
            s.short_desc AS description,
            s.extra_desc AS extra_description,
            s.context,
            s.vartype,
            s.source,
            s.min_val,
            s.max_val,
            s.enumvals,
            s.boot_val,
            s.reset_val,
            s.pending_restart
        FROM pg_catalog.pg_settings s
        ORDER BY s.name
    """
    return CatalogQuery("config", sql)


def version() -> CatalogQuery:
    sql = """
        SELECT
            current_setting('server_version_num') AS version_number,
            current_setting('server_version') AS version,
            version() AS version_string
    """
    return CatalogQuery("version", sql)
