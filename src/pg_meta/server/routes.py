"""HTTP routes of the metadata gateway.

Every database route resolves its connection descriptor per request: the
``X-Connection-Encrypted`` header wins, otherwise the configured default
connection string is used. Boolean query flags accept true/false/1/0/yes/no.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Query

from .. import __version__
from ..assembler import MetadataAssembler
from ..config import AppConfig
from ..descriptor import ConnectionConfig, DescriptorCodec
from ..errors import DescriptorError
from ..executor import QueryExecutor
from ..guardrails import parse_bool_flag
from ..models import QueryRequest, RoleCreate, SchemaCreate, SchemaPatch, TableCreate
from ..mutations import MutationPlanner
from ..serialization import convert_rows_to_json_safe
from .utils import ENCRYPTED_CONNECTION_HEADER, header_store

logger = logging.getLogger(__name__)


def load_routes(
    app: FastAPI,
    config: AppConfig,
    codec: DescriptorCodec,
    executor: QueryExecutor,
    assembler: MetadataAssembler,
    planner: MutationPlanner,
) -> None:
    """Register all gateway routes on the application.

    Args:
        app: The FastAPI application to register routes with
        config: Loaded application configuration
        codec: Descriptor codec holding the process-wide decryption key
        executor: Executor for raw SQL
        assembler: Metadata assembler for listing routes
        planner: Mutation planner for create/alter routes
    """

    async def connection() -> ConnectionConfig:
        encrypted = header_store.get().get(ENCRYPTED_CONNECTION_HEADER)
        if encrypted:
            return codec.decode(encrypted, encrypted=True)
        if config.database.connection:
            return codec.decode(config.database.connection)
        raise DescriptorError("No connection descriptor supplied and no default connection configured")

    def include_system_schemas(
        value: str | None = Query(default=None, alias="includeSystemSchemas"),
    ) -> bool:
        return parse_bool_flag(value)

    def include_extension_schemas(
        value: str | None = Query(default=None, alias="includeSystemSchemas"),
    ) -> bool:
        return parse_bool_flag(value, default=True)

    def include_default_roles(
        value: str | None = Query(default=None, alias="includeDefaultRoles"),
    ) -> bool:
        return parse_bool_flag(value)

    async def run_query(conn: ConnectionConfig, sql: str) -> list[dict[str, Any]]:
        rows = await executor.execute(conn, sql)
        return convert_rows_to_json_safe(rows)

    @app.get("/")
    async def index() -> dict:
        return {"status": "ok", "name": "pg-meta", "version": __version__}

    @app.get("/health")
    async def health() -> dict:
        return {"date": datetime.now(timezone.utc).isoformat()}

    @app.get("/query")
    async def query_get(
        query: str = Query(...), conn: ConnectionConfig = Depends(connection)
    ) -> list[dict[str, Any]]:
        return await run_query(conn, query)

    @app.post("/query")
    async def query_post(
        body: QueryRequest, conn: ConnectionConfig = Depends(connection)
    ) -> list[dict[str, Any]]:
        return await run_query(conn, body.query)

    @app.get("/config")
    async def config_settings(conn: ConnectionConfig = Depends(connection)) -> list[dict[str, Any]]:
        return await assembler.list_config(conn)

    @app.get("/config/version")
    async def config_version(conn: ConnectionConfig = Depends(connection)) -> dict[str, Any]:
        return await assembler.get_version(conn)

    @app.get("/schemas")
    async def schemas_list(
        include_system: bool = Depends(include_system_schemas),
        conn: ConnectionConfig = Depends(connection),
    ) -> list[dict[str, Any]]:
        return await assembler.list_schemas(conn, include_system)

    @app.post("/schemas")
    async def schemas_create(
        body: SchemaCreate, conn: ConnectionConfig = Depends(connection)
    ) -> dict[str, Any]:
        return await planner.create_schema(conn, body)

    @app.patch("/schemas/{schema_id}")
    async def schemas_patch(
        schema_id: int, body: SchemaPatch, conn: ConnectionConfig = Depends(connection)
    ) -> dict[str, Any]:
        return await planner.patch_schema(conn, schema_id, body)

    @app.get("/types")
    async def types_list(
        include_system: bool = Depends(include_system_schemas),
        conn: ConnectionConfig = Depends(connection),
    ) -> list[dict[str, Any]]:
        return await assembler.list_types(conn, include_system)

    @app.get("/functions")
    async def functions_list(
        include_system: bool = Depends(include_system_schemas),
        conn: ConnectionConfig = Depends(connection),
    ) -> list[dict[str, Any]]:
        return await assembler.list_functions(conn, include_system)

    @app.get("/tables")
    async def tables_list(
        include_system: bool = Depends(include_system_schemas),
        conn: ConnectionConfig = Depends(connection),
    ) -> list[dict[str, Any]]:
        return await assembler.list_tables(conn, include_system)

    @app.post("/tables")
    async def tables_create(
        body: TableCreate, conn: ConnectionConfig = Depends(connection)
    ) -> dict[str, Any]:
        return await planner.create_table(conn, body)

    @app.get("/extensions")
    async def extensions_list(
        include_system: bool = Depends(include_extension_schemas),
        conn: ConnectionConfig = Depends(connection),
    ) -> list[dict[str, Any]]:
        return await assembler.list_extensions(conn, include_system)

    @app.get("/roles")
    async def roles_list(
        include_system: bool = Depends(include_system_schemas),
        include_defaults: bool = Depends(include_default_roles),
        conn: ConnectionConfig = Depends(connection),
    ) -> list[dict[str, Any]]:
        return await assembler.list_roles(conn, include_system, include_defaults)

    @app.post("/roles")
    async def roles_create(
        body: RoleCreate, conn: ConnectionConfig = Depends(connection)
    ) -> dict[str, Any]:
        return await planner.create_role(conn, body)

    logger.debug("Registered %d routes", len(app.routes))
