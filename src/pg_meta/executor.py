from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Sequence, TypeVar

import asyncpg

from .catalog import CatalogQuery
from .config import AppConfig
from .descriptor import ConnectionConfig
from .errors import DatabaseConnectionError, QueryError
from .guardrails import detect_statement_type
from .logging_utils import log_extra

T = TypeVar("T")

_CONNECT_ERRORS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)
_QUERY_CANCELED = "57014"
_MULTIPLE_COMMANDS = "cannot insert multiple commands into a prepared statement"


class QueryExecutor:
    """Runs statements on a pool opened for one descriptor and closed right after."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._log = logging.getLogger(__name__)
        self._semaphore = asyncio.Semaphore(config.limits.max_concurrent_queries)

    async def execute(
        self,
        connection: ConnectionConfig,
        sql: str,
        params: Iterable[Any] = (),
    ) -> list[dict[str, Any]]:
        """
        Execute one statement and return its rows as dictionaries.

        Parameters:
        connection (ConnectionConfig): Target database descriptor
        sql (str): SQL statement, with ``$n`` placeholders for params
        params (Iterable[Any]): Bound parameter values

        Returns:
        list[dict[str, Any]]: Result rows, empty for statements without a result set
        and for multi-statement scripts

        Raises:
        DatabaseConnectionError: If the pool cannot be established
        QueryError: If the database rejects or fails the statement
        """
        bound = tuple(params)

        async def work(conn: asyncpg.Connection) -> list[dict[str, Any]]:
            try:
                records = await conn.fetch(sql, *bound)
            except asyncpg.PostgresSyntaxError as exc:
                if bound or _MULTIPLE_COMMANDS not in str(exc):
                    raise
                # Scripts only run over the simple query protocol, which returns no rows.
                await conn.execute(sql)
                return []
            return [dict(record) for record in records]

        return await self._run(connection, detect_statement_type(sql), work)

    async def execute_snapshot(
        self, connection: ConnectionConfig, queries: Sequence[CatalogQuery]
    ) -> dict[str, list[dict[str, Any]]]:
        """Run several read-only queries against one repeatable-read snapshot."""

        async def work(conn: asyncpg.Connection) -> dict[str, list[dict[str, Any]]]:
            results: dict[str, list[dict[str, Any]]] = {}
            async with conn.transaction(isolation="repeatable_read", readonly=True):
                for query in queries:
                    records = await conn.fetch(query.sql, *query.params)
                    results[query.name] = [dict(record) for record in records]
            return results

        return await self._run(connection, "SNAPSHOT", work)

    async def execute_transaction(
        self, connection: ConnectionConfig, statements: Sequence[str]
    ) -> None:
        """Run DDL/DCL statements in a single transaction."""

        async def work(conn: asyncpg.Connection) -> None:
            async with conn.transaction():
                for statement in statements:
                    await conn.execute(statement)

        statement_type = detect_statement_type(statements[0]) if statements else "NOOP"
        await self._run(connection, statement_type, work)

    async def _run(
        self,
        connection: ConnectionConfig,
        statement_type: str,
        work: Callable[[asyncpg.Connection], Awaitable[T]],
    ) -> T:
        query_id = str(uuid.uuid4())
        started = time.perf_counter()

        async with self._pool(connection) as pool:
            try:
                conn = await pool.acquire()
            except _CONNECT_ERRORS as exc:
                raise self._connection_error(connection, exc) from exc
            try:
                result = await work(conn)
            except asyncpg.PostgresError as exc:
                self._log_failure(connection, query_id, statement_type, exc)
                raise QueryError(str(exc), code=exc.sqlstate) from exc
            except asyncio.TimeoutError as exc:
                self._log_failure(connection, query_id, statement_type, exc)
                raise QueryError(
                    f"Query exceeded {self._config.limits.query_timeout_seconds}s timeout",
                    code=_QUERY_CANCELED,
                ) from exc
            except asyncpg.InterfaceError as exc:
                self._log_failure(connection, query_id, statement_type, exc)
                raise QueryError(str(exc)) from exc
            finally:
                await self._release(pool, conn, connection)

        self._log.info(
            "Query executed",
            extra=log_extra(
                query_id=query_id,
                statement_type=statement_type,
                database=connection.safe_dsn(),
                row_count=len(result) if isinstance(result, list) else None,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            ),
        )
        return result

    @asynccontextmanager
    async def _pool(self, connection: ConnectionConfig) -> AsyncIterator[asyncpg.Pool]:
        async with self._semaphore:
            try:
                pool = await asyncpg.create_pool(
                    **connection.pool_kwargs(),
                    min_size=self._config.pool.min_size,
                    max_size=self._config.pool.max_size,
                    timeout=self._config.pool.connect_timeout_seconds,
                    command_timeout=self._config.limits.query_timeout_seconds,
                )
            except _CONNECT_ERRORS as exc:
                raise self._connection_error(connection, exc) from exc
            try:
                yield pool
            finally:
                await self._close(pool, connection)

    async def _release(
        self, pool: asyncpg.Pool, conn: asyncpg.Connection, connection: ConnectionConfig
    ) -> None:
        try:
            await pool.release(conn)
        except Exception as exc:
            self._log.warning(
                "Connection release failed",
                extra=log_extra(database=connection.safe_dsn(), error_message=str(exc)),
            )

    async def _close(self, pool: asyncpg.Pool, connection: ConnectionConfig) -> None:
        try:
            await asyncio.wait_for(pool.close(), timeout=self._config.pool.close_timeout_seconds)
        except asyncio.CancelledError:
            pool.terminate()
            raise
        except Exception as exc:
            self._log.warning(
                "Pool teardown failed",
                extra=log_extra(database=connection.safe_dsn(), error_message=str(exc)),
            )
            pool.terminate()

    def _connection_error(
        self, connection: ConnectionConfig, exc: BaseException
    ) -> DatabaseConnectionError:
        self._log.warning(
            "Database connection failed",
            extra=log_extra(
                database=connection.safe_dsn(),
                error_type=type(exc).__name__,
                error_message=str(exc),
            ),
        )
        reason = str(exc) or type(exc).__name__
        return DatabaseConnectionError(f"Could not connect to {connection.safe_dsn()}: {reason}")

    def _log_failure(
        self,
        connection: ConnectionConfig,
        query_id: str,
        statement_type: str,
        exc: BaseException,
    ) -> None:
        self._log.warning(
            "Query failed",
            extra=log_extra(
                query_id=query_id,
                statement_type=statement_type,
                database=connection.safe_dsn(),
                error_code=getattr(exc, "sqlstate", None),
                error_message=str(exc),
            ),
        )
