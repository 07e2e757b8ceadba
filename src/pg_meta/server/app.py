"""FastAPI application for the metadata gateway.

This module builds the application by:
1. Loading configuration and configuring logging
2. Wiring the descriptor codec, executor, assembler and mutation planner
3. Installing the request-id middleware and the error-to-status mapping
4. Registering the HTTP routes
"""

import logging
import os
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..assembler import MetadataAssembler
from ..config import AppConfig, load_config
from ..descriptor import DescriptorCodec
from ..errors import (
    DatabaseConnectionError,
    DescriptorError,
    NotFoundError,
    QueryError,
    ValidationError,
)
from ..executor import QueryExecutor
from ..logging_utils import configure_logging, log_extra, request_id_context
from ..mutations import MutationPlanner
from .routes import load_routes
from .utils import REQUEST_ID_HEADER, header_store, new_request_id

logger = logging.getLogger(__name__)

# Descriptor and query failures share one status class.
ERROR_STATUS = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (DescriptorError, 500),
    (DatabaseConnectionError, 500),
    (QueryError, 500),
)


def _config_path() -> Path:
    """Get the configuration file path from environment or default."""
    return Path(os.environ.get("PG_META_CONFIG", "config.example.yml"))


def error_body(exc: Exception) -> dict:
    return {
        "error": {
            "type": type(exc).__name__,
            "message": str(exc),
            "code": getattr(exc, "code", None),
        }
    }


def _register_error_handlers(app: FastAPI) -> None:
    for exc_type, status_code in ERROR_STATUS:

        async def handle(request: Request, exc: Exception, status_code: int = status_code) -> JSONResponse:
            logger.warning(
                "Request failed",
                extra=log_extra(
                    path=request.url.path,
                    status_code=status_code,
                    error_type=type(exc).__name__,
                    error_code=getattr(exc, "code", None),
                ),
            )
            return JSONResponse(status_code=status_code, content=error_body(exc))

        app.add_exception_handler(exc_type, handle)


def create_app(config: AppConfig | None = None, executor: QueryExecutor | None = None) -> FastAPI:
    """Create and configure the gateway application.

    Args:
        config: Optional loaded configuration. If None, it is read from
            ``$PG_META_CONFIG``.
        executor: Optional executor to use instead of a pooled ``QueryExecutor``.

    Returns:
        FastAPI: The configured application
    """
    if config is None:
        config = load_config(_config_path())
    configure_logging(config.observability.log_level)

    codec = DescriptorCodec(config.crypto.key)
    executor = executor or QueryExecutor(config)
    assembler = MetadataAssembler(executor)
    planner = MutationPlanner(executor, assembler)

    app = FastAPI(
        title="pg-meta",
        description="PostgreSQL metadata gateway",
        version=__version__,
    )
    _register_error_handlers(app)

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        """Capture headers and bind a request id for log records."""
        incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = new_request_id(incoming if config.observability.propagate_request_ids else None)
        id_token = request_id_context.set(request_id)
        headers_token = header_store.set(dict(request.headers))
        try:
            response = await call_next(request)
        finally:
            header_store.reset(headers_token)
            request_id_context.reset(id_token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    load_routes(app, config, codec, executor, assembler, planner)
    return app
