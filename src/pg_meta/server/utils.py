"""Request-scoped state shared between the middleware and route dependencies."""

import contextvars
import uuid
from typing import Any

ENCRYPTED_CONNECTION_HEADER = "x-connection-encrypted"
REQUEST_ID_HEADER = "x-request-id"

request_headers_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "request_headers", default={}
)


class HeaderStore:
    """Context-local store for the current request's headers."""

    def set(self, headers: dict[str, Any]) -> contextvars.Token:
        return request_headers_context.set(headers)

    def get(self) -> dict[str, Any]:
        return request_headers_context.get({})

    def reset(self, token: contextvars.Token) -> None:
        request_headers_context.reset(token)


header_store = HeaderStore()


def new_request_id(value: str | None = None) -> str:
    """Keep a caller-supplied request id or generate one for tracing."""
    return value or str(uuid.uuid4())
