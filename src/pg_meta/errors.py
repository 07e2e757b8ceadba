from __future__ import annotations


class ConfigError(ValueError):
    """Configuration is missing or invalid."""


class DescriptorError(ValueError):
    """The connection descriptor could not be turned into a connection config."""


class DecryptionError(DescriptorError):
    """The encrypted descriptor could not be decrypted."""


class MalformedConnectionString(DescriptorError):
    """The connection string is missing required fields or is not parseable."""


class DatabaseConnectionError(RuntimeError):
    """Pool or connection establishment against the target database failed."""


class QueryError(RuntimeError):
    """The database rejected or failed a statement."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(ValueError):
    """A mutation request body is malformed."""


class NotFoundError(LookupError):
    """The requested catalog object does not exist."""
