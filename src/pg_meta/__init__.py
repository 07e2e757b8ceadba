"""PostgreSQL metadata gateway package."""

# Submodules are imported explicitly to keep package import free of
# FastAPI/asyncpg initialization:
# from pg_meta.descriptor import DescriptorCodec
# from pg_meta.executor import QueryExecutor
# from pg_meta.server.app import create_app

__version__ = "0.1.0"

__all__ = [
    "config",
    "server",
]
