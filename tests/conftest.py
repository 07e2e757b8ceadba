import pytest

from pg_meta.config import AppConfig, LimitsConfig, PoolConfig
from pg_meta.descriptor import parse_connection_string


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        pool=PoolConfig(min_size=1, max_size=1, connect_timeout_seconds=3, close_timeout_seconds=2),
        limits=LimitsConfig(query_timeout_seconds=15, max_concurrent_queries=2),
    )


@pytest.fixture
def connection():
    return parse_connection_string("postgresql://postgres:secret@db:5432/postgres")
