"""Shared test fixtures and configuration."""

from pathlib import Path

import pytest

from docindex_server.config import Settings
from docindex_server.registry import IndexRegistry
from docindex_server.search.index import Index
from docindex_server.search.store import IndexFileStore


# Complete test environment that overrides every config value read from env
TEST_ENV = {
    "DATA_DIR": "data",
    "HOST": "127.0.0.1",
    "PORT": "3000",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
    "ACCESS_LOG": "true",
    "PERSIST_MODE": "sync",
    "FLUSH_INTERVAL_SECONDS": "1.0",
    "DEFAULT_VECTOR_LIMIT": "5",
    "DEFAULT_VECTOR_FIELD": "vector",
    "GZIP_MINIMUM_SIZE": "500",
}


@pytest.fixture
def clean_env(monkeypatch):
    """Pin every setting so a developer's shell or .env cannot leak into tests."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    return TEST_ENV


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def store(data_dir: Path) -> IndexFileStore:
    return IndexFileStore(data_dir)


@pytest.fixture
def index(store: IndexFileStore) -> Index:
    return Index("products", store)


@pytest.fixture
def registry(store: IndexFileStore) -> IndexRegistry:
    return IndexRegistry(store)


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    return Settings(_env_file=None, data_dir=data_dir, log_json=False)
