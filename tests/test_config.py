"""
Tests for environment-based configuration and backend selection.
"""
import os
import shutil
import tempfile

import pytest

from postcomments.config import (
    Config,
    ConfigError,
    PostgresConfig,
    STORAGE_MEMORY,
    STORAGE_POSTGRES,
    STORAGE_SQLITE,
)
from postcomments.storage import MemoryStorage, SQLStorage, create_storage


def test_defaults():
    config = Config.from_env({})
    assert config.storage_type == STORAGE_MEMORY
    assert config.postgres == PostgresConfig()
    assert config.postgres.password == "pass"
    assert config.query_timeout == 3.0
    assert config.log_level == "INFO"
    assert config.service_port == 8080


def test_full_environment():
    config = Config.from_env({
        "STORAGE_TYPE": "PostgreSQL",
        "POSTGRES_HOST": "db",
        "POSTGRES_PORT": "6543",
        "POSTGRES_USER": "app",
        "POSTGRES_PASSWORD": "secret",
        "POSTGRES_DB": "posts",
        "POSTGRES_POOL_SIZE": "4",
        "STORAGE_QUERY_TIMEOUT": "1.5",
        "LOG_LEVEL": "debug",
        "SERVICE_PORT": "9000",
    })
    assert config.storage_type == STORAGE_POSTGRES
    assert config.postgres == PostgresConfig("db", 6543, "app", "secret", "posts", 4)
    assert config.query_timeout == 1.5
    assert config.log_level == "DEBUG"
    assert config.service_port == 9000


@pytest.mark.parametrize("raw, expected", [
    ("memory", STORAGE_MEMORY),
    ("in-memory", STORAGE_MEMORY),
    ("", STORAGE_MEMORY),
    ("postgres", STORAGE_POSTGRES),
    ("SQLITE", STORAGE_SQLITE),
])
def test_storage_type_aliases(raw, expected):
    assert Config.from_env({"STORAGE_TYPE": raw}).storage_type == expected


@pytest.mark.parametrize("env", [
    {"STORAGE_TYPE": "redis"},
    {"POSTGRES_PORT": "abc"},
    {"POSTGRES_POOL_SIZE": "0"},
    {"STORAGE_QUERY_TIMEOUT": "-1"},
    {"SERVICE_PORT": "http"},
    {"STORAGE_TYPE": "sqlite", "SQLITE_PATH": ":memory:"},
])
def test_invalid_values(env):
    with pytest.raises(ConfigError):
        Config.from_env(env)


def test_reads_process_environment(monkeypatch):
    monkeypatch.setenv("STORAGE_TYPE", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", "/tmp/elsewhere.db")
    config = Config.from_env()
    assert config.storage_type == STORAGE_SQLITE
    assert config.sqlite_path == "/tmp/elsewhere.db"


def test_postgres_dsn():
    pg = PostgresConfig(host="db", port=5433, user="u", password="p", dbname="d")
    assert pg.dsn() == "host=db port=5433 dbname=d user=u password=p"
    assert pg.dsn(connect_timeout=3.0).endswith("connect_timeout=3")
    # libpq rounds anything below two seconds up to two
    assert pg.dsn(connect_timeout=0.5).endswith("connect_timeout=2")


def test_postgres_dsn_without_password():
    assert "password" not in PostgresConfig(password="").dsn()


def test_create_storage_memory():
    assert isinstance(create_storage(Config()), MemoryStorage)


def test_create_storage_sqlite():
    temp_dir = tempfile.mkdtemp()
    try:
        storage = create_storage(Config(storage_type=STORAGE_SQLITE, sqlite_path=os.path.join(temp_dir, "p.db")))
        assert isinstance(storage, SQLStorage)
        assert storage.db_type == "sqlite"
        storage.ping()
        storage.close()
    finally:
        shutil.rmtree(temp_dir)
