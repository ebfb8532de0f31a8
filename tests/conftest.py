from __future__ import annotations

import os
from pathlib import Path

import pytest

from dbcorrector.config import DatabaseConfig

from tests._helpers.schema_builders import (
    clientes_schema,
    facturas_schema,
    roles_schema,
    write_tables_dir,
)

_FS_ENV = (
    'FS_DB_TYPE',
    'FS_DB_HOST',
    'FS_DB_PORT',
    'FS_DB_NAME',
    'FS_DB_USER',
    'FS_DB_PASS',
    'FS_DB_INTEGER',
    'FS_FOREIGN_KEYS',
)


@pytest.fixture(autouse=True)
def clean_fs_env(monkeypatch):
    """Убирает FS_* переменные окружения, чтобы тесты не зависели от машины."""
    for name in _FS_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def sqlite_path(tmp_path: Path) -> Path:
    """Путь к файлу SQLite базы во временной директории."""
    return tmp_path / 'fs_test.db'


@pytest.fixture()
def sqlite_config(sqlite_path: Path) -> DatabaseConfig:
    """Конфигурация подключения к файловой SQLite базе."""
    return DatabaseConfig(type='sqlite', name=str(sqlite_path))


@pytest.fixture()
def desired_schemas():
    """Желаемая схема: роли, клиенты и счета (facturas ссылается на clientes).

    facturas объявлена раньше clientes, чтобы проверять порядок создания.
    """
    return [roles_schema(), facturas_schema(), clientes_schema()]


@pytest.fixture()
def tables_dir(tmp_path: Path, desired_schemas) -> Path:
    """Каталог с XML-определениями таблиц из desired_schemas."""
    return write_tables_dir(tmp_path / 'tables', desired_schemas)


@pytest.fixture()
def postgres_url():
    """Берёт DSN PostgreSQL из переменной окружения POSTGRES_URL."""
    url = os.getenv('POSTGRES_URL')
    if not url:
        pytest.skip('POSTGRES_URL is not set')
    return url


@pytest.fixture()
def mysql_url():
    """Берёт DSN MySQL из переменной окружения MYSQL_URL."""
    url = os.getenv('MYSQL_URL')
    if not url:
        pytest.skip('MYSQL_URL is not set')
    return url
