from __future__ import annotations

import uuid
from dataclasses import replace

import pytest
from sqlalchemy import create_engine, text

from dbcorrector.config import DatabaseConfig
from dbcorrector.engines import MySQLEngine, PostgreSQLEngine, SQLiteEngine
from dbcorrector.schema import TableSchema

from tests._helpers.schema_builders import (
    clientes_schema,
    facturas_schema,
    roles_schema,
)


@pytest.fixture()
def sa_engine(sqlite_config):
    """SQLAlchemy Engine для подготовки и проверки файла SQLite."""
    engine = create_engine(sqlite_config.to_url())
    yield engine
    engine.dispose()


@pytest.fixture()
def sqlite_engine(sqlite_config):
    """Подключённый движок SQLite с включёнными внешними ключами."""
    engine = SQLiteEngine(sqlite_config)
    with engine:
        yield engine


def _prefixed(schema: TableSchema, prefix: str) -> TableSchema:
    """Копия схемы с префиксом у таблицы, ограничений и целей FK."""
    constraints = tuple(
        replace(
            c,
            name=f'{prefix}{c.name}',
            foreign_table=(
                f'{prefix}{c.foreign_table}' if c.foreign_table else None
            ),
        )
        for c in schema.constraints
    )
    return TableSchema(f'{prefix}{schema.name}', schema.columns, constraints)


@pytest.fixture()
def table_prefix():
    return f't{uuid.uuid4().hex[:8]}_'


@pytest.fixture()
def prefixed_schemas(table_prefix) -> list[TableSchema]:
    """Желаемая схема с уникальными именами таблиц для общей БД."""
    return [
        _prefixed(s, table_prefix)
        for s in (roles_schema(), facturas_schema(), clientes_schema())
    ]


def _connected(engine_cls, url, schemas, drop_sql):
    """Подключает движок к серверу и удаляет созданные таблицы после теста."""
    config = DatabaseConfig.from_url(url)
    engine = engine_cls(config)
    try:
        engine.connect()
    except Exception as exc:
        pytest.skip(f'Cannot connect to {config.type}: {exc}')

    try:
        yield engine
    finally:
        engine.close()
        cleanup = create_engine(config.to_url())
        with cleanup.begin() as conn:
            for schema in schemas:
                conn.execute(text(drop_sql.format(table=schema.name)))
        cleanup.dispose()


@pytest.fixture()
def postgres_engine(postgres_url, prefixed_schemas):
    """Подключённый движок PostgreSQL; созданные таблицы удаляются.

    Yields:
        PostgreSQLEngine: Движок с конфигурацией из POSTGRES_URL.
    """
    yield from _connected(
        PostgreSQLEngine,
        postgres_url,
        prefixed_schemas,
        'DROP TABLE IF EXISTS {table} CASCADE',
    )


@pytest.fixture()
def mysql_engine(mysql_url, prefixed_schemas):
    """Подключённый движок MySQL из MYSQL_URL."""
    yield from _connected(
        MySQLEngine,
        mysql_url,
        prefixed_schemas,
        'DROP TABLE IF EXISTS {table}',
    )
