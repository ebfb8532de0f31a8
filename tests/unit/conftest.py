from __future__ import annotations

from collections.abc import Callable
from typing import Optional

import pytest

from dbcorrector.config import DatabaseConfig
from dbcorrector.engines import (
    DialectEngine,
    MySQLEngine,
    PostgreSQLEngine,
    SQLiteEngine,
)
from dbcorrector.errors import ExecutionError
from dbcorrector.schema import LiveColumn, LiveConstraint


@pytest.fixture()
def make_engine(monkeypatch) -> Callable[..., DialectEngine]:
    """Фабрика движков с подменённой интроспекцией и выполнением.

    Живая схема задаётся словарями ``tables`` (колонки) и ``constraints``.
    Выполненные операторы копятся в ``engine.executed``.
    """

    def _make(
        engine_cls: type[DialectEngine] = MySQLEngine,
        *,
        tables: Optional[dict[str, list[LiveColumn]]] = None,
        constraints: Optional[dict[str, list[LiveConstraint]]] = None,
        fail_on: Optional[str] = None,
        **config,
    ) -> DialectEngine:
        cfg = DatabaseConfig(
            type=engine_cls.capabilities.name,
            name=config.pop('name', 'fs_test'),
            **config,
        )
        engine = engine_cls(cfg)
        live_tables = tables if tables is not None else {}
        live_constraints = constraints if constraints is not None else {}
        executed: list[str] = []

        def execute(sql: str) -> int:
            if fail_on and fail_on in sql:
                raise ExecutionError(sql, f'simulated failure on {fail_on}')
            executed.append(sql)
            return 0

        monkeypatch.setattr(engine, 'list_tables', lambda: list(live_tables))
        monkeypatch.setattr(
            engine, 'columns_of', lambda t: list(live_tables[t])
        )
        monkeypatch.setattr(
            engine,
            'constraints_of',
            lambda t: list(live_constraints.get(t, [])),
        )
        monkeypatch.setattr(engine, 'check_table_aux', lambda t: [])
        monkeypatch.setattr(engine, 'sequence_statements', lambda t, c: [])
        monkeypatch.setattr(engine, 'execute', execute)
        engine.executed = executed
        return engine

    return _make


@pytest.fixture()
def mysql_engine() -> MySQLEngine:
    """Неподключённый MySQL-движок для проверки рендеринга."""
    return MySQLEngine(DatabaseConfig(type='mysql', name='fs_test'))


@pytest.fixture()
def postgres_engine() -> PostgreSQLEngine:
    """Неподключённый PostgreSQL-движок для проверки рендеринга."""
    return PostgreSQLEngine(DatabaseConfig(type='postgresql', name='fs_test'))


@pytest.fixture()
def sqlite_engine() -> SQLiteEngine:
    """Неподключённый SQLite-движок для проверки рендеринга."""
    return SQLiteEngine(DatabaseConfig(type='sqlite', name='fs_test.db'))


@pytest.fixture()
def fake_rows(monkeypatch) -> Callable[..., list]:
    """Подменяет ``fetch_all`` движка: SQL -> строки по подстроке запроса.

    Возвращает список перехваченных вызовов ``(sql, params)``.
    """

    def _install(engine: DialectEngine, responses: dict[str, list[dict]]):
        calls: list[tuple[str, Optional[dict]]] = []

        def fetch_all(sql, params=None, *, table=None):
            calls.append((sql, params))
            for marker, rows in responses.items():
                if marker in sql:
                    return [dict(r) for r in rows]
            return []

        monkeypatch.setattr(engine, 'fetch_all', fetch_all)
        return calls

    return _install
