"""Общий контракт движка диалекта.

Движок владеет одним соединением SQLAlchemy, выполняет каждый оператор в
собственной транзакции, читает живую схему и рендерит DDL под свой диалект.
Различия диалектов описаны записью ``DialectCapabilities`` и несколькими
переопределёнными методами.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterable, Mapping, Optional, Union

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchModuleError, SQLAlchemyError

from ..config import DatabaseConfig
from ..errors import (
    ConfigurationError,
    DBConnectionError,
    ExecutionError,
    IntrospectionError,
    InvalidIdentifierError,
    UnresolvableTypeError,
    UnsupportedOperationError,
)
from ..fixups import RewriteRule, apply_rules
from ..schema import (
    ColumnDefinition,
    ConstraintDefinition,
    ConstraintKind,
    IndexInfo,
    LiveColumn,
    LiveConstraint,
    TableSchema,
    validate_identifier,
)
from ..types import defaults_equivalent, parse_type, types_equivalent


@dataclass(frozen=True)
class DialectCapabilities:
    """Константы диалекта.

    Attributes:
        name: Имя диалекта (``mysql``, ``postgresql``, ``sqlite``).
        quote_char: Символ квотирования идентификаторов колонок.
        auto_increment: Ограничения, которые получает serial-колонка.
        type_names: Соответствие объявленных имён типов родным.
        boolean_aliases: Родные написания boolean.
        table_options: Хвост CREATE TABLE (движок хранения, кодировка).
        add_column: Ключевые слова добавления колонки в ALTER TABLE.
        supports_alter_column: Поддерживается ли изменение колонки.
        supports_alter_constraint: Поддерживается ли ADD/DROP CONSTRAINT.
        fixup_rules: Правила переписывания сгенерированного SQL.
    """

    name: str
    quote_char: str
    auto_increment: str
    type_names: Mapping[str, str] = field(default_factory=dict)
    boolean_aliases: tuple[str, ...] = ()
    table_options: str = ''
    add_column: str = 'ADD COLUMN'
    supports_alter_column: bool = True
    supports_alter_constraint: bool = True
    fixup_rules: tuple[RewriteRule, ...] = ()


def _reason(exc: BaseException) -> str:
    """Сообщение драйвера без обёртки SQLAlchemy."""
    orig = getattr(exc, 'orig', None)
    return str(orig or exc).strip()


def as_text(value: Any) -> Optional[str]:
    """Декодирует bytes из метаданных (MySQL 8 отдаёт Type как blob)."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode()
    return str(value)


def group_constraint_rows(
    rows: Iterable[Mapping[str, Any]],
) -> list[LiveConstraint]:
    """Собирает построчный результат information_schema в ограничения.

    Каждая строка описывает одну колонку ограничения, строки с одинаковым
    ``name`` сливаются в одно ограничение. CHECK и прочие виды пропускаются.
    """
    grouped: dict[str, dict[str, Any]] = {}
    for row in rows:
        kind = ConstraintKind.from_sql(as_text(row['type']) or '')
        if kind is None:
            continue
        name = as_text(row['name']) or ''
        entry = grouped.setdefault(name, {
            'kind': kind,
            'pairs': [],
            'foreign_table': as_text(row['foreign_table_name']),
            'on_update': as_text(row['on_update']),
            'on_delete': as_text(row['on_delete']),
        })
        pair = (
            as_text(row['column_name']),
            as_text(row['foreign_column_name']),
        )
        if pair[0] is not None and pair not in entry['pairs']:
            entry['pairs'].append(pair)

    result = []
    for name, entry in grouped.items():
        pairs = entry['pairs']
        is_fk = entry['kind'] is ConstraintKind.FOREIGN_KEY
        result.append(LiveConstraint(
            name=name,
            kind=entry['kind'],
            columns=tuple(p[0] for p in pairs),
            foreign_table=entry['foreign_table'] if is_fk else None,
            foreign_columns=(
                tuple(p[1] for p in pairs if p[1]) if is_fk else ()
            ),
            on_update=entry['on_update'] if is_fk else None,
            on_delete=entry['on_delete'] if is_fk else None,
        ))
    return result


class DialectEngine(ABC):
    """Движок одного диалекта SQL.

    Args:
        config: Параметры подключения.
        logger: Логгер. Если не передан, используется логгер по имени класса.
    """

    capabilities: ClassVar[DialectCapabilities]

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None

    # -- соединение ---------------------------------------------------------

    def connect(self) -> Connection:
        """Открывает соединение (повторный вызов возвращает текущее).

        Raises:
            DBConnectionError: Нет драйвера, ошибка авторизации или хост
                недоступен.
        """
        if self._connection is not None:
            return self._connection

        url = self.config.to_url()
        try:
            engine = create_engine(url)
            connection = engine.connect()
        except (NoSuchModuleError, ImportError) as exc:
            raise DBConnectionError(
                f'driver for {self.capabilities.name} is not installed: {exc}',
                {'dialect': self.capabilities.name},
                exc,
            ) from exc
        except SQLAlchemyError as exc:
            raise DBConnectionError(
                _reason(exc),
                {'dialect': self.capabilities.name, 'host': self.config.host},
                exc,
            ) from exc

        self._engine = engine
        self._connection = connection
        self.logger.info(
            'Connected: dialect=%s, database=%s',
            self.capabilities.name,
            self.config.name,
        )

        try:
            self._on_connect()
        except ExecutionError as exc:
            self.close()
            raise DBConnectionError(exc.reason, cause=exc) from exc
        return connection

    def _on_connect(self) -> None:
        """Настройка сессии сразу после подключения."""

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def __enter__(self) -> 'DialectEngine':
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise DBConnectionError('engine is not connected')
        return self._connection

    @classmethod
    def test_connect(
        cls,
        errors: list[str],
        config: Union[DatabaseConfig, Mapping[str, Any]],
    ) -> bool:
        """Проверяет возможность подключения для установщика.

        При ошибке добавляет читаемое сообщение в ``errors`` и возвращает
        False, исключений наружу не выпускает.
        """
        try:
            if not isinstance(config, DatabaseConfig):
                config = DatabaseConfig.from_mapping(
                    config, type=cls.capabilities.name
                )
        except ConfigurationError as exc:
            errors.append(str(exc))
            return False

        engine = cls(config)
        try:
            engine.connect()
        except DBConnectionError as exc:
            errors.append(exc.reason)
            return False
        finally:
            engine.close()
        return True

    # -- выполнение ---------------------------------------------------------

    def execute(self, sql: str) -> int:
        """Выполняет DDL/DML в отдельной транзакции.

        Транзакция открывается перед оператором, фиксируется при успехе и
        откатывается при ошибке.

        Returns:
            int: Количество затронутых строк по данным драйвера.

        Raises:
            ExecutionError: Оператор завершился ошибкой.
        """
        conn = self._require_connection()
        self.logger.debug('Executing: %s', sql)
        try:
            with conn.begin():
                result = conn.exec_driver_sql(sql)
                return result.rowcount
        except SQLAlchemyError as exc:
            raise ExecutionError(sql, _reason(exc), exc) from exc

    def fetch_all(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        table: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Выполняет запрос метаданных и возвращает строки.

        Ключи строк приводятся к нижнему регистру.

        Raises:
            IntrospectionError: Запрос завершился ошибкой.
        """
        conn = self._require_connection()
        try:
            with conn.begin():
                result = conn.execute(text(sql), dict(params or {}))
                return [
                    {str(k).lower(): v for k, v in row._mapping.items()}
                    for row in result
                ]
        except SQLAlchemyError as exc:
            raise IntrospectionError(table, _reason(exc), exc) from exc

    def reflect(self, table: str, method: str, **kw: Any) -> Any:
        """Вызывает метод ``Inspector`` SQLAlchemy в отдельной транзакции.

        Инспектор создаётся на каждый вызов, кэш между прогонами не живёт.

        Raises:
            IntrospectionError: Отражение завершилось ошибкой (в том числе
                ``NoSuchTableError``).
        """
        conn = self._require_connection()
        try:
            with conn.begin():
                return getattr(inspect(conn), method)(table, **kw)
        except SQLAlchemyError as exc:
            raise IntrospectionError(table, _reason(exc), exc) from exc

    # -- интроспекция -------------------------------------------------------

    @abstractmethod
    def version(self) -> str:
        """Имя и версия сервера."""

    @abstractmethod
    def list_tables(self) -> list[str]:
        """Имена таблиц текущей базы/схемы."""

    @abstractmethod
    def columns_of(self, table: str) -> list[LiveColumn]:
        """Колонки таблицы в порядке объявления."""

    @abstractmethod
    def constraints_of(self, table: str) -> list[LiveConstraint]:
        """PRIMARY KEY, UNIQUE и FOREIGN KEY таблицы."""

    @abstractmethod
    def indexes_of(self, table: str) -> list[IndexInfo]:
        """Индексы таблицы."""

    def check_table_aux(self, table: str) -> list[str]:
        """Дополнительные операторы для существующей таблицы."""
        return []

    def sequence_statements(
        self,
        table: str,
        column: ColumnDefinition,
    ) -> list[str]:
        """Операторы, которые должны предшествовать созданию колонки."""
        return []

    def _malformed(self, table: str, exc: Exception) -> IntrospectionError:
        return IntrospectionError(
            table, f'malformed metadata row: {exc!r}', exc
        )

    # -- типы ---------------------------------------------------------------

    def render_type(self, declared: str) -> str:
        """Переводит объявленный тип в написание диалекта."""
        try:
            token = parse_type(declared)
        except UnresolvableTypeError:
            return declared
        names = self.capabilities.type_names
        full = ' '.join(declared.lower().split())
        if full in names:
            return names[full]
        name = names.get(token.name, token.name)
        if token.args:
            name += f'({",".join(token.args)})'
        if token.suffix:
            name += f' {token.suffix}'
        return name

    def type_equivalent(self, native: str, declared: str) -> bool:
        """Удовлетворяет ли живой тип объявленному (см. ``types``)."""
        return types_equivalent(
            native,
            declared,
            rendered=self.render_type(declared),
            boolean_aliases=self.capabilities.boolean_aliases,
        )

    def defaults_equivalent(
        self,
        live: Optional[str],
        declared: Optional[str],
    ) -> bool:
        return defaults_equivalent(live, declared)

    def is_auto_increment(self, column: ColumnDefinition) -> bool:
        return column.is_serial

    # -- рендеринг DDL ------------------------------------------------------

    def dialect_fixup(self, sql: str) -> str:
        """Применяет правила переписывания диалекта."""
        return apply_rules(sql, self.capabilities.fixup_rules)

    def quote(self, name: str) -> str:
        q = self.capabilities.quote_char
        return f'{q}{validate_identifier(name)}{q}'

    def quote_live(self, name: str) -> str:
        """Живое имя: как есть или в кавычках диалекта, если вне allow-list."""
        try:
            return validate_identifier(name)
        except InvalidIdentifierError:
            q = self.capabilities.quote_char
            return f'{q}{name.replace(q, q * 2)}{q}'

    def column_constraints(self, column: ColumnDefinition) -> str:
        """NULL/NOT NULL и DEFAULT для определения колонки."""
        if self.is_auto_increment(column):
            return self.capabilities.auto_increment

        result = ' NULL' if column.nullable else ' NOT NULL'
        if column.default not in (None, ''):
            result += f' DEFAULT {column.default}'
        return result

    def render_column(self, column: ColumnDefinition) -> str:
        return (
            f'{self.quote(column.name)} {self.render_type(column.type)}'
            f'{self.column_constraints(column)}'
        )

    def render_create_table(self, schema: TableSchema) -> str:
        """Один CREATE TABLE со всеми колонками и ограничениями."""
        items = [self.render_column(c) for c in schema.columns]
        items.extend(
            f'CONSTRAINT {c.name} {c.to_sql()}' for c in schema.constraints
        )
        sql = f'CREATE TABLE {schema.name} ({", ".join(items)})'
        options = self.capabilities.table_options
        sql += f' {options};' if options else ';'
        return self.dialect_fixup(sql)

    def render_add_column(self, table: str, column: ColumnDefinition) -> str:
        sql = (
            f'ALTER TABLE {validate_identifier(table)} '
            f'{self.capabilities.add_column} {self.render_column(column)};'
        )
        return self.dialect_fixup(sql)

    def render_alter_column(
        self,
        table: str,
        column: ColumnDefinition,
    ) -> str:
        raise UnsupportedOperationError(
            self.capabilities.name, 'ALTER COLUMN'
        )

    def render_add_constraint(
        self,
        table: str,
        constraint: ConstraintDefinition,
    ) -> str:
        if not self.capabilities.supports_alter_constraint:
            raise UnsupportedOperationError(
                self.capabilities.name, 'ADD CONSTRAINT'
            )
        sql = (
            f'ALTER TABLE {validate_identifier(table)} '
            f'ADD CONSTRAINT {validate_identifier(constraint.name)} '
            f'{constraint.to_sql()};'
        )
        return self.dialect_fixup(sql)

    def render_drop_constraint(
        self,
        table: str,
        constraint: Union[ConstraintDefinition, LiveConstraint],
    ) -> str:
        raise UnsupportedOperationError(
            self.capabilities.name, 'DROP CONSTRAINT'
        )
