"""Модель данных: желаемая схема таблиц и результаты интроспекции.

Желаемая схема (``TableSchema``) авторитетна и неизменяема, живая схема
(``LiveColumn``, ``LiveConstraint``, ``IndexInfo``) строится заново при
каждой интроспекции и нигде не кешируется.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Union

from .errors import InvalidIdentifierError, SchemaDefinitionError

IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]{0,63}$')

DefaultValue = Union[str, int, float, bool, None]

_COLS = r'\(([^()]*)\)'
_PK_RE = re.compile(r'^PRIMARY\s+KEY\s*' + _COLS + r'$', re.I)
_UNIQUE_RE = re.compile(r'^UNIQUE(?:\s+KEY|\s+INDEX)?\s*' + _COLS + r'$', re.I)
_FK_RE = re.compile(
    r'^FOREIGN\s+KEY\s*' + _COLS
    + r'\s*REFERENCES\s+([^\s(]+)\s*' + _COLS + r'(.*)$',
    re.I | re.S,
)
_RULE_RE = re.compile(
    r'ON\s+(UPDATE|DELETE)\s+'
    r'(CASCADE|RESTRICT|NO\s+ACTION|SET\s+NULL|SET\s+DEFAULT)',
    re.I,
)
_QUOTES = '"`[]'

# NO ACTION и RESTRICT различаются только моментом проверки
_DEFAULT_RULES = {None, 'NO ACTION', 'RESTRICT'}


def validate_identifier(name: object) -> str:
    """Проверяет имя таблицы/колонки/ограничения по allow-list.

    DDL нельзя параметризовать, поэтому любое имя перед подстановкой в SQL
    обязано состоять только из латиницы, цифр и подчёркивания.

    Args:
        name: Проверяемое имя.

    Returns:
        str: То же имя.

    Raises:
        InvalidIdentifierError: Имя не соответствует allow-list.
    """
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise InvalidIdentifierError(name)
    return name


def unquote_identifier(name: str) -> str:
    """Снимает кавычки диалекта (``"x"``, ```x```, ``[x]``)."""
    return name.strip().strip(_QUOTES)


def _split_columns(text: str) -> tuple[str, ...]:
    return tuple(
        unquote_identifier(c) for c in text.split(',') if c.strip()
    )


def normalize_rule(rule: Optional[str]) -> Optional[str]:
    """Приводит правило ON UPDATE/ON DELETE к каноническому виду."""
    if rule is None:
        return None
    text = ' '.join(rule.split()).upper()
    return text or None


class ConstraintKind(str, Enum):
    """Виды ограничений, которыми управляет dbcorrector."""

    PRIMARY_KEY = 'PRIMARY KEY'
    UNIQUE = 'UNIQUE'
    FOREIGN_KEY = 'FOREIGN KEY'

    @classmethod
    def from_sql(cls, value: str) -> Optional['ConstraintKind']:
        """Возвращает вид по строке из information_schema или None."""
        text = ' '.join(str(value).split()).upper()
        for kind in cls:
            if kind.value == text:
                return kind
        return None


@dataclass(frozen=True)
class ColumnDefinition:
    """Желаемая колонка таблицы.

    Attributes:
        name: Имя колонки.
        type: Абстрактный объявленный тип (``serial``,
            ``character varying(50)``, ``double precision``...).
        nullable: Допускает ли колонка NULL.
        default: SQL-выражение значения по умолчанию или None.
    """

    name: str
    type: str
    nullable: bool = True
    default: DefaultValue = None

    def __post_init__(self) -> None:
        validate_identifier(self.name)
        if not isinstance(self.type, str) or not self.type.strip():
            raise SchemaDefinitionError(
                f'Column {self.name} has no type',
                {'column': self.name},
            )
        default = self.default
        if isinstance(default, bool):
            default = 'true' if default else 'false'
        elif isinstance(default, (int, float)):
            default = str(default)
        object.__setattr__(self, 'default', default)

    @property
    def is_serial(self) -> bool:
        return self.type.strip().lower() in ('serial', 'bigserial')


@dataclass(frozen=True)
class LiveColumn:
    """Колонка, прочитанная из живой БД."""

    name: str
    type: str
    nullable: bool
    default: Optional[str] = None


@dataclass(frozen=True)
class _ConstraintFields:
    name: str
    kind: ConstraintKind
    columns: tuple[str, ...] = ()
    foreign_table: Optional[str] = None
    foreign_columns: tuple[str, ...] = ()
    on_update: Optional[str] = None
    on_delete: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'columns', tuple(self.columns))
        object.__setattr__(
            self, 'foreign_columns', tuple(self.foreign_columns)
        )
        object.__setattr__(self, 'on_update', normalize_rule(self.on_update))
        object.__setattr__(self, 'on_delete', normalize_rule(self.on_delete))

    def shape(self) -> tuple:
        """Сравнимая форма ограничения (без имени)."""
        def rule(value: Optional[str]) -> Optional[str]:
            return None if value in _DEFAULT_RULES else value

        return (
            self.kind,
            tuple(c.lower() for c in self.columns),
            (self.foreign_table or '').lower() or None,
            tuple(c.lower() for c in self.foreign_columns),
            rule(self.on_update),
            rule(self.on_delete),
        )

    def to_sql(self) -> str:
        """Рендерит тело ограничения (без ``CONSTRAINT name``)."""
        cols = ', '.join(self.columns)
        if self.kind is ConstraintKind.FOREIGN_KEY:
            sql = (
                f'FOREIGN KEY ({cols}) REFERENCES {self.foreign_table} '
                f'({", ".join(self.foreign_columns)})'
            )
            if self.on_delete:
                sql += f' ON DELETE {self.on_delete}'
            if self.on_update:
                sql += f' ON UPDATE {self.on_update}'
            return sql
        return f'{self.kind.value} ({cols})'


@dataclass(frozen=True)
class ConstraintDefinition(_ConstraintFields):
    """Желаемое именованное ограничение таблицы."""

    def __post_init__(self) -> None:
        super().__post_init__()
        validate_identifier(self.name)
        if not isinstance(self.kind, ConstraintKind):
            raise SchemaDefinitionError(
                f'Unsupported constraint kind: {self.kind!r}',
                {'constraint': self.name},
            )
        if not self.columns:
            raise SchemaDefinitionError(
                f'Constraint {self.name} has no columns',
                {'constraint': self.name},
            )
        for col in self.columns:
            validate_identifier(col)
        if self.kind is ConstraintKind.FOREIGN_KEY:
            validate_identifier(self.foreign_table)
            if len(self.foreign_columns) != len(self.columns):
                raise SchemaDefinitionError(
                    f'Foreign key {self.name} column count mismatch',
                    {'constraint': self.name},
                )
            for col in self.foreign_columns:
                validate_identifier(col)

    @classmethod
    def from_sql(cls, name: str, clause: str) -> 'ConstraintDefinition':
        """Разбирает тело ограничения вида ``PRIMARY KEY (a)``.

        Поддерживаются PRIMARY KEY, UNIQUE и FOREIGN KEY с правилами
        ON UPDATE/ON DELETE.

        Args:
            name: Имя ограничения.
            clause: SQL-тело ограничения.

        Returns:
            ConstraintDefinition: Разобранное ограничение.

        Raises:
            SchemaDefinitionError: Вид ограничения не поддерживается.
        """
        text = ' '.join(clause.strip().rstrip(';').split())

        m = _PK_RE.match(text)
        if m:
            return cls(name, ConstraintKind.PRIMARY_KEY, _split_columns(m[1]))

        m = _UNIQUE_RE.match(text)
        if m:
            return cls(name, ConstraintKind.UNIQUE, _split_columns(m[1]))

        m = _FK_RE.match(text)
        if m:
            rules = {
                action.upper(): rule
                for action, rule in _RULE_RE.findall(m[4])
            }
            return cls(
                name,
                ConstraintKind.FOREIGN_KEY,
                _split_columns(m[1]),
                foreign_table=unquote_identifier(m[2]),
                foreign_columns=_split_columns(m[3]),
                on_update=rules.get('UPDATE'),
                on_delete=rules.get('DELETE'),
            )

        raise SchemaDefinitionError(
            f'Unsupported constraint clause for {name}: {text}',
            {'constraint': name},
        )


@dataclass(frozen=True)
class LiveConstraint(_ConstraintFields):
    """Ограничение, прочитанное из живой БД.

    Имя не проверяется при создании: PRIMARY KEY может нести имя диалекта
    (``PRIMARY`` в MySQL) или не иметь его вовсе (SQLite).
    """


@dataclass(frozen=True)
class IndexInfo:
    """Описание индекса из живой БД."""

    name: str
    columns: tuple[str, ...]
    unique: bool = False


@dataclass(frozen=True)
class TableSchema:
    """Желаемое описание таблицы.

    Колонки сохраняют порядок объявления, имена ограничений уникальны
    в пределах таблицы.
    """

    name: str
    columns: tuple[ColumnDefinition, ...]
    constraints: tuple[ConstraintDefinition, ...] = field(default=())

    def __post_init__(self) -> None:
        validate_identifier(self.name)
        object.__setattr__(self, 'columns', tuple(self.columns))
        object.__setattr__(self, 'constraints', tuple(self.constraints))

        if not self.columns:
            raise SchemaDefinitionError(
                f'Table {self.name} has no columns', {'table': self.name}
            )
        _ensure_unique(self.name, 'column', (c.name for c in self.columns))
        _ensure_unique(
            self.name, 'constraint', (c.name for c in self.constraints)
        )
        pks = [
            c for c in self.constraints
            if c.kind is ConstraintKind.PRIMARY_KEY
        ]
        if len(pks) > 1:
            raise SchemaDefinitionError(
                f'Table {self.name} declares more than one primary key',
                {'table': self.name},
            )

    def column(self, name: str) -> Optional[ColumnDefinition]:
        for col in self.columns:
            if col.name.lower() == name.lower():
                return col
        return None

    def primary_key_columns(self) -> set[str]:
        return {
            col.lower()
            for c in self.constraints
            if c.kind is ConstraintKind.PRIMARY_KEY
            for col in c.columns
        }

    def referenced_tables(self) -> set[str]:
        """Таблицы, на которые ссылаются внешние ключи (кроме самой себя)."""
        return {
            c.foreign_table
            for c in self.constraints
            if c.kind is ConstraintKind.FOREIGN_KEY
            and c.foreign_table != self.name
        }


def _ensure_unique(table: str, what: str, names: Iterable[str]) -> None:
    seen: set[str] = set()
    for name in names:
        key = name.lower()
        if key in seen:
            raise SchemaDefinitionError(
                f'Duplicate {what} {name} in table {table}',
                {'table': table, what: name},
            )
        seen.add(key)
