"""Движок SQLite (встроенный драйвер pysqlite).

SQLite не умеет менять колонки и ограничения через ALTER TABLE, поэтому
такие операции реконсилер превращает в отчёт. Ограничения и индексы
отражаются через ``Inspector`` SQLAlchemy.
"""

from __future__ import annotations

from typing import Iterable

from ..fixups import SQLITE_RULES
from ..schema import (
    ConstraintKind,
    IndexInfo,
    LiveColumn,
    LiveConstraint,
    validate_identifier,
)
from .base import DialectCapabilities, DialectEngine, as_text

SQL_LIST_TABLES = (
    "SELECT name FROM sqlite_master"
    " WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
    " ORDER BY name;"
)
SQL_TABLE_INFO = 'PRAGMA table_info({table});'
SQL_FOREIGN_KEY_LIST = 'PRAGMA foreign_key_list({table});'


def _signature(columns: Iterable[str]) -> tuple[str, ...]:
    return tuple(c.lower() for c in columns)


class SQLiteEngine(DialectEngine):
    """SQLite: файл базы задаётся в ``DatabaseConfig.name``."""

    capabilities = DialectCapabilities(
        name='sqlite',
        quote_char='"',
        auto_increment=' NOT NULL',
        type_names={'serial': 'integer', 'bigserial': 'integer'},
        supports_alter_column=False,
        supports_alter_constraint=False,
        fixup_rules=SQLITE_RULES,
    )

    def _on_connect(self) -> None:
        if self.config.foreign_keys:
            self.execute('PRAGMA foreign_keys = ON;')

    def version(self) -> str:
        rows = self.fetch_all('SELECT sqlite_version() AS version;')
        return f'SQLITE {rows[0]["version"]}' if rows else 'SQLITE'

    # -- интроспекция -------------------------------------------------------

    def list_tables(self) -> list[str]:
        rows = self.fetch_all(SQL_LIST_TABLES)
        return [as_text(row['name']) for row in rows]

    def columns_of(self, table: str) -> list[LiveColumn]:
        sql = SQL_TABLE_INFO.format(table=validate_identifier(table))
        rows = self.fetch_all(sql, table=table)
        try:
            return [
                LiveColumn(
                    name=as_text(row['name']),
                    type=as_text(row['type']),
                    nullable=not row['notnull'],
                    default=as_text(row['dflt_value']),
                )
                for row in rows
            ]
        except KeyError as exc:
            raise self._malformed(table, exc) from exc

    def constraints_of(self, table: str) -> list[LiveConstraint]:
        """Ограничения через ``Inspector`` SQLAlchemy.

        Имя есть только у ограничений, объявленных через ``CONSTRAINT``.
        Объявленные в строке колонки (``PRIMARY KEY``, ``UNIQUE``,
        ``REFERENCES``) возвращаются с пустым именем. Правила FK берутся из
        ``PRAGMA foreign_key_list``, UNIQUE без записи в инспекторе
        восстанавливается по автоиндексу ``sqlite_autoindex_*``.
        """
        pk = self.reflect(table, 'get_pk_constraint')
        uniques = self.reflect(table, 'get_unique_constraints')
        fks = self.reflect(table, 'get_foreign_keys')
        indexes = self.reflect(
            table, 'get_indexes', include_auto_indexes=True
        )
        try:
            rules = self._foreign_key_rules(table)
            result: list[LiveConstraint] = []
            pk_columns = tuple(pk.get('constrained_columns') or ())
            if pk_columns:
                result.append(LiveConstraint(
                    pk.get('name') or '',
                    ConstraintKind.PRIMARY_KEY,
                    pk_columns,
                ))

            covered = {_signature(pk_columns)}
            for uq in uniques:
                columns = tuple(uq['column_names'])
                covered.add(_signature(columns))
                result.append(LiveConstraint(
                    uq.get('name') or '', ConstraintKind.UNIQUE, columns
                ))
            for idx in indexes:
                columns = tuple(idx['column_names'])
                if (
                    idx['name'].startswith('sqlite_autoindex')
                    and idx['unique']
                    and _signature(columns) not in covered
                ):
                    covered.add(_signature(columns))
                    result.append(
                        LiveConstraint('', ConstraintKind.UNIQUE, columns)
                    )

            for fk in fks:
                columns = tuple(fk['constrained_columns'])
                on_update, on_delete = rules.get(
                    (fk['referred_table'].lower(), _signature(columns)),
                    (None, None),
                )
                result.append(LiveConstraint(
                    fk.get('name') or '',
                    ConstraintKind.FOREIGN_KEY,
                    columns,
                    foreign_table=fk['referred_table'],
                    foreign_columns=tuple(fk['referred_columns']),
                    on_update=on_update,
                    on_delete=on_delete,
                ))
        except (KeyError, TypeError, AttributeError) as exc:
            raise self._malformed(table, exc) from exc
        return result

    def _foreign_key_rules(self, table: str) -> dict[tuple, tuple]:
        """(целевая таблица, колонки) -> (ON UPDATE, ON DELETE)."""
        sql = SQL_FOREIGN_KEY_LIST.format(table=validate_identifier(table))
        grouped: dict[int, dict] = {}
        for row in self.fetch_all(sql, table=table):
            fk = grouped.setdefault(row['id'], {
                'table': as_text(row['table']),
                'columns': [],
                'on_update': as_text(row['on_update']),
                'on_delete': as_text(row['on_delete']),
            })
            fk['columns'].append((row['seq'], as_text(row['from'])))
        return {
            (
                fk['table'].lower(),
                _signature(name for _, name in sorted(fk['columns'])),
            ): (fk['on_update'], fk['on_delete'])
            for fk in grouped.values()
        }

    def indexes_of(self, table: str) -> list[IndexInfo]:
        indexes = self.reflect(
            table, 'get_indexes', include_auto_indexes=True
        )
        try:
            return [
                IndexInfo(
                    idx['name'],
                    tuple(c for c in idx['column_names'] if c is not None),
                    bool(idx['unique']),
                )
                for idx in indexes
            ]
        except KeyError as exc:
            raise self._malformed(table, exc) from exc
