"""Движок PostgreSQL (драйвер psycopg2)."""

from __future__ import annotations

import re
from typing import Union

from ..fixups import POSTGRESQL_RULES
from ..schema import (
    ColumnDefinition,
    ConstraintDefinition,
    IndexInfo,
    LiveColumn,
    LiveConstraint,
    unquote_identifier,
    validate_identifier,
)
from .base import (
    DialectCapabilities,
    DialectEngine,
    as_text,
    group_constraint_rows,
)

SQL_LIST_TABLES = (
    'SELECT tablename FROM pg_catalog.pg_tables'
    ' WHERE schemaname = current_schema()'
    ' ORDER BY tablename;'
)
SQL_COLUMNS = (
    'SELECT a.attname AS column_name,'
    ' format_type(a.atttypid, a.atttypmod) AS data_type,'
    ' NOT a.attnotnull AS is_nullable,'
    ' pg_get_expr(d.adbin, d.adrelid) AS column_default'
    ' FROM pg_catalog.pg_attribute a'
    ' JOIN pg_catalog.pg_class c ON c.oid = a.attrelid'
    ' JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace'
    ' LEFT JOIN pg_catalog.pg_attrdef d'
    ' ON d.adrelid = a.attrelid AND d.adnum = a.attnum'
    ' WHERE c.relname = :table'
    ' AND n.nspname = current_schema()'
    ' AND a.attnum > 0 AND NOT a.attisdropped'
    ' ORDER BY a.attnum;'
)
SQL_CONSTRAINTS = (
    'SELECT tc.constraint_name AS name,'
    ' tc.constraint_type AS type,'
    ' kcu.column_name,'
    ' fk.table_name AS foreign_table_name,'
    ' fk.column_name AS foreign_column_name,'
    ' rc.update_rule AS on_update,'
    ' rc.delete_rule AS on_delete'
    ' FROM information_schema.table_constraints tc'
    ' LEFT JOIN information_schema.key_column_usage kcu'
    ' ON kcu.constraint_schema = tc.constraint_schema'
    ' AND kcu.constraint_name = tc.constraint_name'
    ' AND kcu.table_name = tc.table_name'
    ' LEFT JOIN information_schema.referential_constraints rc'
    ' ON rc.constraint_schema = tc.constraint_schema'
    ' AND rc.constraint_name = tc.constraint_name'
    ' LEFT JOIN information_schema.key_column_usage fk'
    ' ON fk.constraint_schema = rc.unique_constraint_schema'
    ' AND fk.constraint_name = rc.unique_constraint_name'
    ' AND fk.ordinal_position = kcu.position_in_unique_constraint'
    ' WHERE tc.table_schema = current_schema()'
    ' AND tc.table_name = :table'
    ' ORDER BY tc.constraint_type DESC, tc.constraint_name ASC,'
    ' kcu.ordinal_position ASC;'
)
SQL_INDEXES = (
    'SELECT indexname AS name, indexdef'
    ' FROM pg_catalog.pg_indexes'
    ' WHERE schemaname = current_schema() AND tablename = :table'
    ' ORDER BY indexname;'
)
SQL_SEQUENCE_EXISTS = (
    "SELECT relname FROM pg_catalog.pg_class"
    " WHERE relkind = 'S' AND relname = :name;"
)

_INDEX_COLUMNS_RE = re.compile(r'USING\s+\w+\s*\((.*)\)', re.I | re.S)
_NEXTVAL_RE = re.compile(r"nextval\('(?:[\w\"]+\.)?\"?(\w+)\"?'", re.I)


class PostgreSQLEngine(DialectEngine):
    """PostgreSQL: объявленные типы пишутся как есть."""

    capabilities = DialectCapabilities(
        name='postgresql',
        quote_char='"',
        auto_increment=' NOT NULL',
        fixup_rules=POSTGRESQL_RULES,
    )

    def _on_connect(self) -> None:
        if not self.config.foreign_keys:
            # проверку FK нельзя отключить на уровне сессии без прав
            # суперпользователя
            self.logger.info(
                'foreign_keys=False has no effect on PostgreSQL sessions'
            )

    def version(self) -> str:
        rows = self.fetch_all('SHOW server_version;')
        if not rows:
            return 'POSTGRESQL'
        return f'POSTGRESQL {rows[0]["server_version"]}'

    # -- интроспекция -------------------------------------------------------

    def list_tables(self) -> list[str]:
        rows = self.fetch_all(SQL_LIST_TABLES)
        return [as_text(row['tablename']) for row in rows]

    def columns_of(self, table: str) -> list[LiveColumn]:
        rows = self.fetch_all(SQL_COLUMNS, {'table': table}, table=table)
        try:
            return [
                LiveColumn(
                    name=as_text(row['column_name']),
                    type=as_text(row['data_type']),
                    nullable=bool(row['is_nullable']),
                    default=as_text(row['column_default']),
                )
                for row in rows
            ]
        except KeyError as exc:
            raise self._malformed(table, exc) from exc

    def constraints_of(self, table: str) -> list[LiveConstraint]:
        rows = self.fetch_all(SQL_CONSTRAINTS, {'table': table}, table=table)
        try:
            return group_constraint_rows(rows)
        except KeyError as exc:
            raise self._malformed(table, exc) from exc

    def indexes_of(self, table: str) -> list[IndexInfo]:
        rows = self.fetch_all(SQL_INDEXES, {'table': table}, table=table)
        indexes = []
        for row in rows:
            try:
                definition = as_text(row['indexdef']) or ''
                name = as_text(row['name'])
            except KeyError as exc:
                raise self._malformed(table, exc) from exc
            m = _INDEX_COLUMNS_RE.search(definition)
            if not m:
                raise self._malformed(table, ValueError(definition))
            columns = tuple(
                unquote_identifier(c) for c in m[1].split(',') if c.strip()
            )
            unique = definition.upper().startswith('CREATE UNIQUE')
            indexes.append(IndexInfo(name, columns, unique))
        return indexes

    def sequence_statements(
        self,
        table: str,
        column: ColumnDefinition,
    ) -> list[str]:
        """``CREATE SEQUENCE`` для отсутствующей последовательности nextval."""
        m = _NEXTVAL_RE.search(str(column.default or ''))
        if not m:
            return []
        sequence = validate_identifier(m[1])
        rows = self.fetch_all(
            SQL_SEQUENCE_EXISTS, {'name': sequence}, table=table
        )
        if rows:
            return []
        self.logger.info(
            'Sequence %s for %s.%s is missing', sequence, table, column.name
        )
        return [f'CREATE SEQUENCE {sequence} START 1;']

    # -- DDL ----------------------------------------------------------------

    def render_alter_column(
        self,
        table: str,
        column: ColumnDefinition,
    ) -> str:
        """Многодейственный ALTER: тип, NOT NULL и DEFAULT.

        У serial-колонки тип приводится к integer/bigint, а DEFAULT не
        трогается: им владеет последовательность.
        """
        col = f'ALTER COLUMN {self.quote(column.name)}'
        if column.is_serial:
            bigserial = column.type.strip().lower() == 'bigserial'
            native = 'bigint' if bigserial else 'integer'
        else:
            native = self.render_type(column.type)

        actions = [f'{col} TYPE {native}']
        if column.is_serial or not column.nullable:
            actions.append(f'{col} SET NOT NULL')
        else:
            actions.append(f'{col} DROP NOT NULL')

        if not column.is_serial:
            if column.default not in (None, ''):
                actions.append(f'{col} SET DEFAULT {column.default}')
            else:
                actions.append(f'{col} DROP DEFAULT')

        sql = f'ALTER TABLE {validate_identifier(table)} {", ".join(actions)};'
        return self.dialect_fixup(sql)

    def render_drop_constraint(
        self,
        table: str,
        constraint: Union[ConstraintDefinition, LiveConstraint],
    ) -> str:
        return (
            f'ALTER TABLE {validate_identifier(table)} '
            f'DROP CONSTRAINT {self.quote_live(constraint.name)};'
        )
