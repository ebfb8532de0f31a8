"""Движок MySQL/MariaDB (драйвер PyMySQL)."""

from __future__ import annotations

from typing import Union

from ..fixups import MYSQL_RULES
from ..schema import (
    ColumnDefinition,
    ConstraintDefinition,
    ConstraintKind,
    IndexInfo,
    LiveColumn,
    LiveConstraint,
    validate_identifier,
)
from .base import (
    DialectCapabilities,
    DialectEngine,
    as_text,
    group_constraint_rows,
)

SQL_LIST_TABLES = 'SHOW TABLES;'
SQL_COLUMNS = 'SHOW COLUMNS FROM `{table}`;'
SQL_INDEXES = 'SHOW INDEXES FROM {table};'
SQL_TABLE_STATUS = 'SHOW TABLE STATUS LIKE :table;'
SQL_CONSTRAINTS = (
    'SELECT t1.constraint_name as name,'
    ' t1.constraint_type as type,'
    ' t2.column_name,'
    ' t2.referenced_table_name AS foreign_table_name,'
    ' t2.referenced_column_name AS foreign_column_name,'
    ' t3.update_rule AS on_update,'
    ' t3.delete_rule AS on_delete'
    ' FROM information_schema.table_constraints t1'
    ' LEFT JOIN information_schema.key_column_usage t2'
    ' ON t1.table_schema = t2.table_schema'
    ' AND t1.table_name = t2.table_name'
    ' AND t1.constraint_name = t2.constraint_name'
    ' LEFT JOIN information_schema.referential_constraints t3'
    ' ON t3.constraint_schema = t1.table_schema'
    ' AND t3.constraint_name = t1.constraint_name'
    ' WHERE t1.table_schema = SCHEMA()'
    ' AND t1.table_name = :table'
    ' ORDER BY type DESC, name ASC, t2.ordinal_position ASC;'
)


class MySQLEngine(DialectEngine):
    """MySQL: таблицы InnoDB, кодировка utf8, AUTO_INCREMENT."""

    capabilities = DialectCapabilities(
        name='mysql',
        quote_char='`',
        auto_increment=' NOT NULL AUTO_INCREMENT',
        type_names={
            'character varying': 'varchar',
            'timestamp without time zone': 'timestamp',
            'time without time zone': 'time',
        },
        boolean_aliases=('tinyint(1)',),
        table_options='ENGINE=InnoDB DEFAULT CHARSET=utf8 COLLATE=utf8_bin',
        add_column='ADD',
        fixup_rules=MYSQL_RULES,
    )

    def _on_connect(self) -> None:
        if not self.config.foreign_keys:
            self.execute('SET foreign_key_checks = 0;')
            self.logger.info('Foreign key checks disabled for this session')

    def version(self) -> str:
        rows = self.fetch_all('SELECT VERSION() AS version;')
        return f'MYSQL {rows[0]["version"]}' if rows else 'MYSQL'

    def render_type(self, declared: str) -> str:
        if declared.strip().lower() in ('integer', 'serial'):
            return self.config.integer_type
        return super().render_type(declared)

    def is_auto_increment(self, column: ColumnDefinition) -> bool:
        default = column.default or ''
        return column.is_serial or 'nextval(' in default.lower()

    # -- интроспекция -------------------------------------------------------

    def list_tables(self) -> list[str]:
        rows = self.fetch_all(SQL_LIST_TABLES)
        # ключ колонки зависит от имени базы: Tables_in_<db>
        return [as_text(next(iter(row.values()))) for row in rows if row]

    def columns_of(self, table: str) -> list[LiveColumn]:
        sql = SQL_COLUMNS.format(table=validate_identifier(table))
        rows = self.fetch_all(sql, table=table)
        try:
            return [
                LiveColumn(
                    name=as_text(row['field']),
                    type=as_text(row['type']),
                    nullable=as_text(row['null']) == 'YES',
                    default=as_text(row['default']),
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
        sql = SQL_INDEXES.format(table=validate_identifier(table))
        rows = self.fetch_all(sql, table=table)
        indexes: dict[str, IndexInfo] = {}
        try:
            for row in rows:
                name = as_text(row['key_name'])
                column = as_text(row['column_name'])
                unique = int(row['non_unique']) == 0
                current = indexes.get(name)
                columns = (current.columns if current else ()) + (column,)
                indexes[name] = IndexInfo(name, columns, unique)
        except (KeyError, TypeError, ValueError) as exc:
            raise self._malformed(table, exc) from exc
        return list(indexes.values())

    def check_table_aux(self, table: str) -> list[str]:
        """Таблица, созданная не на InnoDB, переводится на InnoDB.

        ``_`` в шаблоне LIKE совпадает с любым символом, поэтому строка
        выбирается по точному имени.
        """
        rows = self.fetch_all(SQL_TABLE_STATUS, {'table': table}, table=table)
        status = next(
            (
                row for row in rows
                if (as_text(row.get('name')) or '').lower() == table.lower()
            ),
            None,
        )
        if status is None:
            return []
        engine = as_text(status.get('engine'))
        if engine not in (None, 'InnoDB'):
            self.logger.warning(
                'Table %s does not use InnoDB (engine=%s)', table, engine
            )
            return [f'ALTER TABLE {validate_identifier(table)} ENGINE=InnoDB;']
        return []

    # -- DDL ----------------------------------------------------------------

    def render_alter_column(
        self,
        table: str,
        column: ColumnDefinition,
    ) -> str:
        sql = (
            f'ALTER TABLE {validate_identifier(table)} '
            f'MODIFY {self.render_column(column)};'
        )
        return self.dialect_fixup(sql)

    def render_drop_constraint(
        self,
        table: str,
        constraint: Union[ConstraintDefinition, LiveConstraint],
    ) -> str:
        start = f'ALTER TABLE {validate_identifier(table)} DROP'
        if constraint.kind is ConstraintKind.PRIMARY_KEY:
            return f'{start} PRIMARY KEY;'
        name = self.quote_live(constraint.name)
        if constraint.kind is ConstraintKind.FOREIGN_KEY:
            return f'{start} FOREIGN KEY {name};'
        return f'{start} INDEX {name};'
