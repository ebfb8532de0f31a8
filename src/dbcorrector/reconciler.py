"""Реконсиляция живой схемы с желаемой.

Для каждой таблицы строится план (``TablePlan``) из операций
``Operation``, затем операции выполняются по одной, каждая в своей
транзакции. Ошибка выполнения прерывает только текущую таблицу.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional

from .constraints import diff_constraints
from .engines.base import DialectEngine
from .errors import (
    CorrectorError,
    DBConnectionError,
    ExecutionError,
    IntrospectionError,
    UnresolvableTypeError,
    UnsupportedOperationError,
)
from .schema import ColumnDefinition, LiveColumn, LiveConstraint, TableSchema


class TableState(str, Enum):
    ABSENT = 'absent'
    CREATING = 'creating'
    PRESENT = 'present'


class SyncState(str, Enum):
    IN_SYNC = 'in_sync'
    DIVERGED = 'diverged'


@dataclass(frozen=True)
class Operation:
    """Описывает одну операцию над схемой таблицы.

    Attributes:
        kind: Тип операции. Поддерживаемые значения:
            - create_sequence: создание последовательности для nextval;
            - create_table: создание отсутствующей таблицы;
            - add_column: добавление отсутствующей колонки;
            - alter_column: изменение типа/NULL/DEFAULT колонки;
            - drop_constraint: удаление ограничения с другой формой;
            - add_constraint: добавление ограничения;
            - table_aux: служебные операторы диалекта (движок хранения);
            - report: расхождение, которое диалект не умеет исправить.
        sql: SQL-код операции. Для kind='report' содержит '-- no-op'.
        comment: Человеко-читаемое описание операции.
    """
    kind: str
    sql: str
    comment: str = ''


@dataclass
class TablePlan:
    """План одной таблицы: состояние до реконсиляции и операции."""

    table: str
    state: TableState
    operations: list[Operation] = field(default_factory=list)

    @property
    def sync(self) -> SyncState:
        return SyncState.DIVERGED if self.operations else SyncState.IN_SYNC

    @property
    def reports(self) -> list[Operation]:
        return [op for op in self.operations if op.kind == 'report']


@dataclass
class TableResult:
    """Итог реконсиляции таблицы."""

    table: str
    state: TableState
    sync: SyncState
    operations: list[Operation] = field(default_factory=list)
    executed: list[Operation] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ReconciliationReport:
    """Итог прохода по всем таблицам."""

    results: list[TableResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed_tables(self) -> list[str]:
        return [r.table for r in self.results if not r.ok]

    @property
    def errors(self) -> list[str]:
        return [e for r in self.results for e in r.errors]

    def operations(self) -> list[Operation]:
        return [op for r in self.results for op in r.operations]

    def result(self, table: str) -> Optional[TableResult]:
        for r in self.results:
            if r.table.lower() == table.lower():
                return r
        return None


def _report(comment: str) -> Operation:
    return Operation(kind='report', sql='-- no-op', comment=comment)


class SchemaReconciler:
    """Приводит живую схему БД к желаемой.

    Выполняются только аддитивные изменения: создание таблиц и колонок,
    изменение колонок, пересоздание ограничений с другой формой. Колонки
    никогда не удаляются, лишние таблицы и колонки не трогаются.

    Args:
        engine: Подключённый движок диалекта.
        dry_run: Если True, план выводится в stdout и не выполняется.
        logger: Логгер. Если не передан, используется логгер по имени класса.
    """

    def __init__(
        self,
        engine: DialectEngine,
        *,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.engine = engine
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    # -- планирование -------------------------------------------------------

    def live_tables(self) -> list[str]:
        """Таблицы БД; при ошибке интроспекции считается, что их нет."""
        try:
            return self.engine.list_tables()
        except IntrospectionError as exc:
            self.logger.warning(
                'Cannot list tables, treating all as absent: %s', exc
            )
            return []

    def plan_table(
        self,
        schema: TableSchema,
        live_tables: Optional[Iterable[str]] = None,
    ) -> TablePlan:
        """Строит план для одной таблицы.

        Args:
            schema: Желаемая схема таблицы.
            live_tables: Имена существующих таблиц. Если None, читаются
                из БД.

        Returns:
            TablePlan: Состояние таблицы и операции в порядке выполнения.
        """
        if live_tables is None:
            live_tables = self.live_tables()
        existing = {t.lower() for t in live_tables}
        schema = self._normalize(schema)

        if schema.name.lower() not in existing:
            self.logger.info('Planning create table: %s', schema.name)
            return TablePlan(
                schema.name, TableState.ABSENT, self._plan_create(schema)
            )

        try:
            columns = self.engine.columns_of(schema.name)
            constraints = self.engine.constraints_of(schema.name)
        except IntrospectionError as exc:
            self.logger.warning(
                'Introspection failed for %s, treating it as absent: %s',
                schema.name,
                exc,
            )
            return TablePlan(
                schema.name, TableState.ABSENT, self._plan_create(schema)
            )

        ops = self._plan_present(schema, columns, constraints)
        if ops:
            self.logger.info(
                'Planned operations: table=%s, count=%d', schema.name, len(ops)
            )
        return TablePlan(schema.name, TableState.PRESENT, ops)

    def _normalize(self, schema: TableSchema) -> TableSchema:
        """Колонки первичного ключа и serial всегда NOT NULL."""
        pk = schema.primary_key_columns()
        columns = tuple(
            replace(c, nullable=False)
            if c.nullable and (c.is_serial or c.name.lower() in pk)
            else c
            for c in schema.columns
        )
        if columns == schema.columns:
            return schema
        return TableSchema(schema.name, columns, schema.constraints)

    def _sequence_ops(
        self,
        table: str,
        column: ColumnDefinition,
    ) -> list[Operation]:
        try:
            statements = self.engine.sequence_statements(table, column)
        except IntrospectionError as exc:
            self.logger.warning(
                'Cannot check sequence for %s.%s: %s', table, column.name, exc
            )
            return []
        return [
            Operation(
                kind='create_sequence',
                sql=sql,
                comment=f'Create sequence for {table}.{column.name}',
            )
            for sql in statements
        ]

    def _plan_create(self, schema: TableSchema) -> list[Operation]:
        ops: list[Operation] = []
        for column in schema.columns:
            ops.extend(self._sequence_ops(schema.name, column))
        ops.append(Operation(
            kind='create_table',
            sql=self.engine.render_create_table(schema),
            comment=f'Create table {schema.name}',
        ))
        return ops

    def _plan_present(
        self,
        schema: TableSchema,
        live_columns: list[LiveColumn],
        live_constraints: list[LiveConstraint],
    ) -> list[Operation]:
        table = schema.name
        live_by_name = {c.name.lower(): c for c in live_columns}
        pk = schema.primary_key_columns()

        sequences: list[Operation] = []
        adds: list[Operation] = []
        alters: list[Operation] = []

        for column in schema.columns:
            live = live_by_name.get(column.name.lower())
            if live is None:
                sequences.extend(self._sequence_ops(table, column))
                adds.append(Operation(
                    kind='add_column',
                    sql=self.engine.render_add_column(table, column),
                    comment=f'Add column {table}.{column.name}',
                ))
                continue

            key = column.is_serial or column.name.lower() in pk
            differences = self._column_differences(table, column, live, key)
            if not differences:
                continue
            comment = (
                f'Alter column {table}.{column.name}: '
                f'{"; ".join(differences)}'
            )
            try:
                sql = self.engine.render_alter_column(table, column)
            except UnsupportedOperationError as exc:
                alters.append(self._unsupported(comment, exc))
                continue
            alters.append(Operation('alter_column', sql, comment))

        drops: list[Operation] = []
        constraint_adds: list[Operation] = []
        for change in diff_constraints(schema.constraints, live_constraints):
            constraint = change.constraint
            label = constraint.name or constraint.kind.value
            try:
                if change.action == 'drop':
                    drops.append(Operation(
                        kind='drop_constraint',
                        sql=self.engine.render_drop_constraint(
                            table, constraint
                        ),
                        comment=f'Drop constraint {table}.{label}',
                    ))
                else:
                    constraint_adds.append(Operation(
                        kind='add_constraint',
                        sql=self.engine.render_add_constraint(
                            table, constraint
                        ),
                        comment=f'Add constraint {table}.{label}',
                    ))
            except UnsupportedOperationError as exc:
                target = drops if change.action == 'drop' else constraint_adds
                target.append(self._unsupported(
                    f'{change.action} constraint {table}.{label}', exc
                ))

        return (
            sequences + adds + alters + drops + constraint_adds
            + self._aux_ops(table)
        )

    def _aux_ops(self, table: str) -> list[Operation]:
        try:
            statements = self.engine.check_table_aux(table)
        except IntrospectionError as exc:
            self.logger.warning(
                'Cannot check table options of %s: %s', table, exc
            )
            return []
        return [
            Operation(
                kind='table_aux',
                sql=sql,
                comment=f'Table options {table}',
            )
            for sql in statements
        ]

    def _unsupported(
        self,
        comment: str,
        exc: UnsupportedOperationError,
    ) -> Operation:
        msg = f'UNSUPPORTED: {comment} ({exc.message})'
        self.logger.warning(msg)
        return _report(msg)

    def _column_differences(
        self,
        table: str,
        column: ColumnDefinition,
        live: LiveColumn,
        key: bool = False,
    ) -> list[str]:
        """Причины, по которым колонке нужен ALTER (пусто, если не нужен)."""
        differences = []
        try:
            if not self.engine.type_equivalent(live.type, column.type):
                differences.append(
                    f'type {live.type} -> '
                    f'{self.engine.render_type(column.type)}'
                )
        except UnresolvableTypeError as exc:
            self.logger.warning(
                'Cannot compare types of %s.%s: %s', table, column.name, exc
            )
            differences.append(f'type {live.type} is unresolvable')

        # ключевые колонки сравниваются как NOT NULL с обеих сторон
        live_nullable = live.nullable and not key
        if live_nullable != column.nullable:
            differences.append('NOT NULL' if not column.nullable else 'NULL')

        if not column.is_serial and not self.engine.defaults_equivalent(
            live.default, column.default
        ):
            differences.append(
                f'default {live.default!r} -> {column.default!r}'
            )
        return differences

    def _sort_missing_tables_by_fk(
        self,
        missing: list[TableSchema],
    ) -> list[TableSchema]:
        """Сортирует недостающие таблицы с учётом зависимостей FK.

        Таблицы-«родители» создаются раньше таблиц-«потомков», которые
        ссылаются на них через FK. Если обнаружен цикл зависимостей,
        возвращает исходный порядок и логирует предупреждение.

        Args:
            missing: Таблицы, отсутствующие в БД, в порядке объявления.

        Returns:
            list[TableSchema]: Таблицы в порядке, безопасном для создания.
        """
        names = {s.name.lower() for s in missing}
        deps: dict[str, set[str]] = {
            s.name.lower(): {
                t.lower() for t in s.referenced_tables()
                if t.lower() in names
            }
            for s in missing
        }

        ready = [s for s in missing if not deps[s.name.lower()]]
        out: list[TableSchema] = []

        while ready:
            n = ready.pop(0)
            out.append(n)
            for s in missing:
                key = s.name.lower()
                if n.name.lower() in deps[key]:
                    deps[key].remove(n.name.lower())
                    if not deps[key] and s not in out and s not in ready:
                        ready.append(s)

        if len(out) != len(missing):
            self.logger.warning(
                'RISKY: cycle detected in FK dependencies, '
                'using declared order'
            )
            return missing
        return out

    # -- выполнение ---------------------------------------------------------

    def reconcile_table(
        self,
        schema: TableSchema,
        live_tables: Optional[Iterable[str]] = None,
    ) -> TableResult:
        """Планирует и применяет изменения одной таблицы.

        Операции выполняются по порядку, каждая в своей транзакции. Первая
        ошибка выполнения прерывает таблицу и попадает в
        ``TableResult.errors``.

        Ошибка планирования (кроме потери соединения) тоже остаётся в
        ``TableResult.errors`` этой таблицы.

        Raises:
            DBConnectionError: Соединение потеряно, проход прерывается.
        """
        try:
            plan = self.plan_table(schema, live_tables)
        except DBConnectionError:
            raise
        except CorrectorError as exc:
            self.logger.error(
                'Planning failed: table=%s, error=%s', schema.name, exc
            )
            existing = {t.lower() for t in live_tables or ()}
            state = (
                TableState.PRESENT if schema.name.lower() in existing
                else TableState.ABSENT
            )
            return TableResult(
                schema.name,
                state,
                SyncState.DIVERGED,
                errors=[f'{schema.name}: Plan table: {exc}'],
            )

        if self.dry_run:
            for op in plan.operations:
                print(f'-- {op.kind}: {op.comment}\n{op.sql}\n')
            return TableResult(
                plan.table, plan.state, plan.sync, plan.operations
            )

        state = plan.state
        executed: list[Operation] = []
        errors: list[str] = []

        for i, op in enumerate(plan.operations, start=1):
            if op.kind == 'report':
                self.logger.info('Skipping report op: %s', op.comment)
                continue
            if op.kind == 'create_table':
                state = TableState.CREATING
            self.logger.info(
                'Executing op %d/%d: %s (%s)',
                i,
                len(plan.operations),
                op.kind,
                op.comment,
            )
            try:
                self.engine.execute(op.sql)
            except ExecutionError as exc:
                self.logger.error(
                    'Operation failed: table=%s, op=%s, error=%s',
                    plan.table,
                    op.comment,
                    exc.reason,
                )
                errors.append(f'{plan.table}: {op.comment}: {exc.reason}')
                if state is TableState.CREATING:
                    state = TableState.ABSENT
                break
            executed.append(op)
            if op.kind == 'create_table':
                state = TableState.PRESENT

        if errors or plan.reports:
            sync = SyncState.DIVERGED
        else:
            sync = SyncState.IN_SYNC
        return TableResult(
            plan.table, state, sync, plan.operations, executed, errors
        )

    def reconcile(
        self,
        schemas: Iterable[TableSchema],
    ) -> ReconciliationReport:
        """Реконсилирует набор таблиц.

        Отсутствующие таблицы создаются первыми, в порядке зависимостей FK,
        затем обрабатываются существующие в порядке объявления.
        """
        schemas = list(schemas)
        live = self.live_tables()
        existing = {t.lower() for t in live}

        missing = [s for s in schemas if s.name.lower() not in existing]
        present = [s for s in schemas if s.name.lower() in existing]
        self.logger.info(
            'Reconciling %d tables (missing=%d, dry_run=%s)',
            len(schemas),
            len(missing),
            self.dry_run,
        )

        report = ReconciliationReport(dry_run=self.dry_run)
        for schema in self._sort_missing_tables_by_fk(missing) + present:
            report.results.append(self.reconcile_table(schema, live))

        if report.ok:
            self.logger.info(
                'Reconciliation finished: tables=%d', len(report.results)
            )
        else:
            self.logger.error(
                'Reconciliation finished with errors: %s',
                ', '.join(report.failed_tables),
            )
        return report
