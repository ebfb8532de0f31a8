from __future__ import annotations

import pytest
from sqlalchemy import create_engine, inspect, text

from dbcorrector.reconciler import SchemaReconciler, SyncState
from dbcorrector.schema import ConstraintDefinition, TableSchema

pytestmark = [pytest.mark.integration, pytest.mark.postgres]


def _by_suffix(schemas: list[TableSchema], suffix: str) -> TableSchema:
    return next(s for s in schemas if s.name.endswith(suffix))


def _sa_engine(engine):
    return create_engine(engine.config.to_url())


def test_create_then_second_pass_is_a_no_op(
    postgres_engine,
    prefixed_schemas
):
    """Проверяет создание таблиц и идемпотентность на PostgreSQL."""
    first = SchemaReconciler(postgres_engine).reconcile(prefixed_schemas)
    assert first.ok

    second = SchemaReconciler(postgres_engine).reconcile(prefixed_schemas)
    assert second.operations() == []
    assert all(r.sync is SyncState.IN_SYNC for r in second.results)


def test_add_and_alter_column_preserve_data(
    postgres_engine,
    prefixed_schemas,
    table_prefix
):
    """Проверяет ADD COLUMN и ALTER COLUMN TYPE на заполненной таблице."""
    roles = _by_suffix(prefixed_schemas, 'fs_roles')
    sa = _sa_engine(postgres_engine)
    try:
        with sa.begin() as conn:
            conn.execute(text(
                f'CREATE TABLE {roles.name} ('
                'codrol character varying(20) NOT NULL, '
                'legacy character varying(50), '
                'descripcion character varying(100), '
                f'CONSTRAINT {table_prefix}fs_roles_pkey '
                'PRIMARY KEY (codrol))'
            ))
            conn.execute(text(
                f"INSERT INTO {roles.name} (codrol, legacy, descripcion) "
                "VALUES ('admin', 'keep-me', 'Administrador')"
            ))

        report = SchemaReconciler(postgres_engine).reconcile([roles])
        assert report.ok
        assert [op.kind for op in report.operations()] == ['alter_column']

        columns = {
            c['name']: c for c in inspect(sa).get_columns(roles.name)
        }
        assert columns['descripcion']['type'].length == 200
        assert 'legacy' in columns
        with sa.connect() as conn:
            row = conn.execute(text(
                f'SELECT legacy, descripcion FROM {roles.name}'
            )).one()
        assert tuple(row) == ('keep-me', 'Administrador')

        again = SchemaReconciler(postgres_engine).plan_table(roles)
        assert again.operations == []
    finally:
        sa.dispose()


def test_changed_foreign_key_rule_is_recreated(
    postgres_engine,
    prefixed_schemas,
    table_prefix
):
    """Проверяет DROP + ADD внешнего ключа с другим ON DELETE."""
    SchemaReconciler(postgres_engine).reconcile(prefixed_schemas)

    facturas = _by_suffix(prefixed_schemas, 'facturas')
    clientes = _by_suffix(prefixed_schemas, 'clientes')
    fk = ConstraintDefinition.from_sql(
        f'{table_prefix}fk_cliente',
        f'FOREIGN KEY (codcliente) REFERENCES {clientes.name} (id) '
        'ON DELETE SET NULL',
    )
    changed = TableSchema(
        facturas.name,
        facturas.columns,
        tuple(
            fk if c.name == fk.name else c for c in facturas.constraints
        ),
    )

    result = SchemaReconciler(postgres_engine).reconcile_table(changed)
    assert [op.kind for op in result.executed] == [
        'drop_constraint',
        'add_constraint',
    ]

    live = {c.name: c for c in postgres_engine.constraints_of(facturas.name)}
    assert live[fk.name].on_delete == 'SET NULL'
    plan = SchemaReconciler(postgres_engine).plan_table(changed)
    assert plan.operations == []
