from __future__ import annotations

import pytest

import dbcorrector.fixups as fixups_mod
from dbcorrector.config import DatabaseConfig
from dbcorrector.engines import MySQLEngine
from dbcorrector.errors import (
    InvalidIdentifierError,
    UnsupportedOperationError,
)
from dbcorrector.schema import (
    ColumnDefinition,
    ConstraintKind,
    LiveConstraint,
)

from tests._helpers.schema_builders import (
    clientes_schema,
    facturas_schema,
    roles_schema,
)

pytestmark = [pytest.mark.unit]


@pytest.fixture()
def fixed_today(monkeypatch):
    monkeypatch.setattr(fixups_mod, '_today', lambda: '2024-01-15')


def _fk_cliente():
    return facturas_schema().constraints[1]


# -- MySQL ------------------------------------------------------------------


def test_mysql_create_table_is_single_statement(mysql_engine):
    """Проверяет CREATE TABLE MySQL: колонки, ограничения и ENGINE."""
    assert mysql_engine.render_create_table(roles_schema()) == (
        'CREATE TABLE fs_roles ('
        '`codrol` varchar(20) NOT NULL, '
        '`descripcion` varchar(200) NULL, '
        'CONSTRAINT fs_roles_pkey PRIMARY KEY (codrol)'
        ') ENGINE=InnoDB DEFAULT CHARSET=utf8 COLLATE=utf8_bin;'
    )


def test_mysql_add_column_matches_expected_text(mysql_engine):
    """Проверяет побайтовый текст ADD для недостающей колонки email."""
    email = clientes_schema().column('email')
    assert mysql_engine.render_add_column('clientes', email) == (
        'ALTER TABLE clientes ADD `email` varchar(100) NULL;'
    )


def test_mysql_serial_and_nextval_get_auto_increment(mysql_engine):
    """Проверяет AUTO_INCREMENT для serial и для DEFAULT nextval()."""
    serial = ColumnDefinition('id', 'serial', False)
    assert mysql_engine.render_column(serial) == (
        '`id` INTEGER NOT NULL AUTO_INCREMENT'
    )

    nextval = ColumnDefinition(
        'id', 'integer', False, "nextval('clientes_id_seq'::regclass)"
    )
    assert mysql_engine.render_column(nextval) == (
        '`id` INTEGER NOT NULL AUTO_INCREMENT'
    )


def test_mysql_integer_type_comes_from_config():
    """Проверяет написание integer/serial из DatabaseConfig.integer_type."""
    engine = MySQLEngine(
        DatabaseConfig(type='mysql', name='fs', integer_type='INT(11)')
    )
    assert engine.render_type('serial') == 'INT(11)'
    assert engine.render_type('integer') == 'INT(11)'
    assert engine.render_type('bigint') == 'bigint'


def test_mysql_modify_column(mysql_engine):
    """Проверяет ALTER ... MODIFY с новым определением колонки."""
    column = ColumnDefinition('email', 'character varying(150)', False)
    assert mysql_engine.render_alter_column('clientes', column) == (
        'ALTER TABLE clientes MODIFY `email` varchar(150) NOT NULL;'
    )


def test_mysql_fixups_rewrite_defaults(mysql_engine, fixed_today):
    """Проверяет снятие ::character varying и замену CURRENT_DATE."""
    nota = ColumnDefinition(
        'nota', 'character varying(10)', True, "'abc'::character varying"
    )
    assert mysql_engine.render_add_column('t', nota) == (
        "ALTER TABLE t ADD `nota` varchar(10) NULL DEFAULT 'abc';"
    )

    fecha = ColumnDefinition('fecha', 'date', True, 'CURRENT_DATE')
    assert mysql_engine.render_add_column('t', fecha) == (
        "ALTER TABLE t ADD `fecha` date NULL DEFAULT '2024-01-15';"
    )

    hora = ColumnDefinition('hora', 'time without time zone', True, 'now()')
    assert mysql_engine.render_add_column('t', hora) == (
        "ALTER TABLE t ADD `hora` time NULL DEFAULT '00:00';"
    )


def test_mysql_drop_constraint_by_kind(mysql_engine):
    """Проверяет DROP PRIMARY KEY / FOREIGN KEY / INDEX в MySQL."""
    pk = LiveConstraint('PRIMARY', ConstraintKind.PRIMARY_KEY, ('id',))
    unique = LiveConstraint(
        'uniq_clientes_nombre', ConstraintKind.UNIQUE, ('nombre',)
    )
    assert mysql_engine.render_drop_constraint('clientes', pk) == (
        'ALTER TABLE clientes DROP PRIMARY KEY;'
    )
    assert mysql_engine.render_drop_constraint('clientes', unique) == (
        'ALTER TABLE clientes DROP INDEX uniq_clientes_nombre;'
    )
    assert mysql_engine.render_drop_constraint(
        'facturas', _fk_cliente()
    ) == 'ALTER TABLE facturas DROP FOREIGN KEY fk_cliente;'


def test_add_constraint_renders_full_clause(mysql_engine, postgres_engine):
    """Проверяет ADD CONSTRAINT с правилами ON DELETE/ON UPDATE."""
    expected = (
        'ALTER TABLE facturas ADD CONSTRAINT fk_cliente '
        'FOREIGN KEY (codcliente) REFERENCES clientes (id) '
        'ON DELETE CASCADE ON UPDATE CASCADE;'
    )
    for engine in (mysql_engine, postgres_engine):
        assert engine.render_add_constraint('facturas', _fk_cliente()) == (
            expected
        )


# -- PostgreSQL -------------------------------------------------------------


def test_postgres_create_table_keeps_declared_types(postgres_engine):
    """Проверяет CREATE TABLE PostgreSQL без опций таблицы."""
    assert postgres_engine.render_create_table(roles_schema()) == (
        'CREATE TABLE fs_roles ('
        '"codrol" character varying(20) NOT NULL, '
        '"descripcion" character varying(200) NULL, '
        'CONSTRAINT fs_roles_pkey PRIMARY KEY (codrol));'
    )


def test_postgres_keeps_temporal_defaults(postgres_engine):
    """Проверяет, что для PostgreSQL now() и serial пишутся как есть."""
    alta = clientes_schema().column('alta')
    assert postgres_engine.render_add_column('clientes', alta) == (
        'ALTER TABLE clientes ADD COLUMN "alta" '
        'timestamp without time zone NULL DEFAULT now();'
    )
    serial = ColumnDefinition('id', 'serial', False)
    assert postgres_engine.render_column(serial) == '"id" serial NOT NULL'


def test_postgres_alter_column_is_multi_action(postgres_engine):
    """Проверяет многодейственный ALTER: TYPE, NOT NULL и DEFAULT."""
    email = ColumnDefinition('email', 'character varying(150)')
    assert postgres_engine.render_alter_column('clientes', email) == (
        'ALTER TABLE clientes '
        'ALTER COLUMN "email" TYPE character varying(150), '
        'ALTER COLUMN "email" DROP NOT NULL, '
        'ALTER COLUMN "email" DROP DEFAULT;'
    )

    total = ColumnDefinition('total', 'double precision', False, '0')
    assert postgres_engine.render_alter_column('facturas', total) == (
        'ALTER TABLE facturas '
        'ALTER COLUMN "total" TYPE double precision, '
        'ALTER COLUMN "total" SET NOT NULL, '
        'ALTER COLUMN "total" SET DEFAULT 0;'
    )


@pytest.mark.parametrize(
    ('declared', 'native'),
    [('serial', 'integer'), ('bigserial', 'bigint')],
)
def test_postgres_alter_serial_leaves_default(
    postgres_engine,
    declared,
    native
):
    """Проверяет, что ALTER serial-колонки не трогает DEFAULT."""
    column = ColumnDefinition('id', declared, False)
    assert postgres_engine.render_alter_column('clientes', column) == (
        f'ALTER TABLE clientes ALTER COLUMN "id" TYPE {native}, '
        'ALTER COLUMN "id" SET NOT NULL;'
    )


def test_postgres_drop_constraint_by_name(postgres_engine):
    assert postgres_engine.render_drop_constraint(
        'facturas', _fk_cliente()
    ) == 'ALTER TABLE facturas DROP CONSTRAINT fk_cliente;'


# -- SQLite -----------------------------------------------------------------


def test_sqlite_create_table_applies_fixups(sqlite_engine):
    """Проверяет CREATE TABLE SQLite: serial -> integer, now() -> функция."""
    assert sqlite_engine.render_create_table(clientes_schema()) == (
        'CREATE TABLE clientes ('
        '"id" integer NOT NULL, '
        '"nombre" character varying(100) NOT NULL, '
        '"activo" boolean NULL DEFAULT false, '
        '"alta" timestamp NULL DEFAULT CURRENT_TIMESTAMP, '
        '"email" character varying(100) NULL, '
        'CONSTRAINT clientes_pkey PRIMARY KEY (id), '
        'CONSTRAINT uniq_clientes_nombre UNIQUE (nombre));'
    )


def test_sqlite_add_column(sqlite_engine):
    email = clientes_schema().column('email')
    assert sqlite_engine.render_add_column('clientes', email) == (
        'ALTER TABLE clientes ADD COLUMN "email" '
        'character varying(100) NULL;'
    )


def test_sqlite_rejects_alter_and_constraint_changes(sqlite_engine):
    """Проверяет, что SQLite не рендерит ALTER COLUMN и ADD/DROP CONSTRAINT."""
    column = ColumnDefinition('email', 'character varying(150)')
    with pytest.raises(UnsupportedOperationError) as exc_info:
        sqlite_engine.render_alter_column('clientes', column)
    assert exc_info.value.dialect == 'sqlite'
    assert exc_info.value.operation == 'ALTER COLUMN'

    with pytest.raises(UnsupportedOperationError):
        sqlite_engine.render_add_constraint('facturas', _fk_cliente())
    with pytest.raises(UnsupportedOperationError):
        sqlite_engine.render_drop_constraint('facturas', _fk_cliente())


# -- идентификаторы ---------------------------------------------------------


@pytest.mark.parametrize(
    'table', ['clientes; DROP TABLE x', 'a b', '"clientes"', '']
)
def test_unsafe_table_name_never_reaches_sql(mysql_engine, table):
    """Проверяет allow-list имени таблицы перед подстановкой в DDL."""
    email = clientes_schema().column('email')
    with pytest.raises(InvalidIdentifierError):
        mysql_engine.render_add_column(table, email)


def test_quote_validates_identifier(mysql_engine, postgres_engine):
    assert mysql_engine.quote('email') == '`email`'
    assert postgres_engine.quote('email') == '"email"'
    with pytest.raises(InvalidIdentifierError):
        postgres_engine.quote('em"ail')


def test_live_constraint_names_are_quoted_not_rejected(
    mysql_engine,
    postgres_engine
):
    """Проверяет DROP живого ограничения с именем вне allow-list."""
    pk = LiveConstraint('a pk', ConstraintKind.PRIMARY_KEY, ('x',))
    assert postgres_engine.render_drop_constraint('a', pk) == (
        'ALTER TABLE a DROP CONSTRAINT "a pk";'
    )
    fk = LiveConstraint(
        'fk-old`name',
        ConstraintKind.FOREIGN_KEY,
        ('codcliente',),
        foreign_table='clientes',
        foreign_columns=('id',),
    )
    assert mysql_engine.render_drop_constraint('facturas', fk) == (
        'ALTER TABLE facturas DROP FOREIGN KEY `fk-old``name`;'
    )
    assert postgres_engine.quote_live('fk_cliente') == 'fk_cliente'
