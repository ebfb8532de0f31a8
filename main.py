from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from dbcorrector import log_conf  # noqa: F401
from dbcorrector.config import load_settings
from dbcorrector.engines import DialectEngine, create_engine_for
from dbcorrector.errors import (
    ConfigurationError,
    DBConnectionError,
    IntrospectionError,
    SchemaDefinitionError,
)
from dbcorrector.reconciler import SchemaReconciler
from dbcorrector.xml_loader import load_tables

logger = logging.getLogger('dbcorrector')

EXIT_OK = 0
EXIT_TABLE_ERRORS = 1
EXIT_FATAL = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Reconcile live DB schema with XML table definitions',
    )
    parser.add_argument(
        '--tables-dir',
        required=True,
        help='Directory with <table>.xml definitions',
    )
    parser.add_argument(
        '--db-type',
        default=None,
        choices=['mysql', 'postgresql', 'sqlite'],
    )
    parser.add_argument('--db-host', default=None)
    parser.add_argument('--db-port', default=None)
    parser.add_argument('--db-name', default=None)
    parser.add_argument('--db-user', default=None)
    parser.add_argument('--db-pass', default=None)
    parser.add_argument(
        '--env-file',
        default=None,
        help='File with FS_DB_* settings',
    )
    parser.add_argument(
        '--no-foreign-keys',
        action='store_true',
        help='Disable foreign key checks for the session',
    )
    parser.add_argument(
        '--apply',
        action='store_true',
        help='Apply changes (otherwise dry-run)',
    )
    parser.add_argument(
        '--inspect',
        metavar='TABLE',
        default=None,
        help='Print live columns, constraints and indexes of a table',
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
    )
    return parser.parse_args(argv)


def print_inspection(engine: DialectEngine, table: str) -> None:
    """Печатает живую схему таблицы."""
    print(f'-- {table}')
    for col in engine.columns_of(table):
        null = 'NULL' if col.nullable else 'NOT NULL'
        default = f' DEFAULT {col.default}' if col.default is not None else ''
        print(f'column {col.name} {col.type} {null}{default}')
    for con in engine.constraints_of(table):
        print(f'constraint {con.name or "-"} {con.to_sql()}')
    for idx in engine.indexes_of(table):
        unique = 'UNIQUE ' if idx.unique else ''
        print(f'index {idx.name} {unique}({", ".join(idx.columns)})')


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    try:
        settings = load_settings(args.env_file)
        config = settings.to_database_config(
            type=args.db_type,
            host=args.db_host,
            port=args.db_port,
            name=args.db_name,
            user=args.db_user,
            foreign_keys=False if args.no_foreign_keys else None,
            **{'pass': args.db_pass},
        )
        schemas = [] if args.inspect else load_tables(args.tables_dir)
    except (ConfigurationError, SchemaDefinitionError) as exc:
        logger.error('Configuration error: %s', exc)
        return EXIT_FATAL

    engine = create_engine_for(config)
    try:
        with engine:
            logger.info('Server: %s', engine.version())
            if args.inspect:
                print_inspection(engine, args.inspect)
                return EXIT_OK

            reconciler = SchemaReconciler(engine, dry_run=not args.apply)
            report = reconciler.reconcile(schemas)
    except DBConnectionError as exc:
        logger.error('%s', exc)
        return EXIT_FATAL
    except (IntrospectionError, SchemaDefinitionError) as exc:
        logger.error('%s', exc)
        return EXIT_TABLE_ERRORS

    if not report.ok:
        for error in report.errors:
            logger.error('Table error: %s', error)
        return EXIT_TABLE_ERRORS
    return EXIT_OK


if __name__ == '__main__':
    raise SystemExit(main())
