"""dbcorrector: приведение живой схемы MySQL/PostgreSQL/SQLite к желаемой."""

from .config import CorrectorSettings, DatabaseConfig, load_settings
from .constraints import ConstraintChange, diff_constraints
from .engines import DialectEngine, create_engine_for, test_connect
from .errors import (
    ConfigurationError,
    CorrectorError,
    DBConnectionError,
    ExecutionError,
    IntrospectionError,
    InvalidIdentifierError,
    SchemaDefinitionError,
    UnresolvableTypeError,
    UnsupportedOperationError,
)
from .reconciler import (
    Operation,
    ReconciliationReport,
    SchemaReconciler,
    SyncState,
    TablePlan,
    TableResult,
    TableState,
)
from .schema import (
    ColumnDefinition,
    ConstraintDefinition,
    ConstraintKind,
    IndexInfo,
    LiveColumn,
    LiveConstraint,
    TableSchema,
)
from .xml_loader import load_table, load_tables

__version__ = '0.1.0'

__all__ = [
    'ColumnDefinition',
    'ConfigurationError',
    'ConstraintChange',
    'ConstraintDefinition',
    'ConstraintKind',
    'CorrectorError',
    'CorrectorSettings',
    'DBConnectionError',
    'DatabaseConfig',
    'DialectEngine',
    'ExecutionError',
    'IndexInfo',
    'IntrospectionError',
    'InvalidIdentifierError',
    'LiveColumn',
    'LiveConstraint',
    'Operation',
    'ReconciliationReport',
    'SchemaDefinitionError',
    'SchemaReconciler',
    'SyncState',
    'TablePlan',
    'TableResult',
    'TableSchema',
    'TableState',
    'UnresolvableTypeError',
    'UnsupportedOperationError',
    'create_engine_for',
    'diff_constraints',
    'load_settings',
    'load_table',
    'load_tables',
    'test_connect',
]
