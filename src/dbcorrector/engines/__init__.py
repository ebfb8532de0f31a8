"""Движки диалектов SQL."""

from .base import DialectCapabilities, DialectEngine
from .factory import ENGINES, create_engine_for, test_connect
from .mysql import MySQLEngine
from .postgresql import PostgreSQLEngine
from .sqlite import SQLiteEngine

__all__ = [
    'DialectCapabilities',
    'DialectEngine',
    'ENGINES',
    'MySQLEngine',
    'PostgreSQLEngine',
    'SQLiteEngine',
    'create_engine_for',
    'test_connect',
]
