"""Иерархия исключений dbcorrector.

Классификация ошибок повторяет то, как с ними обращается реконсилер:
- ``DBConnectionError`` фатальна и прерывает весь проход;
- ``IntrospectionError`` логируется, таблица считается отсутствующей;
- ``ExecutionError`` прерывает обработку только одной таблицы;
- ``UnresolvableTypeError`` трактуется как несовпадение типов.
"""

from __future__ import annotations

from typing import Any, Optional


class CorrectorError(Exception):
    """Базовое исключение dbcorrector."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ', '.join(
                f'{k}={v}' for k, v in self.details.items()
            )
            result += f' [{details_str}]'
        if self.cause:
            result += f' (caused by: {self.cause})'
        return result


class ConfigurationError(CorrectorError):
    """Некорректная конфигурация подключения."""


class SchemaDefinitionError(CorrectorError):
    """Некорректное описание желаемой схемы (XML, ограничения)."""


class InvalidIdentifierError(SchemaDefinitionError):
    """Идентификатор не прошёл allow-list и не может попасть в DDL."""

    def __init__(self, identifier: object) -> None:
        super().__init__(
            f'Invalid SQL identifier: {identifier!r}',
            {'identifier': identifier},
        )
        self.identifier = identifier


class DBConnectionError(CorrectorError):
    """Не удалось подключиться к БД (драйвер, авторизация, сеть)."""

    def __init__(
        self,
        reason: str,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(f'Connection failed: {reason}', details, cause)
        self.reason = reason


class IntrospectionError(CorrectorError):
    """Метаданные живой схемы не удалось прочитать или разобрать."""

    def __init__(
        self,
        table: Optional[str],
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        details = {'table': table} if table else None
        super().__init__(f'Introspection failed: {reason}', details, cause)
        self.table = table
        self.reason = reason


class ExecutionError(CorrectorError):
    """SQL-оператор завершился ошибкой и был откатан."""

    def __init__(
        self,
        sql: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f'Statement failed: {reason}',
            {'sql': sql},
            cause,
        )
        self.sql = sql
        self.reason = reason


class UnsupportedOperationError(CorrectorError):
    """Диалект не умеет выполнить операцию через ALTER TABLE."""

    def __init__(self, dialect: str, operation: str) -> None:
        super().__init__(
            f'{dialect} does not support {operation}',
            {'dialect': dialect, 'operation': operation},
        )
        self.dialect = dialect
        self.operation = operation


class UnresolvableTypeError(CorrectorError):
    """Строку типа невозможно классифицировать."""

    def __init__(self, type_string: object) -> None:
        super().__init__(
            f'Cannot classify column type: {type_string!r}',
            {'type': type_string},
        )
        self.type_string = type_string
