"""Выбор движка по конфигурации."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from ..config import DatabaseConfig
from ..errors import ConfigurationError
from .base import DialectEngine
from .mysql import MySQLEngine
from .postgresql import PostgreSQLEngine
from .sqlite import SQLiteEngine

ENGINES: dict[str, type[DialectEngine]] = {
    'mysql': MySQLEngine,
    'postgresql': PostgreSQLEngine,
    'sqlite': SQLiteEngine,
}


def create_engine_for(
    config: DatabaseConfig,
    *,
    logger: Optional[logging.Logger] = None,
) -> DialectEngine:
    """Создаёт (не подключая) движок диалекта из ``config.type``."""
    try:
        engine_cls = ENGINES[config.type]
    except KeyError as exc:
        raise ConfigurationError(
            f'Unsupported database type: {config.type}'
        ) from exc
    return engine_cls(config, logger=logger)


def test_connect(
    errors: list[str],
    config: Union[DatabaseConfig, Mapping[str, Any]],
) -> bool:
    """Проверка подключения для установщика.

    ``config`` может быть ``DatabaseConfig`` или словарём установщика
    ``{type, host, port, user, pass, name}``. Сообщение об ошибке
    добавляется в ``errors``, функция возвращает False и не бросает
    исключений.
    """
    if not isinstance(config, DatabaseConfig):
        try:
            config = DatabaseConfig.from_mapping(config)
        except ConfigurationError as exc:
            errors.append(str(exc))
            return False
    return ENGINES[config.type].test_connect(errors, config)


# pytest не должен собирать функцию как тест
test_connect.__test__ = False  # type: ignore[attr-defined]
