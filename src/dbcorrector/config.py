"""Конфигурация подключения к БД.

``DatabaseConfig`` явно передаётся в конструктор движка вместо глобальных
констант. ``CorrectorSettings`` читает сохранённый блок ключ-значение
(``FS_DB_HOST=...``) из окружения или env-файла.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from .errors import ConfigurationError

DialectName = Literal['mysql', 'postgresql', 'sqlite']

DRIVERS: dict[str, str] = {
    'mysql': 'mysql+pymysql',
    'postgresql': 'postgresql+psycopg2',
    'sqlite': 'sqlite',
}

DEFAULT_PORTS: dict[str, Optional[int]] = {
    'mysql': 3306,
    'postgresql': 5432,
    'sqlite': None,
}

# синонимы из установщика (pdo_mysql, pdo_pgsql...)
_TYPE_ALIASES = {
    'mysql': 'mysql',
    'pdo_mysql': 'mysql',
    'mariadb': 'mysql',
    'postgresql': 'postgresql',
    'postgres': 'postgresql',
    'pdo_pgsql': 'postgresql',
    'sqlite': 'sqlite',
    'pdo_sqlite': 'sqlite',
}


class DatabaseConfig(BaseModel):
    """Параметры подключения и флаги схемы."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: DialectName = Field('mysql', description='Database dialect')
    host: str = Field('localhost', description='Database host')
    port: Optional[int] = Field(None, description='Database port')
    name: str = Field(..., description='Database name or SQLite file path')
    user: str = Field('', description='Database user')
    password: str = Field('', alias='pass', description='Database password')
    foreign_keys: bool = Field(
        True, description='Keep foreign key checks enabled during changes'
    )
    integer_type: str = Field(
        'INTEGER', description='Native spelling of integer/serial columns'
    )

    @field_validator('type', mode='before')
    @classmethod
    def validate_type(cls, v: Any) -> str:
        key = str(v).strip().lower()
        if key not in _TYPE_ALIASES:
            raise ValueError(f'Unsupported database type: {v}')
        return _TYPE_ALIASES[key]

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('Database name is required')
        return v

    @field_validator('port', mode='before')
    @classmethod
    def validate_port(cls, v: Any) -> Optional[int]:
        if v in (None, ''):
            return None
        port = int(v)
        if not 0 < port < 65536:
            raise ValueError(f'Port out of range: {port}')
        return port

    @property
    def effective_port(self) -> Optional[int]:
        return self.port or DEFAULT_PORTS[self.type]

    def to_url(self) -> URL:
        """Строит SQLAlchemy URL для выбранного диалекта."""
        if self.type == 'sqlite':
            return URL.create('sqlite', database=self.name)

        query = {'charset': 'utf8'} if self.type == 'mysql' else {}
        return URL.create(
            DRIVERS[self.type],
            username=self.user or None,
            password=self.password or None,
            host=self.host,
            port=self.effective_port,
            database=self.name,
            query=query,
        )

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        **overrides: Any,
    ) -> 'DatabaseConfig':
        """Создаёт конфигурацию из словаря установщика.

        Принимает ключи ``host``, ``port``, ``user``, ``pass``, ``name`` и
        необязательный ``type``.

        Raises:
            ConfigurationError: Значения не прошли валидацию.
        """
        values = {k: v for k, v in data.items() if v is not None}
        values.update(overrides)
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigurationError(
                f'Invalid database configuration: {exc}', cause=exc
            ) from exc

    @classmethod
    def from_url(
        cls,
        url: Union[str, URL],
        **overrides: Any,
    ) -> 'DatabaseConfig':
        """Создаёт конфигурацию из SQLAlchemy URL (``mysql://u:p@h/db``)."""
        try:
            parsed = make_url(url)
        except ArgumentError as exc:
            raise ConfigurationError(
                f'Invalid database URL: {exc}', cause=exc
            ) from exc

        values: dict[str, Any] = {
            'type': parsed.get_backend_name(),
            'host': parsed.host or 'localhost',
            'port': parsed.port,
            'name': parsed.database or '',
            'user': parsed.username or '',
            'pass': parsed.password or '',
        }
        return cls.from_mapping(values, **overrides)


class CorrectorSettings(BaseSettings):
    """Сохранённая конфигурация: ``FS_DB_*`` и ``FS_FOREIGN_KEYS``."""

    model_config = SettingsConfigDict(
        env_prefix='FS_',
        case_sensitive=False,
        extra='ignore',
    )

    db_type: str = 'mysql'
    db_host: str = 'localhost'
    db_port: Optional[str] = None
    db_name: str = ''
    db_user: str = ''
    db_pass: str = ''
    db_integer: str = 'INTEGER'
    foreign_keys: bool = True

    def to_database_config(self, **overrides: Any) -> DatabaseConfig:
        """Переводит сохранённые значения в ``DatabaseConfig``."""
        values = {
            'type': self.db_type,
            'host': self.db_host,
            'port': self.db_port,
            'name': self.db_name,
            'user': self.db_user,
            'pass': self.db_pass,
            'integer_type': self.db_integer,
            'foreign_keys': self.foreign_keys,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return DatabaseConfig.from_mapping(values)


def load_settings(env_file: Optional[str] = None) -> CorrectorSettings:
    """Читает ``CorrectorSettings`` из окружения и, если задан, env-файла."""
    try:
        return CorrectorSettings(_env_file=env_file)
    except ValidationError as exc:
        raise ConfigurationError(
            f'Invalid settings: {exc}', cause=exc
        ) from exc
