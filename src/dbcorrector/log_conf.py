"""Настройка логирования для CLI.

Импортируется ради побочного эффекта: конфигурирует корневой логгер.
"""

from __future__ import annotations

import logging.config

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {'format': LOG_FORMAT},
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
            'stream': 'ext://sys.stderr',
        },
    },
    'root': {
        'level': 'INFO',
        'handlers': ['console'],
    },
    'loggers': {
        'sqlalchemy': {'level': 'WARNING'},
    },
}

logging.config.dictConfig(LOGGING)
