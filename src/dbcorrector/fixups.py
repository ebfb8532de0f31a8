"""Правила переписывания SQL под диалект.

Желаемая схема объявляется в терминах PostgreSQL (``::character varying``,
``without time zone``, ``now()``). Диалекты, которые такой синтаксис не
принимают, прогоняют каждый сгенерированный DDL через упорядоченный набор
явных правил. Для PostgreSQL набор пуст.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Union

Replacement = Union[str, Callable[[], str]]


@dataclass(frozen=True)
class RewriteRule:
    """Одно правило: регулярное выражение и замена.

    Замена может быть функцией, если значение вычисляется в момент
    применения (например, сегодняшняя дата).
    """

    name: str
    pattern: re.Pattern
    replacement: Replacement

    def apply(self, sql: str) -> str:
        value = self.replacement
        if callable(value):
            value = value()
        return self.pattern.sub(lambda _m: value, sql)


def _rule(name: str, pattern: str, replacement: Replacement) -> RewriteRule:
    return RewriteRule(name, re.compile(pattern, re.I), replacement)


def _today() -> str:
    return date.today().isoformat()


MYSQL_RULES: tuple[RewriteRule, ...] = (
    _rule('strip-varchar-cast', r'::character varying', ''),
    _rule('strip-without-time-zone', r' without time zone', ''),
    _rule('now-literal', r'\bnow\(\)', "'00:00'"),
    _rule(
        'current-timestamp-literal',
        r'\bCURRENT_TIMESTAMP\b(?:\(\))?',
        lambda: f"'{_today()} 00:00:00'",
    ),
    _rule(
        'current-date-literal',
        r'\bCURRENT_DATE\b(?:\(\))?',
        lambda: f"'{_today()}'",
    ),
)

SQLITE_RULES: tuple[RewriteRule, ...] = (
    _rule(
        'strip-casts',
        r'::(?:character varying|timestamp without time zone|'
        r'double precision|timestamp|integer|numeric|boolean|date|text)\b',
        '',
    ),
    _rule('strip-without-time-zone', r' without time zone', ''),
    _rule('now-function', r'\bnow\(\)', 'CURRENT_TIMESTAMP'),
)

POSTGRESQL_RULES: tuple[RewriteRule, ...] = ()


def apply_rules(sql: str, rules: Iterable[RewriteRule]) -> str:
    """Применяет правила по порядку."""
    for rule in rules:
        sql = rule.apply(sql)
    return sql
