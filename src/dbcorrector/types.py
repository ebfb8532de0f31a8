"""Нормализация и сравнение типов колонок.

Интроспекция возвращает типы в написании конкретной СУБД (``int(11)``,
``character varying(50)``, ``tinyint(1)``), а желаемая схема объявляет
абстрактные типы. Чтобы реконсиляция не порождала ALTER на каждом проходе,
сравнивается эквивалентность, а не равенство строк.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from .errors import UnresolvableTypeError

_TYPE_RE = re.compile(
    r'^(?P<name>[a-z][a-z0-9_]*(?: [a-z][a-z0-9_]*)*)'
    r'\s*(?:\((?P<args>[^()]*)\))?'
    r'(?:\s+(?P<suffix>[a-z][a-z0-9_ ]*))?$'
)

_FAMILIES = {
    'int': 'integer',
    'integer': 'integer',
    'int4': 'integer',
    'serial': 'integer',
    'serial4': 'integer',
    'bigint': 'bigint',
    'int8': 'bigint',
    'bigserial': 'bigint',
    'serial8': 'bigint',
    'smallint': 'smallint',
    'int2': 'smallint',
    'smallserial': 'smallint',
    'double': 'double',
    'double precision': 'double',
    'float8': 'double',
    'real': 'real',
    'float4': 'real',
    'varchar': 'varchar',
    'character varying': 'varchar',
    'nvarchar': 'varchar',
    'char': 'char',
    'character': 'char',
    'bpchar': 'char',
    'nchar': 'char',
    'numeric': 'numeric',
    'decimal': 'numeric',
    'bool': 'boolean',
    'boolean': 'boolean',
    'timestamp': 'timestamp',
    'timestamp without time zone': 'timestamp',
    'time': 'time',
    'time without time zone': 'time',
    'text': 'text',
}

# семейства, где параметр в скобках только ширина отображения/точность
_ARGS_IGNORED = frozenset(
    {'integer', 'bigint', 'smallint', 'double', 'real',
     'boolean', 'timestamp', 'time', 'text'}
)
_CHARACTER = frozenset({'varchar', 'char'})

_CAST_RE = re.compile(r'::[a-z_][a-z0-9_ ]*(?:\([0-9, ]*\))?(?:\[\])?', re.I)
_DATE_LITERAL_RE = re.compile(r'^\d{4}-\d{2}-\d{2}( \d{2}:\d{2}(:\d{2})?)?$')
_TIME_LITERAL_RE = re.compile(r'^\d{2}:\d{2}(:\d{2})?$')
_TEMPORAL = frozenset({
    'now()', 'current_timestamp', 'current_timestamp()',
    'current_date', 'current_date()', 'current_time', 'localtimestamp',
})


@dataclass(frozen=True)
class TypeToken:
    """Разобранная строка типа ``name(args) suffix``."""

    name: str
    args: tuple[str, ...] = ()
    suffix: str = ''

    @property
    def family(self) -> str:
        return _FAMILIES.get(self.name, self.name)

    @property
    def length(self) -> Optional[int]:
        if len(self.args) == 1 and self.args[0].isdigit():
            return int(self.args[0])
        return None


def canonical(type_string: str) -> str:
    """Нижний регистр и схлопнутые пробелы."""
    return ' '.join(str(type_string).lower().split())


def parse_type(type_string: object) -> TypeToken:
    """Разбирает строку типа на имя, параметры и суффикс.

    Raises:
        UnresolvableTypeError: Строка не похожа на тип SQL.
    """
    if not isinstance(type_string, str):
        raise UnresolvableTypeError(type_string)
    text = canonical(type_string)
    m = _TYPE_RE.match(text)
    if not m:
        raise UnresolvableTypeError(type_string)
    args: tuple[str, ...] = ()
    if m['args'] is not None:
        args = tuple(a.strip() for a in m['args'].split(','))
    return TypeToken(m['name'], args, m['suffix'] or '')


def _equivalent_to(
    native: TypeToken,
    native_text: str,
    declared_text: str,
    boolean_aliases: Iterable[str],
) -> bool:
    # 1. точное совпадение
    if native_text == declared_text:
        return True

    declared = parse_type(declared_text)

    # 2. булевы синонимы диалекта
    if declared.family == 'boolean' and native_text in boolean_aliases:
        return True

    # 3. одинаковая длина/точность у типов одного семейства
    if native.args and native.args == declared.args:
        if native.family == declared.family:
            return True
        if {native.family, declared.family} <= _CHARACTER:
            return True

    # 4. числовые и прочие семейства, где параметр несущественен
    if native.family == declared.family and native.family in _ARGS_IGNORED:
        return True

    # 5. строковые: varchar(N)/char(N) удовлетворяют character varying(M)
    # при любой длине; родное написание character varying сюда не попадает
    if declared.family == 'varchar' and native.name in ('varchar', 'char'):
        return True

    return False


def types_equivalent(
    native: str,
    declared: str,
    *,
    rendered: Optional[str] = None,
    boolean_aliases: Iterable[str] = (),
) -> bool:
    """Решает, удовлетворяет ли живой тип объявленному.

    Правила применяются по порядку, первое совпадение выигрывает. Живой тип
    сравнивается и с объявленным, и с его представлением в диалекте
    (``rendered``), поэтому тип, созданный самим dbcorrector, всегда
    эквивалентен своему объявлению.

    Args:
        native: Тип, который вернула интроспекция.
        declared: Объявленный абстрактный тип.
        rendered: Объявленный тип в написании диалекта.
        boolean_aliases: Написания boolean в диалекте (``tinyint(1)``).

    Returns:
        bool: True, если ALTER не нужен.

    Raises:
        UnresolvableTypeError: Один из типов невозможно разобрать.
    """
    native_token = parse_type(native)
    native_text = canonical(native)
    aliases = {canonical(a) for a in boolean_aliases}

    candidates = [canonical(declared)]
    if rendered is not None and canonical(rendered) not in candidates:
        candidates.append(canonical(rendered))

    return any(
        _equivalent_to(native_token, native_text, text, aliases)
        for text in candidates
    )


def normalize_default(value: object) -> Optional[str]:
    """Приводит DEFAULT к сравнимому виду.

    Снимает приведения типов (``'a'::character varying``), внешние скобки и
    кавычки; ``NULL`` превращается в None, булевы значения в ``1``/``0``.
    """
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode()
    text = _CAST_RE.sub('', str(value).strip()).strip()

    while len(text) >= 2 and text[0] == '(' and text[-1] == ')':
        text = text[1:-1].strip()

    quoted = len(text) >= 2 and text[0] == text[-1] == "'"
    if quoted:
        text = text[1:-1].replace("''", "'")
        return text

    lowered = text.lower()
    if lowered in ('', 'null'):
        return None
    if lowered in ('true', 't'):
        return '1'
    if lowered in ('false', 'f'):
        return '0'
    if lowered in _TEMPORAL:
        return lowered
    return text


def _is_temporal(value: str) -> bool:
    return (
        value.lower() in _TEMPORAL
        or bool(_DATE_LITERAL_RE.match(value))
        or bool(_TIME_LITERAL_RE.match(value))
    )


def defaults_equivalent(live: object, declared: object) -> bool:
    """Решает, совпадает ли DEFAULT живой колонки с объявленным."""
    for value in (live, declared):
        if isinstance(value, str) and 'nextval(' in value.lower():
            return True

    a = normalize_default(live)
    b = normalize_default(declared)
    if a == b:
        return True
    if a is None or b is None:
        return False
    if b.lower() in _TEMPORAL and _is_temporal(a):
        return True
    if b.lower() in ('true', 'false') or a.lower() in ('true', 'false'):
        a, b = (normalize_default(v.lower()) for v in (a, b))
        return a == b
    try:
        return Decimal(a) == Decimal(b)
    except InvalidOperation:
        return False
