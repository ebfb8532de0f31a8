"""Чтение желаемой схемы из XML-файлов таблиц.

Формат файла ``<имя таблицы>.xml``::

    <tabla>
        <columna>
            <nombre>codrol</nombre>
            <tipo>character varying(20)</tipo>
            <nulo>NO</nulo>
            <defecto>...</defecto>
        </columna>
        <restriccion>
            <nombre>fs_roles_pkey</nombre>
            <consulta>PRIMARY KEY (codrol)</consulta>
        </restriccion>
    </tabla>
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Union

from .errors import SchemaDefinitionError
from .schema import ColumnDefinition, ConstraintDefinition, TableSchema

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _text(element: ET.Element, tag: str) -> Optional[str]:
    child = element.find(tag)
    if child is None or child.text is None:
        return None
    value = child.text.strip()
    return value or None


def _required(element: ET.Element, tag: str, path: Path) -> str:
    value = _text(element, tag)
    if value is None:
        raise SchemaDefinitionError(
            f'Missing <{tag}> in {path.name}', {'file': str(path)}
        )
    return value


def parse_table(name: str, root: ET.Element, path: Path) -> TableSchema:
    """Строит ``TableSchema`` из разобранного элемента ``<tabla>``."""
    columns = [
        ColumnDefinition(
            name=_required(col, 'nombre', path),
            type=_required(col, 'tipo', path),
            nullable=(_text(col, 'nulo') or 'YES').upper() != 'NO',
            default=_text(col, 'defecto'),
        )
        for col in root.iter('columna')
    ]

    constraints = []
    for item in root.iter('restriccion'):
        cname = _required(item, 'nombre', path)
        clause = _required(item, 'consulta', path)
        if clause.upper().startswith('CHECK'):
            logger.warning(
                'Skipping CHECK constraint %s of table %s', cname, name
            )
            continue
        constraints.append(ConstraintDefinition.from_sql(cname, clause))

    return TableSchema(name, tuple(columns), tuple(constraints))


def load_table(path: PathLike) -> TableSchema:
    """Читает одну таблицу. Имя таблицы берётся из имени файла.

    Raises:
        SchemaDefinitionError: Файл не читается, XML некорректен или
            описание таблицы неполно.
    """
    path = Path(path)
    try:
        root = ET.parse(path).getroot()
    except (OSError, ET.ParseError) as exc:
        raise SchemaDefinitionError(
            f'Cannot read table definition {path.name}: {exc}',
            {'file': str(path)},
            exc,
        ) from exc

    if root.tag != 'tabla':
        raise SchemaDefinitionError(
            f'Unexpected root element <{root.tag}> in {path.name}',
            {'file': str(path)},
        )
    return parse_table(path.stem, root, path)


def load_tables(directory: PathLike) -> list[TableSchema]:
    """Читает все ``*.xml`` каталога в порядке имён файлов."""
    directory = Path(directory)
    if not directory.is_dir():
        raise SchemaDefinitionError(
            f'Table definitions directory not found: {directory}',
            {'directory': str(directory)},
        )
    tables = [load_table(p) for p in sorted(directory.glob('*.xml'))]
    logger.info('Loaded %d table definitions from %s', len(tables), directory)
    return tables
