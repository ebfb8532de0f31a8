"""Сравнение желаемых и живых ограничений таблицы."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Union

from .schema import ConstraintDefinition, ConstraintKind, LiveConstraint

Action = Literal['drop', 'add']


@dataclass(frozen=True)
class ConstraintChange:
    """Одно изменение ограничения.

    Attributes:
        action: ``drop`` или ``add``.
        constraint: Для ``drop`` это живое ограничение (с именем, которое
            знает СУБД), для ``add`` желаемое.
    """

    action: Action
    constraint: Union[ConstraintDefinition, LiveConstraint]


def _find_live(
    desired: ConstraintDefinition,
    live: list[LiveConstraint],
) -> Optional[LiveConstraint]:
    # PRIMARY KEY СУБД именует сама (PRIMARY в MySQL, без имени в SQLite)
    if desired.kind is ConstraintKind.PRIMARY_KEY:
        for c in live:
            if c.kind is ConstraintKind.PRIMARY_KEY:
                return c
        return None

    name = desired.name.lower()
    for c in live:
        if c.name.lower() == name:
            return c
    # безымянные ограничения SQLite (объявленные в строке колонки)
    # совпадают по форме
    shape = desired.shape()
    for c in live:
        if not c.name and c.shape() == shape:
            return c
    return None


def diff_constraints(
    desired: Iterable[ConstraintDefinition],
    live: Iterable[LiveConstraint],
) -> list[ConstraintChange]:
    """Строит список изменений ограничений.

    - отсутствующее ограничение добавляется;
    - ограничение с другой формой (колонки, целевая таблица, правила)
      удаляется и создаётся заново;
    - живые ограничения вне желаемого набора не трогаются.

    Все удаления идут раньше всех добавлений, поэтому повторно созданное
    ограничение с тем же именем не конфликтует со старым.

    Args:
        desired: Ограничения из желаемой схемы.
        live: Ограничения, прочитанные из БД.

    Returns:
        list[ConstraintChange]: Изменения в порядке применения.
    """
    live_list = list(live)
    drops: list[ConstraintChange] = []
    adds: list[ConstraintChange] = []

    for constraint in desired:
        current = _find_live(constraint, live_list)
        if current is None:
            adds.append(ConstraintChange('add', constraint))
        elif current.shape() != constraint.shape():
            drops.append(ConstraintChange('drop', current))
            adds.append(ConstraintChange('add', constraint))

    return drops + adds
