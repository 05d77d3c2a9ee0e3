"""
Defect checklist diffing.
Compares the start and end checklists of a trip by defect id.
"""
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from ..schemas.trips import DefectSeverity

DefectLike = Union[BaseModel, Mapping[str, Any]]


def _field(defect: DefectLike, name: str) -> Any:
    if isinstance(defect, Mapping):
        value = defect.get(name)
    else:
        value = getattr(defect, name, None)
    # Enum members compare by value
    return getattr(value, "value", value)


def new_defects(
    start: Optional[Iterable[DefectLike]],
    end: Optional[Iterable[DefectLike]],
) -> List[DefectLike]:
    """
    Defects present at the end of a trip but not at its start.

    Matching is by id only, so the result does not depend on checklist order.
    A missing checklist counts as empty.
    """
    start_ids = {_field(d, "id") for d in (start or [])}
    return [d for d in (end or []) if _field(d, "id") not in start_ids]


def severe_new(
    start: Optional[Iterable[DefectLike]],
    end: Optional[Iterable[DefectLike]],
) -> List[DefectLike]:
    """New defects with severe severity"""
    return [d for d in new_defects(start, end) if _field(d, "severity") == DefectSeverity.severe.value]


def describe(defects: Iterable[DefectLike]) -> str:
    return "\n".join(
        f"{_field(d, 'type')} - {_field(d, 'location')}: {_field(d, 'description') or ''}"
        for d in defects
    )
