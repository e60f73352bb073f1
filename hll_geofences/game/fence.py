#!/usr/bin/env python3
"""
Fence definitions and map applicability
A fence is a permitted area for one side, optionally limited to matching sessions
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import Grid, Session, Side


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class FenceCondition:
    """Session predicate deciding whether a fence is active"""
    equals: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    less_than: Dict[str, float] = field(default_factory=dict)
    greater_than: Dict[str, float] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash((
            tuple(sorted(self.equals.items())),
            tuple(sorted(self.less_than.items())),
            tuple(sorted(self.greater_than.items())),
        ))

    def matches(self, session: Session) -> bool:
        for key, accepted in self.equals.items():
            actual = session.value(key)
            if actual is None:
                return False
            if str(actual).lower() not in {str(a).lower() for a in accepted}:
                return False

        for key, bound in self.less_than.items():
            actual = _as_number(session.value(key))
            if actual is None or not actual < bound:
                return False

        for key, bound in self.greater_than.items():
            actual = _as_number(session.value(key))
            if actual is None or not actual > bound:
                return False

        return True


@dataclass(frozen=True)
class Fence:
    """
    Permitted region for one side

    Empty ``columns``/``rows`` mean any column/row; empty ``numpads`` means
    the whole cell.
    """
    side: Side
    columns: Tuple[str, ...] = ()
    rows: Tuple[int, ...] = ()
    numpads: Tuple[int, ...] = ()
    condition: Optional[FenceCondition] = None
    name: str = ""

    def includes(self, grid: Grid) -> bool:
        if self.columns and grid.column not in self.columns:
            return False
        if self.rows and grid.row not in self.rows:
            return False
        if self.numpads and grid.numpad not in self.numpads:
            return False
        return True

    def matches(self, session: Optional[Session]) -> bool:
        if session is None:
            return False
        if self.condition is None:
            return True
        return self.condition.matches(session)

    def describe(self) -> str:
        if self.name:
            return self.name
        columns = "".join(self.columns) or "*"
        rows = ",".join(str(r) for r in self.rows) or "*"
        numpads = ",".join(str(n) for n in self.numpads)
        return f"{columns}[{rows}]" + (f"-{numpads}" if numpads else "")


def applicable_fences(fences: Iterable[Fence], session: Optional[Session]) -> Tuple[Fence, ...]:
    """Filter configured fences down to those active for the session"""
    return tuple(fence for fence in fences if fence.matches(session))


def fence_from_dict(side: Side, data: Dict[str, Any]) -> Fence:
    """
    Build a fence from its YAML mapping

    Scalars are accepted wherever a list is expected, e.g. ``x: A``.
    """
    def as_list(value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]

    condition = None
    condition_data = data.get("condition")
    if condition_data:
        condition = FenceCondition(
            equals={
                key: tuple(str(v) for v in as_list(values))
                for key, values in (condition_data.get("equals") or {}).items()
            },
            less_than={
                key: float(value)
                for key, value in (condition_data.get("less_than") or {}).items()
            },
            greater_than={
                key: float(value)
                for key, value in (condition_data.get("greater_than") or {}).items()
            },
        )

    return Fence(
        side=side,
        columns=tuple(str(c).upper() for c in as_list(data.get("x"))),
        rows=tuple(int(r) for r in as_list(data.get("y"))),
        numpads=tuple(int(n) for n in as_list(data.get("numpad"))),
        condition=condition,
        name=str(data.get("name", "")),
    )
