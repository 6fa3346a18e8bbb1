"""
scope.py

Work-scope model for the Work Allocation & Scoring Engine.

A unit of billable work is a (division, part, work type) triple.  Projects
declare three flat catalogs (the full axis sets); assignments carry a scope
tree that selects a subset of the catalog's cartesian product:

    [
        ScopeItem(division="D1", parts=(
            ScopePart(name="P1", work_types=("WT1", "WT2")),
        )),
    ]

Everything in this module is pure: trees are immutable, set operations go
through the flattened WorkUnit representation and are rebuilt into a
canonical (sorted, de-duplicated) tree.  Identifiers are interned so that
the large unit sets built by the completion calculator share string storage.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, NamedTuple, Sequence, Set, Tuple

logger = logging.getLogger(__name__)


class ScopeError(ValueError):
    """Raised when a scope tree is malformed or escapes its allowed catalog."""


class OverlapGranularity(str, Enum):
    """How precisely two scopes must coincide to count as overlapping."""
    DIVISION_PART = "division_part"   # (division, part) pairs, work type ignored
    UNIT = "unit"                     # full (division, part, work type) triple


class MalformedScopePolicy(str, Enum):
    """What overlap detection does with input it cannot parse."""
    FAIL_OPEN = "fail_open"       # treat as "no overlap"
    FAIL_CLOSED = "fail_closed"   # raise ScopeError


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------


class WorkUnit(NamedTuple):
    division: str
    part: str
    work_type: str


@dataclass(frozen=True)
class ScopePart:
    name: str
    work_types: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScopeItem:
    division: str
    parts: Tuple[ScopePart, ...] = field(default_factory=tuple)


Scope = List[ScopeItem]


def _intern(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ScopeError(f"{what} must be a non-empty string, got {value!r}.")
    return sys.intern(value.strip())


# ---------------------------------------------------------------------------
# Construction & (de)serialisation
# ---------------------------------------------------------------------------


def parse_scope(raw: Any) -> Scope:
    """
    Build a typed scope tree from its JSON shape
    (``[{"division": .., "parts": [{"name": .., "work_types": [..]}]}]``).

    ``workTypes`` is accepted as an alias of ``work_types``.  Already typed
    ScopeItem instances pass through unchanged.  Raises ScopeError on any
    structural problem; the result is canonicalised.
    """
    if raw is None:
        raise ScopeError("Scope must be a list of scope items, got None.")
    if not isinstance(raw, (list, tuple)):
        raise ScopeError(f"Scope must be a list of scope items, got {type(raw).__name__}.")

    units: Set[WorkUnit] = set()
    for item in raw:
        if isinstance(item, ScopeItem):
            units |= units_of([item])
            continue
        if not isinstance(item, dict):
            raise ScopeError(f"Scope item must be an object, got {type(item).__name__}.")
        division = _intern(item.get("division"), "division")
        parts = item.get("parts")
        if not isinstance(parts, (list, tuple)):
            raise ScopeError(f"Scope item '{division}' must carry a list of parts.")
        for part in parts:
            if isinstance(part, ScopePart):
                name, work_types = part.name, part.work_types
            elif isinstance(part, dict):
                name = part.get("name")
                work_types = part.get("work_types", part.get("workTypes"))
            else:
                raise ScopeError(f"Part under '{division}' must be an object.")
            name = _intern(name, "part name")
            if not isinstance(work_types, (list, tuple)):
                raise ScopeError(f"Part '{division}/{name}' must carry a list of work types.")
            for wt in work_types:
                units.add(WorkUnit(division, name, _intern(wt, "work type")))
    return from_units(units)


def scope_to_dicts(scope: Sequence[ScopeItem]) -> List[Dict[str, Any]]:
    return [
        {
            "division": item.division,
            "parts": [
                {"name": p.name, "work_types": list(p.work_types)} for p in item.parts
            ],
        }
        for item in scope
    ]


def build_scope(
    divisions: Iterable[str],
    part_nos: Iterable[str],
    work_types: Iterable[str],
) -> Scope:
    """Full cartesian scope over three flat lists."""
    divisions, part_nos, work_types = list(divisions), list(part_nos), list(work_types)
    return from_units(
        WorkUnit(_intern(d, "division"), _intern(p, "part name"), _intern(w, "work type"))
        for d in divisions
        for p in part_nos
        for w in work_types
    )


def from_units(units: Iterable[WorkUnit]) -> Scope:
    """Rebuild the canonical tree (sorted, no empty branches) from a unit set."""
    tree: Dict[str, Dict[str, Set[str]]] = {}
    for u in units:
        tree.setdefault(u.division, {}).setdefault(u.part, set()).add(u.work_type)
    return [
        ScopeItem(
            division=division,
            parts=tuple(
                ScopePart(name=part, work_types=tuple(sorted(wts)))
                for part, wts in sorted(parts.items())
            ),
        )
        for division, parts in sorted(tree.items())
    ]


# ---------------------------------------------------------------------------
# Set operations
# ---------------------------------------------------------------------------


def units_of(scope: Sequence[ScopeItem]) -> Set[WorkUnit]:
    return {
        WorkUnit(item.division, part.name, wt)
        for item in scope
        for part in item.parts
        for wt in part.work_types
    }


def union(a: Sequence[ScopeItem], b: Sequence[ScopeItem]) -> Scope:
    return from_units(units_of(a) | units_of(b))


def intersection(a: Sequence[ScopeItem], b: Sequence[ScopeItem]) -> Scope:
    return from_units(units_of(a) & units_of(b))


def catalogs_of(scope: Sequence[ScopeItem]) -> Tuple[List[str], List[str], List[str]]:
    """Return the sorted (divisions, part_nos, work_types) axis sets a scope touches."""
    units = units_of(scope)
    return (
        sorted({u.division for u in units}),
        sorted({u.part for u in units}),
        sorted({u.work_type for u in units}),
    )


def cartesian_size(project: Any) -> int:
    """Total WorkUnit count of anything exposing divisions / part_nos / work_types."""
    return len(project.divisions) * len(project.part_nos) * len(project.work_types)


def project_units(project: Any) -> Set[WorkUnit]:
    return units_of(build_scope(project.divisions, project.part_nos, project.work_types))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_within_catalogs(scope: Sequence[ScopeItem], project: Any) -> None:
    """Raise ScopeError unless every axis value in the tree is in the project's catalogs."""
    divisions, parts, work_types = set(project.divisions), set(project.part_nos), set(project.work_types)
    for u in sorted(units_of(scope)):
        if u.division not in divisions:
            raise ScopeError(f"Division '{u.division}' is not in the project catalog.")
        if u.part not in parts:
            raise ScopeError(f"Part '{u.part}' is not in the project catalog.")
        if u.work_type not in work_types:
            raise ScopeError(f"Work type '{u.work_type}' is not in the project catalog.")


def validate_subset(scope: Sequence[ScopeItem], parent: Sequence[ScopeItem]) -> None:
    """Raise ScopeError unless ``scope`` only selects units already in ``parent``."""
    escaped = units_of(scope) - units_of(parent)
    if escaped:
        first = sorted(escaped)[0]
        raise ScopeError(
            f"{len(escaped)} work unit(s) fall outside the parent scope, "
            f"e.g. {first.division}/{first.part}/{first.work_type}."
        )


def require_non_empty(scope: Sequence[ScopeItem]) -> None:
    if not units_of(scope):
        raise ScopeError("Scope must select at least one work unit.")


# ---------------------------------------------------------------------------
# Overlap detection (rework culprit matching)
# ---------------------------------------------------------------------------


def check_scope_overlap(
    candidate: Any,
    rework: Any,
    granularity: OverlapGranularity = OverlapGranularity.DIVISION_PART,
    on_malformed: MalformedScopePolicy = MalformedScopePolicy.FAIL_CLOSED,
) -> bool:
    """
    True iff ``rework`` touches something ``candidate`` also covers.

    With DIVISION_PART granularity any shared (division, part) pair counts,
    whatever the work types; parts may omit ``work_types`` entirely.  With
    UNIT granularity the full triple must match.
    """
    try:
        a = _overlap_keys(candidate, granularity)
        b = _overlap_keys(rework, granularity)
    except ScopeError as exc:
        if on_malformed is MalformedScopePolicy.FAIL_OPEN:
            logger.warning("Malformed scope ignored during overlap check: %s", exc)
            return False
        raise
    return not a.isdisjoint(b)


def _overlap_keys(raw: Any, granularity: OverlapGranularity) -> Set[Tuple[str, ...]]:
    if granularity is OverlapGranularity.UNIT:
        return {tuple(u) for u in units_of(parse_scope(raw))}

    if not isinstance(raw, (list, tuple)):
        raise ScopeError(f"Scope must be a list of scope items, got {type(raw).__name__}.")
    keys: Set[Tuple[str, ...]] = set()
    for item in raw:
        if isinstance(item, ScopeItem):
            keys |= {(item.division, p.name) for p in item.parts}
            continue
        if not isinstance(item, dict) or not isinstance(item.get("parts"), (list, tuple)):
            raise ScopeError("Scope item must be an object with a list of parts.")
        division = _intern(item.get("division"), "division")
        for part in item["parts"]:
            name = part.name if isinstance(part, ScopePart) else (
                part.get("name") if isinstance(part, dict) else None
            )
            keys.add((division, _intern(name, "part name")))
    return keys
