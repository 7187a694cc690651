"""Backend-neutral filter predicates.

A filter is a sequence of predicates that must all hold. Backends translate
the predicates into their own query language; :func:`matches` evaluates them
directly against a document for stores without one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Sequence, Tuple, Union


@dataclass(frozen=True, slots=True)
class Eq:
    """``field == value``; an array field matches when it contains ``value``."""

    field: str
    value: Any


@dataclass(frozen=True, slots=True)
class Range:
    """Inclusive/exclusive bounds on a numeric field. Unset bounds are ignored."""

    field: str
    gte: Any = None
    lte: Any = None
    gt: Any = None
    lt: Any = None


@dataclass(frozen=True, slots=True)
class In:
    """``field`` equals one of ``values``."""

    field: str
    values: Tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", tuple(self.values))


Predicate = Union[Eq, Range, In]
Filter = Tuple[Predicate, ...]

_RANGE_OPERATORS = (("gte", "$gte"), ("lte", "$lte"), ("gt", "$gt"), ("lt", "$lt"))


def to_mongo(predicates: Sequence[Predicate]) -> Dict[str, Any]:
    """Translate predicates into a Mongo query document.

    Operator predicates (``Range``, ``In``) on the same field are merged into
    one operator document. An ``Eq`` cannot share its field with any other
    predicate, and the same operator may appear only once per field.

    Raises:
        ValueError: If two predicates cannot be combined on one field.
        TypeError: For objects that are not predicates.
    """

    query: Dict[str, Any] = {}
    for predicate in predicates:
        if isinstance(predicate, Eq):
            if predicate.field in query:
                raise ValueError(f"Conflicting predicates on field {predicate.field!r}")
            query[predicate.field] = predicate.value
            continue
        if isinstance(predicate, Range):
            operators = {
                operator: getattr(predicate, attr)
                for attr, operator in _RANGE_OPERATORS
                if getattr(predicate, attr) is not None
            }
        elif isinstance(predicate, In):
            operators = {"$in": list(predicate.values)}
        else:
            raise TypeError(f"Unsupported predicate {predicate!r}")
        _merge_operators(query, predicate.field, operators)
    return query


def _merge_operators(query: Dict[str, Any], field: str, operators: Dict[str, Any]) -> None:
    if field not in query:
        query[field] = operators
        return
    existing = query[field]
    if not isinstance(existing, dict) or not all(key.startswith("$") for key in existing):
        raise ValueError(f"Conflicting predicates on field {field!r}")
    repeated = existing.keys() & operators.keys()
    if repeated:
        raise ValueError(f"Operator(s) {sorted(repeated)} repeated on field {field!r}")
    existing.update(operators)


def matches(document: Mapping[str, Any], predicates: Sequence[Predicate]) -> bool:
    """Return True when ``document`` satisfies every predicate."""

    for predicate in predicates:
        if not _match_one(document, predicate):
            return False
    return True


def _match_one(document: Mapping[str, Any], predicate: Predicate) -> bool:
    if predicate.field not in document:
        return False
    value = document[predicate.field]
    if isinstance(predicate, Eq):
        if isinstance(value, list):
            return predicate.value in value
        return value == predicate.value
    if isinstance(predicate, Range):
        if value is None:
            return False
        if predicate.gte is not None and not value >= predicate.gte:
            return False
        if predicate.lte is not None and not value <= predicate.lte:
            return False
        if predicate.gt is not None and not value > predicate.gt:
            return False
        if predicate.lt is not None and not value < predicate.lt:
            return False
        return True
    if isinstance(predicate, In):
        if isinstance(value, list):
            return any(item in predicate.values for item in value)
        return value in predicate.values
    raise TypeError(f"Unsupported predicate {predicate!r}")


__all__ = ["Eq", "Range", "In", "Predicate", "Filter", "to_mongo", "matches"]
