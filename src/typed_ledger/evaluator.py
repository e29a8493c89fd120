"""Predicate evaluation and ordering over instance mappings.

Instances are plain mappings keyed by field name. Relationship fields hold a
bare identifier, a ``resource:`` URI, a :class:`~typed_ledger.values.Relationship`
or the already-resolved target instance. A two-segment path through a
relationship that is not already resolved is read through ``resolver``.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Callable, Collection, Iterable, Mapping

from typed_ledger.binder import (
    BoundCombinator,
    BoundComparison,
    BoundFieldPath,
    BoundOrdering,
    BoundPredicate,
    ValueCategory,
)
from typed_ledger.declarations import ValueKind
from typed_ledger.errors import MissingParameterError
from typed_ledger.parsing.query_parser import AND, CONTAINS, DESC, ParameterRef
from typed_ledger.values import (
    Relationship,
    enum_literal,
    is_number,
    relationship_identity,
    relationship_type,
    to_datetime,
)

# (type fqn, identifier) -> resolved instance, or None when unknown
Resolver = Callable[[str, str], "Mapping[str, Any] | None"]

_MISSING = object()


def read_path(path: BoundFieldPath, instance: Any, resolver: Resolver | None = None) -> Any:
    """Read a bound field path; returns ``_MISSING`` if any step is absent."""
    if not isinstance(instance, Mapping):
        return _MISSING
    value = instance.get(path.fields[0].name)
    if value is None:
        return _MISSING
    hop = path.hop
    if hop is None:
        return value

    if hop.value_kind is ValueKind.RELATIONSHIP and not isinstance(value, Mapping):
        identity = relationship_identity(value)
        if identity is None or resolver is None:
            return _MISSING
        type_name = value.type_name if isinstance(value, Relationship) else hop.type_name
        value = resolver(type_name, identity)
    if not isinstance(value, Mapping):
        return _MISSING
    leaf = value.get(path.leaf.name)
    return _MISSING if leaf is None else leaf


def normalize(
    category: ValueCategory,
    value: Any,
    identity_field: str | None = None,
    target_types: Collection[str] | None = None,
) -> Any:
    """Convert a stored value to its comparable form.

    A relationship held as a URI or :class:`~typed_ledger.values.Relationship`
    must name one of ``target_types`` when they are given.

    Raises:
        TypeError: If the value does not belong to the category.
        ValueError: If a DateTime string is malformed.
    """
    if category is ValueCategory.NUMBER:
        if is_number(value):
            return value
    elif category is ValueCategory.STRING:
        if isinstance(value, str):
            return value
    elif category is ValueCategory.BOOLEAN:
        if isinstance(value, bool):
            return value
    elif category is ValueCategory.DATETIME:
        return to_datetime(value)
    elif category is ValueCategory.ENUM:
        literal = enum_literal(value)
        if literal is not None:
            return literal
    elif category is ValueCategory.RELATIONSHIP:
        ref_type = relationship_type(value)
        if ref_type is not None and target_types is not None and ref_type not in target_types:
            raise TypeError(f"{ref_type} is not an accepted relationship target")
        identity = relationship_identity(value, identity_field)
        if identity is not None:
            return identity
    raise TypeError(f"{type(value).__name__} is not a {category.value} value")


def _apply(operator: str, actual: Any, expected: Any) -> bool:
    if operator == "==":
        return actual == expected
    elif operator == "!=":
        return actual != expected
    elif operator == "<":
        return actual < expected
    elif operator == "<=":
        return actual <= expected
    elif operator == ">":
        return actual > expected
    elif operator == ">=":
        return actual >= expected
    raise ValueError(f"Unknown operator: {operator}")


def _operand(comparison: BoundComparison, params: Mapping[str, Any]) -> Any:
    operand = comparison.operand
    if isinstance(operand, ParameterRef):
        try:
            return params[operand.name]
        except KeyError:
            raise MissingParameterError(
                f"Missing value for parameter '{operand.name}'", parameter=operand.name
            ) from None
    return comparison.value


def _evaluate_comparison(
    comparison: BoundComparison, instance: Any, params: Mapping[str, Any], resolver: Resolver | None
) -> bool:
    expected = _operand(comparison, params)
    actual = read_path(comparison.path, instance, resolver)
    if actual is _MISSING:
        # Absent values satisfy no comparison, != included
        return False

    category = comparison.category
    identity_field, target_types = comparison.identity_field, comparison.target_types
    try:
        if comparison.operator == CONTAINS:
            if not isinstance(actual, (list, tuple)):
                return False
            for element in actual:
                try:
                    if normalize(category, element, identity_field, target_types) == expected:
                        return True
                except (TypeError, ValueError):
                    continue
            return False
        return _apply(comparison.operator, normalize(category, actual, identity_field, target_types), expected)
    except (TypeError, ValueError):
        return False


def evaluate(
    predicate: BoundPredicate,
    instance: Any,
    params: Mapping[str, Any] | None = None,
    resolver: Resolver | None = None,
) -> bool:
    """Evaluate a bound predicate against one instance.

    ``params`` holds parameter values already coerced by
    :meth:`~typed_ledger.binder.BoundParameter.coerce`. AND and OR
    short-circuit left to right.
    """
    params = params or {}
    if isinstance(predicate, BoundCombinator):
        if predicate.kind == AND:
            return evaluate(predicate.left, instance, params, resolver) and evaluate(
                predicate.right, instance, params, resolver
            )
        return evaluate(predicate.left, instance, params, resolver) or evaluate(
            predicate.right, instance, params, resolver
        )
    return _evaluate_comparison(predicate, instance, params, resolver)


def _sort_value(ordering: BoundOrdering, instance: Any, resolver: Resolver | None) -> Any:
    value = read_path(ordering.path, instance, resolver)
    if value is _MISSING:
        return _MISSING
    try:
        return normalize(ordering.category, value)
    except (TypeError, ValueError):
        return _MISSING


def compare(
    a: Any,
    b: Any,
    order_by: Iterable[BoundOrdering],
    resolver: Resolver | None = None,
) -> int:
    """Three-way compare two instances by the ORDER BY list.

    Missing values sort after present ones ascending, before them descending.
    """
    for ordering in order_by:
        left = _sort_value(ordering, a, resolver)
        right = _sort_value(ordering, b, resolver)
        if left is _MISSING and right is _MISSING:
            continue
        if left is _MISSING:
            result = 1
        elif right is _MISSING:
            result = -1
        elif left < right:
            result = -1
        elif left > right:
            result = 1
        else:
            continue
        return -result if ordering.direction == DESC else result
    return 0


def sort_instances(
    instances: Iterable[Any],
    order_by: Iterable[BoundOrdering],
    resolver: Resolver | None = None,
) -> list[Any]:
    """Stable sort of instances by the ORDER BY list."""
    order_by = tuple(order_by)
    if not order_by:
        return list(instances)
    return sorted(instances, key=cmp_to_key(lambda a, b: compare(a, b, order_by, resolver)))
