"""Query Filter: evaluates a parsed constraint set against a fetched value.

Invariants:
    - PURE: the input value is never mutated
    - Range bounds compare sort positions (order value, then key), so the optional "key"
      argument breaks ties exactly like the server does
    - Ranges apply before limits; limitToLast keeps the tail of the ordered range
    - Leaves and empty locations pass through unchanged
"""

from rtdb_bridge.core.ordering import (
    as_children,
    key_sort_key,
    order_value,
    priority_sort_key,
    sort_children,
    value_sort_key,
)
from rtdb_bridge.core.query_constraints import (
    OrderSpec,
    QueryConstraint,
    order_spec,
)

_BEFORE_ALL_KEYS = (-1,)
_AFTER_ALL_KEYS = (2,)


def _bound_value(value: object, spec: OrderSpec) -> tuple:
    if spec.by == "key":
        return key_sort_key(str(value))
    if spec.by == "priority":
        return priority_sort_key(value)
    return value_sort_key(value)


def _bound(constraint: QueryConstraint, spec: OrderSpec, low: bool) -> tuple:
    """Sort position of a range argument; a missing key sits below or above every key."""
    value = _bound_value(constraint.args[0], spec)
    if spec.by == "key":
        return (value,)
    if len(constraint.args) > 1:
        return (value, key_sort_key(constraint.args[1]))
    return (value, _BEFORE_ALL_KEYS if low else _AFTER_ALL_KEYS)


def _position(key: str, value: object, spec: OrderSpec) -> tuple:
    if spec.by == "key":
        return (key_sort_key(key),)
    return (order_value(key, value, spec), key_sort_key(key))


def _in_range(position: tuple, constraint: QueryConstraint, spec: OrderSpec) -> bool:
    name = constraint.name
    if name == "startAt":
        return position >= _bound(constraint, spec, low=True)
    if name == "startAfter":
        return position > _bound(constraint, spec, low=False)
    if name == "endAt":
        return position <= _bound(constraint, spec, low=False)
    if name == "endBefore":
        return position < _bound(constraint, spec, low=True)
    if name == "equalTo":
        return _bound(constraint, spec, low=True) <= position <= _bound(constraint, spec, low=False)
    return True


def apply_query(value: object, constraints: tuple[QueryConstraint, ...]) -> object:
    """Children of `value` kept by the constraint set, or the value itself for leaves."""
    children = as_children(value)
    if not constraints or not children:
        return value

    spec = order_spec(constraints)
    ordered = sort_children(children, spec)
    for constraint in constraints:
        ordered = [
            (key, child) for key, child in ordered
            if _in_range(_position(key, child, spec), constraint, spec)
        ]
    for constraint in constraints:
        if constraint.name == "limitToFirst":
            ordered = ordered[:constraint.args[0]]
        elif constraint.name == "limitToLast":
            ordered = ordered[-constraint.args[0]:]

    return dict(ordered) or None
