"""Child Ordering: sorts children the way the Realtime Database orders query results.

Invariants:
    - Key order: keys that are 32-bit integers first (numerically), then strings
    - Value/child order: missing or null, false, true, numbers, strings, objects; ties by key
    - Priority order: no priority, numbers, strings; ties by key
    - Values may be in export format ({".value": v, ".priority": p} or objects carrying a
      ".priority" key); ".priority" is never a child
"""

from collections.abc import Mapping

from rtdb_bridge.core.query_constraints import OrderSpec

PRIORITY_KEY = ".priority"
VALUE_KEY = ".value"

_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1


# ─── Export format ───────────────────────────────────────────────

def export_priority(value: object) -> object:
    """Priority carried by an export-format value (None when absent)."""
    if isinstance(value, Mapping):
        return value.get(PRIORITY_KEY)
    return None


def export_value(value: object) -> object:
    """Plain value of an export-format value: priorities removed at every level."""
    if isinstance(value, Mapping):
        if VALUE_KEY in value:
            return export_value(value[VALUE_KEY])
        return {k: export_value(v) for k, v in value.items() if k != PRIORITY_KEY}
    if isinstance(value, list):
        return [export_value(v) for v in value]
    return value


# ─── Sort keys ───────────────────────────────────────────────────

def key_sort_key(key: str) -> tuple:
    try:
        number = int(key)
    except ValueError:
        return (1, 0, key)
    if _INT32_MIN <= number <= _INT32_MAX and str(number) == key:
        return (0, number, "")
    return (1, 0, key)


def value_sort_key(value: object) -> tuple:
    if value is None:
        return (0, 0)
    if value is False:
        return (1, 0)
    if value is True:
        return (2, 0)
    if isinstance(value, (int, float)):
        return (3, value)
    if isinstance(value, str):
        return (4, value)
    return (5, 0)


def priority_sort_key(priority: object) -> tuple:
    if isinstance(priority, (int, float)) and not isinstance(priority, bool):
        return (1, priority, "")
    if isinstance(priority, str):
        return (2, 0, priority)
    return (0, 0, "")


def _child_value(value: object, child_path: str | None) -> object:
    value = export_value(value)
    if not child_path:
        return value
    for segment in (s for s in child_path.split("/") if s):
        if not isinstance(value, Mapping):
            return None
        value = value.get(segment)
    return value


def order_value(key: str, value: object, spec: OrderSpec) -> tuple:
    """The part of a child's sort position that precedes the key tie-break."""
    if spec.by == "value":
        return value_sort_key(export_value(value))
    if spec.by == "child":
        return value_sort_key(_child_value(value, spec.child_path))
    if spec.by == "priority":
        return priority_sort_key(export_priority(value))
    return key_sort_key(key)


def sort_children(children: Mapping, spec: OrderSpec) -> list[tuple[str, object]]:
    """Children of a location as (key, value) pairs in query order."""
    items = [(str(k), v) for k, v in children.items()]
    if spec.by == "key":
        return sorted(items, key=lambda kv: key_sort_key(kv[0]))
    return sorted(
        items, key=lambda kv: (order_value(kv[0], kv[1], spec), key_sort_key(kv[0])),
    )


def as_children(value: object) -> Mapping:
    """Children mapping of a value; lists become index-keyed mappings, leaves have none."""
    if isinstance(value, Mapping):
        if VALUE_KEY in value:
            return {}
        return {k: v for k, v in value.items() if k != PRIORITY_KEY}
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value) if v is not None}
    return {}
