"""Child Events: turns streamed put/patch events into value and child_* notifications.

Invariants:
    - apply_stream_event is PURE: returns a new tree, never mutates the cached one
    - diff_children reports changes in the order removed, added, moved, changed
    - previous_key is the key of the preceding sibling in query order (None when first)
    - The first diff against an empty cache reports every child as added

Design Decisions:
    - Streams deliver raw put/patch deltas; the cache + diff gives both backends the same
      child_* semantics without backend-specific listener code
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass

from rtdb_bridge.core.domain_types import ListenerKind
from rtdb_bridge.core.ordering import (
    PRIORITY_KEY,
    VALUE_KEY,
    as_children,
    export_priority,
    sort_children,
)
from rtdb_bridge.core.query_constraints import OrderSpec
from rtdb_bridge.core.snapshot import strip_empty


@dataclass(frozen=True)
class ChildChange:
    """One child-level notification."""
    kind: ListenerKind
    key: str
    value: object
    previous_key: str | None = None


def _segments(path: str | None) -> list[str]:
    return [s for s in (path or "").split("/") if s]


def _export_node(tree: object) -> dict:
    if isinstance(tree, Mapping):
        return dict(tree)
    return {} if tree is None else {VALUE_KEY: tree}


def _set_at(tree: object, segments: list[str], value: object) -> object:
    if not segments:
        return copy.deepcopy(value)
    head, rest = segments[0], segments[1:]
    if head == PRIORITY_KEY:
        node = _export_node(tree)
        node[PRIORITY_KEY] = copy.deepcopy(value)
        return node
    children = dict(as_children(tree))
    children[head] = _set_at(children.get(head), rest, value)
    priority = export_priority(tree)
    if priority is not None:
        children[PRIORITY_KEY] = priority
    return children


def apply_stream_event(tree: object, event_type: str, path: str, data: object) -> object:
    """Apply a streamed 'put' (replace at path) or 'patch' (merge at path) event."""
    segments = _segments(path)
    if event_type == "put":
        return strip_empty(_set_at(tree, segments, data))
    if event_type == "patch":
        updated = tree
        for key, value in (data or {}).items():
            updated = _set_at(updated, segments + _segments(key), value)
        return strip_empty(updated)
    return tree


def _previous_keys(order: list[str]) -> dict[str, str | None]:
    return {key: (order[i - 1] if i else None) for i, key in enumerate(order)}


def diff_children(old: object, new: object, spec: OrderSpec) -> list[ChildChange]:
    """Child-level changes between two cached values of the same location."""
    old_children = as_children(old)
    new_children = as_children(new)
    new_order = [key for key, _ in sort_children(new_children, spec)]
    old_order = [key for key, _ in sort_children(old_children, spec)]
    previous = _previous_keys(new_order)

    removed = [
        ChildChange(ListenerKind.CHILD_REMOVED, key, old_children[key])
        for key in old_order if key not in new_children
    ]
    added = [
        ChildChange(ListenerKind.CHILD_ADDED, key, new_children[key], previous[key])
        for key in new_order if key not in old_children
    ]

    common_old = [key for key in old_order if key in new_children]
    common_new = [key for key in new_order if key in old_children]
    old_neighbours = _previous_keys(common_old)
    new_neighbours = _previous_keys(common_new)
    moved = [
        ChildChange(ListenerKind.CHILD_MOVED, key, new_children[key], previous[key])
        for key in common_new if old_neighbours[key] != new_neighbours[key]
    ]
    changed = [
        ChildChange(ListenerKind.CHILD_CHANGED, key, new_children[key], previous[key])
        for key in common_new if old_children[key] != new_children[key]
    ]

    return removed + added + moved + changed


def value_changed(old: object, new: object, first_event: bool) -> bool:
    """value listeners fire on the initial snapshot and on every real change."""
    return first_event or old != new
