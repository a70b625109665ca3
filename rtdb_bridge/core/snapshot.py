"""Data Snapshot: immutable read of a database location at a point in time.

The stored value may be in export format; val() never shows priorities, the
priority property and child ordering read them.
"""

import copy
from collections.abc import Iterator, Mapping

from rtdb_bridge.core.enforce_path import join_path, last_segment
from rtdb_bridge.core.ordering import (
    PRIORITY_KEY,
    VALUE_KEY,
    as_children,
    export_priority,
    export_value,
    sort_children,
)
from rtdb_bridge.core.query_constraints import OrderSpec


class DataSnapshot:
    """Read-only view of the value at `path`. val() returns a deep copy."""

    __slots__ = ("_path", "_value", "_priority", "_order")

    def __init__(
        self,
        path: str | None,
        value: object,
        priority: object = None,
        order: OrderSpec | None = None,
    ):
        self._path = join_path(path)
        self._value = strip_empty(value)
        self._priority = priority if priority is not None else export_priority(self._value)
        self._order = order or OrderSpec()

    @property
    def key(self) -> str | None:
        return last_segment(self._path)

    @property
    def ref_path(self) -> str:
        return self._path

    @property
    def priority(self) -> object:
        return self._priority

    def val(self) -> object:
        return copy.deepcopy(export_value(self._value))

    def exists(self) -> bool:
        return self._value is not None

    def child(self, path: str) -> "DataSnapshot":
        value = self._value
        for segment in (s for s in path.split("/") if s):
            value = as_children(value).get(segment)
            if value is None:
                break
        return DataSnapshot(join_path(self._path, path), value)

    def has_child(self, path: str) -> bool:
        return self.child(path).exists()

    def has_children(self) -> bool:
        return bool(as_children(self._value))

    def num_children(self) -> int:
        return len(as_children(self._value))

    def children(self) -> Iterator["DataSnapshot"]:
        """Child snapshots in query order."""
        for key, value in sort_children(as_children(self._value), self._order):
            yield DataSnapshot(join_path(self._path, key), value, order=self._order)

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.val(), "priority": self._priority}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataSnapshot):
            return NotImplemented
        return self._path == other._path and self._value == other._value

    def __repr__(self) -> str:
        return f"DataSnapshot(key={self.key!r}, value={self.val()!r})"


def strip_empty(value: object) -> object:
    """Empty objects do not exist in the database; collapse them to None."""
    if isinstance(value, Mapping):
        if VALUE_KEY in value:
            return value if value[VALUE_KEY] is not None else None
        cleaned = {k: strip_empty(v) for k, v in value.items()}
        cleaned = {k: v for k, v in cleaned.items() if v is not None}
        if set(cleaned) <= {PRIORITY_KEY}:
            return None
        return cleaned
    return value
