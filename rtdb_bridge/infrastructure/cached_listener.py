"""Cached Listener: local copy of one listened location, diffed into listener callbacks.

Invariants:
    - Callbacks fire from cache diffs only; value callbacks once for the initial data,
      then only on real changes
    - An optional view narrows the cache before diffing (client-side query evaluation)
    - A failed listener never restarts and reports to on_error exactly once
    - Callback exceptions are logged and never stop the listener
"""

import asyncio
import logging
from collections.abc import Callable

from rtdb_bridge.core.backend_protocols import ErrorCallback, SnapshotCallback
from rtdb_bridge.core.child_events import apply_stream_event, diff_children, value_changed
from rtdb_bridge.core.domain_types import ListenerKind
from rtdb_bridge.core.enforce_path import join_path
from rtdb_bridge.core.errors import RTDBBridgeError
from rtdb_bridge.core.query_constraints import QueryConstraint, order_spec
from rtdb_bridge.core.snapshot import DataSnapshot

logger = logging.getLogger(__name__)

View = Callable[[object], object]


class CachedListener:
    """Base for backend listeners. Subclasses implement start() and stop()."""

    def __init__(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...] = (),
        view: View | None = None,
    ):
        self.listener = listener
        self.callback = callback
        self.path = path
        self._on_error = on_error
        self._constraints = constraints
        self._order = order_spec(constraints)
        self._view = view
        self._cache: object = None
        self._received_first = False
        self._failed = False
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    async def wait_closed(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _fail(self, error: RTDBBridgeError) -> None:
        self._failed = True
        self._on_error(error)

    # ─── Cache & dispatch ────────────────────────────────────────

    def _apply(self, event_type: str, path: str, data: object) -> None:
        updated = apply_stream_event(self._cache, event_type, path, data)
        self._dispatch(self._narrow(self._cache), self._narrow(updated))
        self._cache = updated

    def _narrow(self, value: object) -> object:
        return self._view(value) if self._view is not None else value

    def _dispatch(self, old: object, new: object) -> None:
        first = not self._received_first
        self._received_first = True

        if self.listener is ListenerKind.VALUE:
            if value_changed(old, new, first):
                self._invoke(DataSnapshot(self.path, new, order=self._order), None)
            return

        for change in diff_children(old, new, self._order):
            if change.kind is self.listener:
                snapshot = DataSnapshot(
                    join_path(self.path, change.key), change.value, order=self._order,
                )
                self._invoke(snapshot, change.previous_key)

    def _invoke(self, snapshot: DataSnapshot, previous_key: str | None) -> None:
        try:
            self.callback(snapshot, previous_key)
        except Exception:
            logger.error(
                "Listener callback raised", exc_info=True,
                extra={"path": self.path, "listener": self.listener.value},
            )
