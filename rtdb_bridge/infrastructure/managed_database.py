"""Managed Database: lifecycle shared by the admin and client backends.

Invariants:
    - Listeners on CONNECTED_SIGNAL_PATH are served by the liveness monitor, all other
      paths by one CachedListener each
    - go_offline()/go_online() are idempotent
    - On-disconnect mutations are applied in registration order when the connection is
      deliberately dropped (go_offline) or the database is closed; cancel() discards
      those registered at or below its path
    - close() waits for every listener to finish closing before releasing the backend

Design Decisions:
    - Subclasses provide the reads/writes, the listener type, the liveness check and
      the unsubscription handle shape
    - Neither backend protocol exposes server-side on-disconnect hooks to this process:
      mutations are queued here
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from rtdb_bridge.config import Settings
from rtdb_bridge.core.backend_protocols import ErrorCallback, SnapshotCallback
from rtdb_bridge.core.domain_types import (
    CONNECTED_SIGNAL_PATH,
    ListenerKind,
    OnDisconnectMethod,
    Priority,
)
from rtdb_bridge.core.errors import BackendError, ClientError
from rtdb_bridge.core.ordering import PRIORITY_KEY, VALUE_KEY
from rtdb_bridge.core.query_constraints import QueryConstraint
from rtdb_bridge.infrastructure.cached_listener import CachedListener
from rtdb_bridge.infrastructure.liveness import LivenessMonitor, LivenessSubscription

logger = logging.getLogger(__name__)

Subscription = CachedListener | LivenessSubscription


def priority_payload(value: object, priority: Priority | None) -> object:
    """Value carrying its priority in export format."""
    if isinstance(value, Mapping):
        return {**value, PRIORITY_KEY: priority}
    return {VALUE_KEY: value, PRIORITY_KEY: priority}


@dataclass
class QueuedMutation:
    path: str
    method: OnDisconnectMethod
    apply: Callable[[], Awaitable[object]]


class QueuedOnDisconnect:
    """OnDisconnectLike handle for one path."""

    def __init__(self, database: "ManagedDatabase", path: str):
        self._database = database
        self._path = path

    async def cancel(self) -> None:
        self._database.cancel_on_disconnect(self._path)

    async def set(self, value: object) -> None:
        self._queue(OnDisconnectMethod.SET, lambda: self._database.set(self._path, value))

    async def update(self, value: Mapping) -> None:
        self._queue(OnDisconnectMethod.UPDATE, lambda: self._database.update(self._path, value))

    async def remove(self) -> None:
        self._queue(OnDisconnectMethod.REMOVE, lambda: self._database.remove(self._path))

    async def set_with_priority(self, value: object, priority: Priority | None) -> None:
        self._queue(
            OnDisconnectMethod.SET_WITH_PRIORITY,
            lambda: self._database.set_with_priority(self._path, value, priority),
        )

    def _queue(self, method: OnDisconnectMethod, apply: Callable[[], Awaitable[object]]) -> None:
        self._database.queue_on_disconnect(QueuedMutation(self._path, method, apply))


class ManagedDatabase:
    admin: bool = False

    def __init__(self, settings: Settings):
        self._settings = settings
        self._listeners: list[CachedListener] = []
        self._on_disconnect: list[QueuedMutation] = []
        self._background: set[asyncio.Task] = set()
        self._offline = False
        self._liveness = LivenessMonitor(
            self._check_reachable, settings.liveness_check_interval_seconds,
        )

    @property
    def url(self) -> str:
        raise NotImplementedError

    @property
    def offline(self) -> bool:
        return self._offline

    async def set(self, path: str, value: object) -> None:
        raise NotImplementedError

    async def update(self, path: str, value: Mapping) -> None:
        raise NotImplementedError

    async def remove(self, path: str) -> None:
        raise NotImplementedError

    async def set_with_priority(
        self, path: str, value: object, priority: Priority | None,
    ) -> None:
        raise NotImplementedError

    # ─── On-disconnect ───────────────────────────────────────────

    def on_disconnect(self, path: str) -> QueuedOnDisconnect:
        return QueuedOnDisconnect(self, path)

    def queue_on_disconnect(self, mutation: QueuedMutation) -> None:
        self._on_disconnect.append(mutation)

    def cancel_on_disconnect(self, path: str) -> None:
        prefix = f"{path}/"
        self._on_disconnect = [
            m for m in self._on_disconnect
            if m.path != path and not m.path.startswith(prefix)
        ]

    @property
    def pending_on_disconnect(self) -> list[QueuedMutation]:
        return list(self._on_disconnect)

    async def flush_on_disconnect(self) -> None:
        """Apply queued mutations in order. Failures are logged, the rest still run."""
        mutations, self._on_disconnect = self._on_disconnect, []
        for mutation in mutations:
            try:
                await mutation.apply()
            except (BackendError, ClientError) as e:
                logger.error(
                    f"On-disconnect {mutation.method.value} failed: {e.message}",
                    extra={"path": mutation.path, "method": mutation.method.value,
                           "error_code": e.code},
                )

    # ─── Listeners ───────────────────────────────────────────────

    def _open_listener(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...],
    ) -> CachedListener:
        raise NotImplementedError

    def _subscribe(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...],
    ) -> Subscription:
        if path == CONNECTED_SIGNAL_PATH:
            return self._liveness.add(callback)

        opened = self._open_listener(listener, callback, on_error, path, constraints)
        self._listeners.append(opened)
        if not self._offline:
            opened.start()
        return opened

    def _release(self, subscription: Subscription) -> None:
        subscription.stop()
        if subscription in self._listeners:
            self._listeners.remove(subscription)

    # ─── Connection control ──────────────────────────────────────

    async def _check_reachable(self) -> bool:
        raise NotImplementedError

    async def _close_backend(self) -> None:
        raise NotImplementedError

    def go_offline(self) -> None:
        if self._offline:
            return
        self._offline = True
        logger.info("Going offline", extra={"database_url": self.url})
        for opened in self._listeners:
            opened.stop()
        self._liveness.pause()
        if self._on_disconnect:
            task = asyncio.get_running_loop().create_task(self.flush_on_disconnect())
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    def go_online(self) -> None:
        if not self._offline:
            return
        self._offline = False
        logger.info("Going online", extra={"database_url": self.url})
        for opened in self._listeners:
            opened.start()
        self._liveness.resume()

    async def close(self) -> None:
        listeners, self._listeners = self._listeners, []
        for opened in listeners:
            opened.stop()
        self._liveness.pause()
        await self.flush_on_disconnect()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        for opened in listeners:
            await opened.wait_closed()
        await self._close_backend()
