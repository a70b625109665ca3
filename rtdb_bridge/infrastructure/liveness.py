"""Liveness Monitor: produces the boolean served at the reserved ".info/connected" path.

Invariants:
    - New subscribers receive the value current at delivery time on the next loop turn
      (False until the first successful check); changes reported before that delivery are
      folded into it
    - Afterwards only changes are delivered, in check order
    - A check counts as connected when the server answers at all (any HTTP status)
    - pause() reports False and stops probing; resume() starts probing again
    - The check task only runs while there is at least one subscriber
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from rtdb_bridge.core.backend_protocols import SnapshotCallback
from rtdb_bridge.core.domain_types import CONNECTED_SIGNAL_PATH
from rtdb_bridge.core.snapshot import DataSnapshot

logger = logging.getLogger(__name__)


class LivenessSubscription:
    def __init__(self, monitor: "LivenessMonitor", callback: SnapshotCallback):
        self._monitor = monitor
        self.callback = callback

    def stop(self) -> None:
        self._monitor.remove(self.callback)


class LivenessMonitor:
    def __init__(self, check: Callable[[], Awaitable[bool]], interval_seconds: float = 5.0):
        self._check = check
        self._interval = interval_seconds
        self._callbacks: list[SnapshotCallback] = []
        self._pending: list[SnapshotCallback] = []
        self._connected: bool | None = None
        self._paused = False
        self._task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return bool(self._connected)

    def add(self, callback: SnapshotCallback) -> LivenessSubscription:
        self._callbacks.append(callback)
        self._pending.append(callback)
        if self._connected is None:
            self._connected = False
        asyncio.get_running_loop().call_soon(self._deliver_current, callback)
        self._ensure_running()
        return LivenessSubscription(self, callback)

    def remove(self, callback: SnapshotCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)
        if callback in self._pending:
            self._pending.remove(callback)
        if not self._callbacks:
            self._cancel_task()

    def pause(self) -> None:
        self._paused = True
        self._cancel_task()
        self._report(False)

    def resume(self) -> None:
        self._paused = False
        self._ensure_running()

    def _ensure_running(self) -> None:
        if not self._callbacks or self._paused:
            return
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            self._report(await self._check())
            await asyncio.sleep(self._interval)

    def _report(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        logger.debug(f"Liveness changed: {connected}")
        for callback in list(self._callbacks):
            if callback not in self._pending:
                self._deliver(callback, connected)

    def _deliver(self, callback: SnapshotCallback, connected: bool) -> None:
        if callback not in self._callbacks:
            return
        try:
            callback(DataSnapshot(CONNECTED_SIGNAL_PATH, connected), None)
        except Exception:
            logger.error("Liveness callback raised", exc_info=True)

    def _deliver_current(self, callback: SnapshotCallback) -> None:
        if callback in self._pending:
            self._pending.remove(callback)
        self._deliver(callback, bool(self._connected))
