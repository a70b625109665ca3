"""Listener Stream: one streaming request backing one value/child_* subscription.

Invariants:
    - Transport drops reconnect after reconnect_delay; the server replays the full value
    - Server-reported failures (HTTP status, cancel, auth_revoked, malformed event data)
      go to on_error exactly once and end the stream; they are never retried
    - stop() cancels the task; start() after stop() resumes from the cached value
"""

import asyncio
import json
import logging

import httpx

from rtdb_bridge.core.backend_protocols import ErrorCallback, SnapshotCallback
from rtdb_bridge.core.domain_types import ListenerKind
from rtdb_bridge.core.errors import BackendError, ClientError, ErrorContext
from rtdb_bridge.core.query_constraints import QueryConstraint
from rtdb_bridge.infrastructure.cached_listener import CachedListener
from rtdb_bridge.infrastructure.rest_transport import (
    RestTransport,
    ServerSentEvent,
    to_rest_params,
)

logger = logging.getLogger(__name__)


class ListenerStream(CachedListener):
    """Streams one location and dispatches the requested listener kind."""

    def __init__(
        self,
        transport: RestTransport,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...] = (),
        reconnect_delay: float = 1.0,
    ):
        super().__init__(listener, callback, on_error, path, constraints)
        self._transport = transport
        self._reconnect_delay = reconnect_delay
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running or self._failed:
            return
        self._task = self._spawn(self._run())

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        try:
            params = to_rest_params(self._constraints)
        except BackendError as e:
            self._fail(e)
            return

        while True:
            try:
                async with self._transport.stream(self.path, params) as events:
                    async for event in events:
                        self._handle(event)
            except BackendError as e:
                if not isinstance(e.cause, httpx.TransportError):
                    self._fail(e)
                    return
                logger.info(
                    f"Stream dropped, reconnecting: {e}",
                    extra={"path": self.path, "listener": self.listener.value},
                )
            except ClientError as e:
                self._fail(e)
                return
            await asyncio.sleep(self._reconnect_delay)

    def _handle(self, event: ServerSentEvent) -> None:
        context = ErrorContext(path=self.path, listener=self.listener.value)
        if event.event in ("put", "patch"):
            try:
                payload = json.loads(event.data)
                path, data = payload["path"], payload.get("data")
            except (ValueError, TypeError, KeyError) as e:
                raise BackendError(
                    f"Malformed {event.event} event: {event.data[:200]}", "listen",
                    cause=e, context=context,
                )
            self._apply(event.event, path, data)
        elif event.event == "cancel":
            raise BackendError(
                event.data.strip('"') or "Permission denied", "listen", 401, context=context,
            )
        elif event.event == "auth_revoked":
            raise BackendError(
                "Auth credential is no longer valid", "listen", 401, context=context,
            )
