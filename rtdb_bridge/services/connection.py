"""Connection: liveness tracking for one database, driven by the reserved connected path.

Invariants:
    - State starts DISCONNECTED and only changes through core.connection_state transitions
    - At most one liveness subscription and one disconnect timer exist at any time
    - subscribe() always tears down first; a new subscription resets the sticky
      first-connection flag but keeps the current state
    - Teardown (sign-out, deleting-client, close) cancels the timer and detaches the listener
    - Timer and signal handling never raise; listener errors are logged and re-raised
      inside the listener task

Design Decisions:
    - The first subscription is deferred with loop.call_soon so the session handle is
      fully initialized before use
    - Events go through the owning engine's emitter; a "log" event mirrors each transition
"""

import asyncio
import logging

from rtdb_bridge.core.backend_protocols import RealtimeDatabase, SessionLike, Unsubscription
from rtdb_bridge.core.connection_state import (
    LivenessState,
    LivenessTransition,
    on_disconnect_timeout,
    on_liveness_signal,
)
from rtdb_bridge.core.domain_types import (
    CONNECTED_SIGNAL_PATH,
    DISCONNECT_TIMEOUT_SECONDS,
    ConnectionEvent,
    ConnectionState,
    ListenerKind,
    SessionEvent,
    TimerAction,
)
from rtdb_bridge.core.event_emitter import EventEmitter
from rtdb_bridge.core.snapshot import DataSnapshot

logger = logging.getLogger(__name__)

_LOG_MESSAGES = {
    ConnectionEvent.CONNECTING: "Connecting to {url}",
    ConnectionEvent.CONNECTED: "Connected to {url}",
    ConnectionEvent.DISCONNECT: "Connection lost to {url}",
    ConnectionEvent.RECONNECTING: "Reconnecting to {url}",
    ConnectionEvent.DISCONNECTED: "Disconnected from {url}",
}


class Connection:
    """Owns the connection state, the liveness subscription and the disconnect timer."""

    def __init__(
        self,
        emitter: EventEmitter,
        database: RealtimeDatabase,
        session: SessionLike,
        timeout_seconds: float = DISCONNECT_TIMEOUT_SECONDS,
    ):
        self._emitter = emitter
        self._database = database
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._liveness = LivenessState()
        self._handle: Unsubscription | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._closed = False
        self._loop = asyncio.get_running_loop()

        self._loop.call_soon(self.subscribe)
        session.on(SessionEvent.SIGN_IN, self.subscribe)
        session.on(SessionEvent.SIGN_OUT, self.unsubscribe)
        session.once(SessionEvent.DELETING_CLIENT, self.unsubscribe)

    @property
    def state(self) -> ConnectionState:
        return self._liveness.state

    @property
    def subscribed(self) -> bool:
        return self._handle is not None

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None

    # ─── Subscription lifecycle ──────────────────────────────────

    def subscribe(self) -> None:
        if self._closed:
            return
        self.unsubscribe()
        self._liveness = LivenessState(self._liveness.state, False)
        self._handle = self._database.listen(
            ListenerKind.VALUE, self._on_signal, self._on_error, CONNECTED_SIGNAL_PATH, (),
        )
        logger.debug(
            "Liveness subscription attached",
            extra={"database_url": self._database.url, "state": self.state.value},
        )

    def unsubscribe(self) -> None:
        self._cancel_timer()
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        self._database.unlisten(ListenerKind.VALUE, handle, CONNECTED_SIGNAL_PATH)
        logger.debug(
            "Liveness subscription detached",
            extra={"database_url": self._database.url, "state": self.state.value},
        )

    def close(self) -> None:
        self.unsubscribe()
        self._closed = True
        self._session.off(SessionEvent.SIGN_IN, self.subscribe)
        self._session.off(SessionEvent.SIGN_OUT, self.unsubscribe)
        self._session.off(SessionEvent.DELETING_CLIENT, self.unsubscribe)

    # ─── Signals ─────────────────────────────────────────────────

    def _on_signal(self, snapshot: DataSnapshot, _previous_key: str | None = None) -> None:
        self._apply(on_liveness_signal(self._liveness, snapshot.val()))

    def _on_timeout(self) -> None:
        self._timer = None
        self._apply(on_disconnect_timeout(self._liveness))

    def _on_error(self, error: BaseException) -> None:
        logger.error(
            f"Liveness subscription failed: {error}",
            extra={"database_url": self._database.url, "state": self.state.value},
        )
        raise error

    def _apply(self, transition: LivenessTransition) -> None:
        previous = self._liveness.state
        self._liveness = transition.next

        if transition.timer is TimerAction.ARM:
            self._arm_timer()
        elif transition.timer is TimerAction.CANCEL:
            self._cancel_timer()

        if previous is not self.state:
            logger.info(
                f"Connection state {previous.value} -> {self.state.value}",
                extra={"database_url": self._database.url, "state": self.state.value},
            )
        for event in transition.events:
            self._emitter.emit(event)
            self._emitter.emit(
                ConnectionEvent.LOG, _LOG_MESSAGES[event].format(url=self._database.url),
            )

    # ─── Timer ───────────────────────────────────────────────────

    def _arm_timer(self) -> None:
        self._cancel_timer()
        self._timer = self._loop.call_later(self._timeout_seconds, self._on_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
