"""Query Engine: validated reads, writes and subscriptions over the active database backend.

Invariants:
    - Every entry point validates synchronously and raises ValidationError before any
      backend call; the returned awaitable carries only backend work
    - The backend is chosen once, from session.admin, at construction
    - Backend failures propagate unmodified (BackendError); writes are never retried
    - Backend-reported listener errors are logged and re-raised (fatal to that subscription)
    - Unsubscription handles are returned and accepted as-is: a function for the client
      backend, a (listener, callback) pair for the admin backend

Design Decisions:
    - The engine owns the event emitter; Connection emits its lifecycle events through it
    - One dispatch table per mutation family instead of per-backend branching
"""

import logging
from collections.abc import Awaitable, Callable

from rtdb_bridge.config import Settings, get_settings
from rtdb_bridge.core.backend_protocols import (
    ErrorCallback,
    OnDisconnectLike,
    RealtimeDatabase,
    SessionLike,
    Unsubscription,
)
from rtdb_bridge.core.domain_types import (
    ConnectionState,
    ListenerKind,
    OnDisconnectMethod,
    WriteMethod,
)
from rtdb_bridge.core.enforce_methods import (
    WriteArgs,
    check_callback,
    check_listener,
    check_on_disconnect_method,
    check_write_method,
    split_on_disconnect_args,
    split_write_args,
)
from rtdb_bridge.core.enforce_path import check_path
from rtdb_bridge.core.errors import RTDBError
from rtdb_bridge.core.event_emitter import EventEmitter, Handler
from rtdb_bridge.core.query_constraints import parse_query_constraints
from rtdb_bridge.core.snapshot import DataSnapshot
from rtdb_bridge.infrastructure.database_factory import open_database
from rtdb_bridge.services.connection import Connection

logger = logging.getLogger(__name__)

_WRITES: dict[WriteMethod, Callable[[RealtimeDatabase, str, WriteArgs], Awaitable[object]]] = {
    WriteMethod.SET: lambda db, path, a: db.set(path, a.value),
    WriteMethod.PUSH: lambda db, path, a: db.push(path, a.value),
    WriteMethod.UPDATE: lambda db, path, a: db.update(path, a.value),
    WriteMethod.REMOVE: lambda db, path, a: db.remove(path),
    WriteMethod.SET_PRIORITY: lambda db, path, a: db.set_priority(path, a.priority),
    WriteMethod.SET_WITH_PRIORITY: lambda db, path, a: db.set_with_priority(
        path, a.value, a.priority,
    ),
}

_ON_DISCONNECT: dict[OnDisconnectMethod, Callable[[OnDisconnectLike, WriteArgs], Awaitable[None]]] = {
    OnDisconnectMethod.CANCEL: lambda od, a: od.cancel(),
    OnDisconnectMethod.SET: lambda od, a: od.set(a.value),
    OnDisconnectMethod.UPDATE: lambda od, a: od.update(a.value),
    OnDisconnectMethod.REMOVE: lambda od, a: od.remove(),
    OnDisconnectMethod.SET_WITH_PRIORITY: lambda od, a: od.set_with_priority(a.value, a.priority),
}


class QueryEngine:
    """Single query surface over the admin and client backends.

    Must be constructed inside a running event loop: connection tracking schedules its
    first subscription on the next loop turn.
    """

    def __init__(
        self,
        session: SessionLike,
        database: RealtimeDatabase | None = None,
        settings: Settings | None = None,
    ):
        if not session.client_initialised:
            raise RTDBError("QueryEngine is called before the Client is initialized")
        if session.admin is None:
            raise RTDBError("Property 'admin' missing in session")

        settings = settings or get_settings()
        self._session = session
        self._database = database if database is not None else open_database(session, settings)
        self._emitter = EventEmitter()
        self._connection = Connection(
            self._emitter, self._database, session, settings.disconnect_timeout_seconds,
        )
        logger.info(
            "Query engine ready",
            extra={"database_url": self._database.url, "admin": session.admin},
        )

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection.state

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def database(self) -> RealtimeDatabase:
        return self._database

    @property
    def session(self) -> SessionLike:
        return self._session

    # ─── Events ──────────────────────────────────────────────────

    def on(self, event: str, handler: Handler) -> "QueryEngine":
        self._emitter.on(event, handler)
        return self

    def once(self, event: str, handler: Handler) -> "QueryEngine":
        self._emitter.once(event, handler)
        return self

    def off(self, event: str, handler: Handler) -> "QueryEngine":
        self._emitter.off(event, handler)
        return self

    # ─── Reads & subscriptions ───────────────────────────────────

    def do_get_query(
        self, path: str | None = None, constraints: dict | None = None,
    ) -> Awaitable[DataSnapshot]:
        checked_path = check_path(path, allow_empty=True)
        parsed = parse_query_constraints(constraints)
        return self._database.get(checked_path, parsed)

    def do_subscription_query(
        self,
        listener: ListenerKind | str,
        callback: Callable,
        path: str | None = None,
        constraints: dict | None = None,
    ) -> Unsubscription:
        checked_path = check_path(path, allow_empty=True)
        checked_callback = check_callback(callback)
        kind = check_listener(listener)
        parsed = parse_query_constraints(constraints)

        handle = self._database.listen(
            kind, checked_callback, self._listener_error(kind, checked_path),
            checked_path, parsed,
        )
        logger.debug(
            "Subscribed", extra={"path": checked_path, "listener": kind.value},
        )
        return handle

    def do_un_subscription_query(
        self,
        listener: ListenerKind | str,
        handle: Unsubscription | None = None,
        path: str | None = None,
    ) -> None:
        checked_path = check_path(path, allow_empty=True)
        kind = check_listener(listener)
        if handle is None:
            return
        self._database.unlisten(kind, handle, checked_path)
        logger.debug(
            "Unsubscribed", extra={"path": checked_path, "listener": kind.value},
        )

    def _listener_error(self, kind: ListenerKind, path: str | None) -> ErrorCallback:
        def on_error(error: BaseException) -> None:
            logger.error(
                f"Listener cancelled by backend: {error}",
                extra={"path": path, "listener": kind.value},
            )
            raise error

        return on_error

    # ─── Writes ──────────────────────────────────────────────────

    def do_write_query(
        self, method: WriteMethod | str, path: str, *args: object,
    ) -> Awaitable[object]:
        """Validate and dispatch a write. For push, the awaited result is the new key."""
        checked_method = check_write_method(method)
        checked_path = check_path(path)
        write_args = split_write_args(checked_method, args)
        return _WRITES[checked_method](self._database, checked_path, write_args)

    def set_on_disconnect_query(
        self, method: OnDisconnectMethod | str, path: str, *args: object,
    ) -> Awaitable[None]:
        checked_method = check_on_disconnect_method(method)
        checked_path = check_path(path)
        write_args = split_on_disconnect_args(checked_method, args)
        on_disconnect = self._database.on_disconnect(checked_path)
        return _ON_DISCONNECT[checked_method](on_disconnect, write_args)

    # ─── Transport control ───────────────────────────────────────

    def go_online(self) -> None:
        self._database.go_online()

    def go_offline(self) -> None:
        self._database.go_offline()

    async def close(self) -> None:
        self._connection.close()
        await self._database.close()
