"""Admin Database: privileged backend on the Firebase Admin SDK.

Invariants:
    - One firebase_admin App per database, named uniquely; deleted by close()
    - Every SDK call blocks and runs in a worker thread via asyncio.to_thread
    - SDK failures (FirebaseError, ValueError, google-auth errors) become BackendError with
      the HTTP status when there is one; security rules are bypassed
    - listen() returns a (listener, callback) pair; unlisten() matches on both plus path
    - Several registrations of the same callback are released one at a time, newest first

Design Decisions:
    - Queries the SDK can express (one order, limits, startAt/endAt/equalTo without a key
      argument) run server-side; startAfter/endBefore and key arguments fetch the location
      and filter it locally
    - The SDK has no priority ordering: orderByPriority is rejected with a BackendError
    - set(None) deletes, matching the REST semantics of writing null
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from uuid import uuid4

import firebase_admin
from firebase_admin import credentials, db, exceptions
from google.auth.exceptions import GoogleAuthError

from rtdb_bridge.config import Settings
from rtdb_bridge.core.backend_protocols import ErrorCallback, SnapshotCallback
from rtdb_bridge.core.domain_types import ListenerKind, Priority
from rtdb_bridge.core.errors import BackendError, ErrorContext, RTDBError, ValidationError
from rtdb_bridge.core.ordering import PRIORITY_KEY
from rtdb_bridge.core.query_constraints import LIMITS, QueryConstraint, order_spec
from rtdb_bridge.core.query_filter import apply_query
from rtdb_bridge.core.snapshot import DataSnapshot
from rtdb_bridge.infrastructure.admin_listener import (
    AdminListener,
    check_admin_query,
    status_code,
)
from rtdb_bridge.infrastructure.managed_database import (
    ManagedDatabase,
    Subscription,
    priority_payload,
)

logger = logging.getLogger(__name__)

_SERVER_RANGES = {"startAt": "start_at", "endAt": "end_at", "equalTo": "equal_to"}
_LIMIT_METHODS = {"limitToFirst": "limit_to_first", "limitToLast": "limit_to_last"}
_SDK_ERRORS = (exceptions.FirebaseError, ValueError, GoogleAuthError)


def server_query(
    reference: db.Reference, constraints: tuple[QueryConstraint, ...],
) -> db.Reference | db.Query | None:
    """SDK query for the constraint set, or None when it has to be filtered locally."""
    if not constraints:
        return reference
    for constraint in constraints:
        if constraint.name in LIMITS:
            continue
        if constraint.name.startswith("orderBy"):
            continue
        if (
            constraint.name not in _SERVER_RANGES
            or len(constraint.args) > 1
            or constraint.args[0] is None
        ):
            return None

    spec = order_spec(constraints)
    if spec.by == "child":
        query = reference.order_by_child(spec.child_path)
    elif spec.by == "value":
        query = reference.order_by_value()
    else:
        query = reference.order_by_key()

    for constraint in constraints:
        if constraint.name in _LIMIT_METHODS:
            query = getattr(query, _LIMIT_METHODS[constraint.name])(constraint.args[0])
        elif constraint.name in _SERVER_RANGES:
            query = getattr(query, _SERVER_RANGES[constraint.name])(constraint.args[0])
    return query


def fetch(reference: db.Reference, constraints: tuple[QueryConstraint, ...]) -> object:
    query = server_query(reference, constraints)
    if query is not None:
        return query.get()
    return apply_query(reference.get(), constraints)


class AdminDatabase(ManagedDatabase):
    admin = True

    def __init__(self, app: firebase_admin.App, settings: Settings):
        super().__init__(settings)
        self._app = app
        self._registry: dict[tuple[str | None, ListenerKind], list[Subscription]] = {}

    @classmethod
    def connect(
        cls,
        database_url: str,
        credential: credentials.Base | None,
        settings: Settings,
        name: str | None = None,
    ) -> "AdminDatabase":
        """Initialize a dedicated App. A None credential uses Application Default Credentials."""
        options = {
            "databaseURL": database_url,
            "httpTimeout": settings.request_timeout_seconds,
        }
        try:
            app = firebase_admin.initialize_app(
                credential, options, name=name or f"rtdb-bridge-{uuid4().hex}",
            )
        except ValueError as e:
            raise RTDBError(f"Cannot initialize admin app: {e}")
        logger.info("Admin app initialized", extra={"database_url": database_url, "admin": True})
        return cls(app, settings)

    @property
    def url(self) -> str:
        return self._app.options.get("databaseURL")

    @property
    def app(self) -> firebase_admin.App:
        return self._app

    def _reference(self, path: str | None) -> db.Reference:
        return db.reference(path or "/", app=self._app)

    async def _call(self, operation: str, path: str | None, fn: Callable, *args: object) -> object:
        try:
            return await asyncio.to_thread(fn, *args)
        except _SDK_ERRORS as e:
            status = status_code(e)
            logger.warning(
                f"Backend rejected {operation}: {e}",
                extra={"path": path, "operation": operation, "status_code": status},
            )
            raise BackendError(
                str(e), operation, status, cause=e,
                context=ErrorContext(path=path, method=operation),
            )

    # ─── Reads & writes ──────────────────────────────────────────

    async def get(
        self, path: str | None, constraints: tuple[QueryConstraint, ...] = (),
    ) -> DataSnapshot:
        check_admin_query(constraints, "get")
        value = await self._call("get", path, fetch, self._reference(path), constraints)
        return DataSnapshot(path, value, order=order_spec(constraints))

    async def set(self, path: str, value: object) -> None:
        reference = self._reference(path)
        if value is None:
            await self._call("set", path, reference.delete)
        else:
            await self._call("set", path, reference.set, value)

    async def push(self, path: str, value: object = None) -> str:
        # an empty object stores nothing; the server still allocates the key
        payload = {} if value is None else value
        child = await self._call("push", path, self._reference(path).push, payload)
        return child.key

    async def update(self, path: str, value: Mapping) -> None:
        if not value:
            return
        await self._call("update", path, self._reference(path).update, dict(value))

    async def remove(self, path: str) -> None:
        await self._call("remove", path, self._reference(path).delete)

    async def set_priority(self, path: str, priority: Priority | None) -> None:
        await self._call(
            "setPriority", path, self._reference(path).update, {PRIORITY_KEY: priority},
        )

    async def set_with_priority(
        self, path: str, value: object, priority: Priority | None,
    ) -> None:
        await self._call(
            "setWithPriority", path, self._reference(path).set,
            priority_payload(value, priority),
        )

    # ─── Listeners ───────────────────────────────────────────────

    def _open_listener(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...],
    ) -> AdminListener:
        return AdminListener(
            self._reference(path), listener, callback, on_error, path, constraints,
        )

    def listen(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...] = (),
    ) -> tuple[ListenerKind, SnapshotCallback]:
        registration = self._subscribe(listener, callback, on_error, path, constraints)
        self._registry.setdefault((path, listener), []).append(registration)
        logger.debug(
            "Admin listener attached",
            extra={"path": path, "listener": listener.value, "admin": True},
        )
        return listener, callback

    def unlisten(
        self, listener: ListenerKind, handle: object, path: str | None,
    ) -> None:
        if handle is None:
            return
        if not (isinstance(handle, tuple) and len(handle) == 2 and callable(handle[1])):
            raise ValidationError(
                "Admin unsubscription handle must be a (listener, callback) pair!", "handle",
            )

        handle_listener, callback = handle
        if handle_listener != listener:
            owner = getattr(handle_listener, "value", handle_listener)
            raise ValidationError(
                f'Unsubscription handle belongs to "{owner}", not "{listener.value}"!',
                "handle",
            )

        registrations = self._registry.get((path, listener), [])
        for index in range(len(registrations) - 1, -1, -1):
            if registrations[index].callback == callback:
                self._release(registrations.pop(index))
                break
        if not registrations:
            self._registry.pop((path, listener), None)

    # ─── Connection control ──────────────────────────────────────

    async def _check_reachable(self) -> bool:
        reference = self._reference(self._settings.liveness_check_path)
        try:
            await asyncio.wait_for(
                asyncio.to_thread(reference.get, False, True),
                self._settings.liveness_check_timeout_seconds,
            )
        except exceptions.FirebaseError as e:
            return e.http_response is not None
        except (GoogleAuthError, asyncio.TimeoutError) as e:
            logger.warning(f"Liveness check failed: {e!r}", extra={"admin": True})
            return False
        return True

    async def close(self) -> None:
        self._registry.clear()
        await super().close()

    async def _close_backend(self) -> None:
        database_url = self.url
        firebase_admin.delete_app(self._app)
        logger.info("Admin app deleted", extra={"database_url": database_url, "admin": True})
