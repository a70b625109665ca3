"""Admin Listener: a firebase_admin listener registration backing one subscription.

Invariants:
    - Reference.listen() and ListenerRegistration.close() block: both run in worker threads
    - Events arrive on the SDK's listener thread and are handed to the event loop with
      call_soon_threadsafe; cache and callbacks are only touched on the loop
    - Events from a registration that was stopped or replaced are dropped
    - Constraints are evaluated client-side on the cached value (the SDK only listens on
      references, never on queries)
    - Listen failures and cancel/auth_revoked events go to on_error exactly once
"""

import asyncio
import logging

from firebase_admin import db, exceptions
from google.auth.exceptions import GoogleAuthError

from rtdb_bridge.core.backend_protocols import ErrorCallback, SnapshotCallback
from rtdb_bridge.core.domain_types import ListenerKind
from rtdb_bridge.core.errors import BackendError, ErrorContext
from rtdb_bridge.core.query_constraints import QueryConstraint
from rtdb_bridge.core.query_filter import apply_query
from rtdb_bridge.infrastructure.cached_listener import CachedListener

logger = logging.getLogger(__name__)

DATA_EVENTS = ("put", "patch")
FATAL_EVENTS = ("cancel", "auth_revoked")


def check_admin_query(constraints: tuple[QueryConstraint, ...], operation: str) -> None:
    if any(c.name == "orderByPriority" for c in constraints):
        raise BackendError(
            "orderByPriority is not supported by the admin backend", operation,
        )


def status_code(error: BaseException) -> int | None:
    response = getattr(error, "http_response", None)
    return getattr(response, "status_code", None)


class AdminListener(CachedListener):
    def __init__(
        self,
        reference: db.Reference,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...] = (),
    ):
        view = (lambda value: apply_query(value, constraints)) if constraints else None
        super().__init__(listener, callback, on_error, path, constraints, view)
        self._reference = reference
        self._registration: db.ListenerRegistration | None = None
        self._generation = 0
        self._active = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def running(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active or self._failed:
            return
        self._active = True
        self._generation += 1
        self._loop = asyncio.get_running_loop()
        self._spawn(self._open(self._generation))

    def stop(self) -> None:
        self._active = False
        self._generation += 1
        registration, self._registration = self._registration, None
        if registration is not None:
            self._spawn(asyncio.to_thread(registration.close))

    async def _open(self, generation: int) -> None:
        try:
            check_admin_query(self._constraints, "listen")
            registration = await asyncio.to_thread(
                self._reference.listen, lambda event: self._on_event(generation, event),
            )
        except (exceptions.FirebaseError, ValueError, GoogleAuthError) as e:
            if generation == self._generation:
                self._active = False
                self._fail(BackendError(
                    str(e), "listen", status_code(e), cause=e, context=self._context(),
                ))
            return
        except BackendError as e:
            self._active = False
            self._fail(e)
            return

        if generation != self._generation:
            await asyncio.to_thread(registration.close)
            return
        self._registration = registration

    # ─── Listener thread ─────────────────────────────────────────

    def _on_event(self, generation: int, event: db.Event) -> None:
        event_type = event.event_type
        if event_type in DATA_EVENTS:
            args = (generation, event_type, event.path, event.data)
        elif event_type in FATAL_EVENTS:
            args = (generation, event_type, None, None)
        else:
            return
        try:
            self._loop.call_soon_threadsafe(self._receive, *args)
        except RuntimeError:
            logger.debug(
                "Event loop closed, dropping listener event",
                extra={"path": self.path, "listener": self.listener.value},
            )

    # ─── Event loop ──────────────────────────────────────────────

    def _receive(self, generation: int, event_type: str, path: str | None, data: object) -> None:
        if generation != self._generation:
            return
        if event_type in FATAL_EVENTS:
            self.stop()
            message = (
                "Permission denied" if event_type == "cancel"
                else "Auth credential is no longer valid"
            )
            self._fail(BackendError(message, "listen", 401, context=self._context()))
            return
        self._apply(event_type, path or "/", data)

    def _context(self) -> ErrorContext:
        return ErrorContext(path=self.path, listener=self.listener.value)
