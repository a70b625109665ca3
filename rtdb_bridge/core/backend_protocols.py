"""Boundary Protocols: contracts between the query surface and the database backends.

Invariants:
    - Core and services only talk to a backend through RealtimeDatabase
    - Exactly one RealtimeDatabase exists per session, chosen by the session's admin flag
    - Unsubscription handles are opaque: whatever listen() returns goes back to unlisten()
    - Backend failures surface as core.errors.BackendError

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no base class
    - Write methods are async (they do IO); listen/unlisten are sync and schedule their IO
"""

from collections.abc import Callable, Mapping
from typing import Any, Protocol, Union

from rtdb_bridge.core.domain_types import ListenerKind, Priority
from rtdb_bridge.core.query_constraints import QueryConstraint
from rtdb_bridge.core.snapshot import DataSnapshot

SnapshotCallback = Callable[[DataSnapshot, Union[str, None]], Any]
ErrorCallback = Callable[[BaseException], Any]

# Client backend: zero-argument function. Admin backend: (listener, callback) pair.
Unsubscription = Union[Callable[[], None], tuple[ListenerKind, SnapshotCallback]]


class OnDisconnectLike(Protocol):
    """Mutations the backend applies to one path when the connection drops."""
    async def cancel(self) -> None: ...
    async def set(self, value: object) -> None: ...
    async def update(self, value: Mapping) -> None: ...
    async def remove(self) -> None: ...
    async def set_with_priority(self, value: object, priority: Priority | None) -> None: ...


class RealtimeDatabase(Protocol):
    """Capability interface implemented by the admin and client backends."""

    @property
    def url(self) -> str: ...

    async def get(
        self, path: str | None, constraints: tuple[QueryConstraint, ...],
    ) -> DataSnapshot: ...

    async def set(self, path: str, value: object) -> None: ...
    async def push(self, path: str, value: object) -> str: ...
    async def update(self, path: str, value: Mapping) -> None: ...
    async def remove(self, path: str) -> None: ...
    async def set_priority(self, path: str, priority: Priority | None) -> None: ...
    async def set_with_priority(
        self, path: str, value: object, priority: Priority | None,
    ) -> None: ...

    def on_disconnect(self, path: str) -> OnDisconnectLike: ...

    def listen(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...],
    ) -> Unsubscription: ...

    def unlisten(
        self, listener: ListenerKind, handle: Unsubscription, path: str | None,
    ) -> None: ...

    def go_online(self) -> None: ...
    def go_offline(self) -> None: ...
    async def close(self) -> None: ...


class SessionLike(Protocol):
    """What the core consumes from the session collaborator."""
    admin: bool | None
    client_initialised: bool
    database_url: str
    # firebase_admin credential of an admin session; None selects Application Default Credentials
    credential: Any

    async def get_token(self) -> str:
        """Firebase ID token (client sessions)."""
        ...

    def on(self, event: str, handler: Callable[..., object]) -> object: ...
    def once(self, event: str, handler: Callable[..., object]) -> object: ...
    def off(self, event: str, handler: Callable[..., object]) -> object: ...
