"""Client Database: rules-scoped backend over the REST protocol, authenticated with an ID token.

Invariants:
    - Requests carry the ID token in the "auth" query parameter
    - Reads and writes are single requests: no retry, failures raise BackendError
    - push() is a POST: the server allocates the child key and returns it as "name"
    - listen() returns a zero-argument unsubscribe function; calling it twice is harmless
"""

import logging
from collections.abc import Callable, Mapping

from rtdb_bridge.config import Settings
from rtdb_bridge.core.backend_protocols import ErrorCallback, SnapshotCallback
from rtdb_bridge.core.domain_types import ListenerKind, Priority
from rtdb_bridge.core.enforce_path import join_path
from rtdb_bridge.core.errors import BackendError, ClientError, ValidationError
from rtdb_bridge.core.ordering import PRIORITY_KEY
from rtdb_bridge.core.query_constraints import QueryConstraint, order_spec
from rtdb_bridge.core.snapshot import DataSnapshot
from rtdb_bridge.infrastructure.listener_stream import ListenerStream
from rtdb_bridge.infrastructure.managed_database import ManagedDatabase, priority_payload
from rtdb_bridge.infrastructure.rest_transport import (
    IdTokenAuth,
    RestTransport,
    TokenProvider,
    to_rest_params,
)

logger = logging.getLogger(__name__)

_SILENT = {"print": "silent"}


class ClientDatabase(ManagedDatabase):
    admin = False

    def __init__(self, transport: RestTransport, settings: Settings):
        super().__init__(settings)
        self._transport = transport

    @classmethod
    def connect(
        cls, database_url: str, token_provider: TokenProvider, settings: Settings,
    ) -> "ClientDatabase":
        transport = RestTransport(
            database_url, IdTokenAuth(token_provider), settings.request_timeout_seconds,
        )
        return cls(transport, settings)

    @property
    def url(self) -> str:
        return self._transport.database_url

    # ─── Reads & writes ──────────────────────────────────────────

    async def get(
        self, path: str | None, constraints: tuple[QueryConstraint, ...] = (),
    ) -> DataSnapshot:
        value = await self._transport.request(
            "GET", path, operation="get", params=to_rest_params(constraints),
        )
        return DataSnapshot(path, value, order=order_spec(constraints))

    async def set(self, path: str, value: object) -> None:
        await self._transport.request("PUT", path, operation="set", params=_SILENT, body=value)

    async def push(self, path: str, value: object = None) -> str:
        result = await self._transport.request("POST", path, operation="push", body=value)
        if not isinstance(result, Mapping) or not isinstance(result.get("name"), str):
            raise BackendError(f"Push response has no key: {result!r}", "push")
        return result["name"]

    async def update(self, path: str, value: Mapping) -> None:
        await self._transport.request(
            "PATCH", path, operation="update", params=_SILENT, body=dict(value),
        )

    async def remove(self, path: str) -> None:
        await self._transport.request("DELETE", path, operation="remove", params=_SILENT)

    async def set_priority(self, path: str, priority: Priority | None) -> None:
        await self._transport.request(
            "PUT", join_path(path, PRIORITY_KEY), operation="setPriority",
            params=_SILENT, body=priority,
        )

    async def set_with_priority(
        self, path: str, value: object, priority: Priority | None,
    ) -> None:
        await self._transport.request(
            "PUT", path, operation="setWithPriority", params=_SILENT,
            body=priority_payload(value, priority),
        )

    # ─── Listeners ───────────────────────────────────────────────

    def _open_listener(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...],
    ) -> ListenerStream:
        return ListenerStream(self._transport, listener, callback, on_error, path, constraints)

    def listen(
        self,
        listener: ListenerKind,
        callback: SnapshotCallback,
        on_error: ErrorCallback,
        path: str | None,
        constraints: tuple[QueryConstraint, ...] = (),
    ) -> Callable[[], None]:
        registration = self._subscribe(listener, callback, on_error, path, constraints)

        def unsubscribe() -> None:
            self._release(registration)

        return unsubscribe

    def unlisten(
        self, listener: ListenerKind, handle: object, path: str | None,
    ) -> None:
        if handle is None:
            return
        if not callable(handle):
            raise ValidationError("Client unsubscription handle must be a function!", "handle")
        handle()

    # ─── Connection control ──────────────────────────────────────

    async def _check_reachable(self) -> bool:
        try:
            await self._transport.request(
                "GET", self._settings.liveness_check_path, operation="liveness",
                params={"shallow": "true"},
                timeout=self._settings.liveness_check_timeout_seconds,
            )
        except BackendError as e:
            return e.status_code is not None
        except ClientError as e:
            logger.warning(f"Liveness check has no credentials: {e.message}")
            return False
        return True

    async def _close_backend(self) -> None:
        await self._transport.aclose()
