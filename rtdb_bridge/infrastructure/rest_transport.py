"""REST Transport: httpx client for the Realtime Database REST and streaming protocol.

Invariants:
    - One httpx.AsyncClient per transport; closed by aclose()
    - Every request is authenticated by the injected httpx.Auth flow
    - HTTP status >= 400 and transport failures are mapped to BackendError, never retried
    - Backend error messages are passed through unmodified
    - Query descriptors become REST parameters here and nowhere else

Design Decisions:
    - Writes use print=silent: the server answers 204 without echoing the payload
    - Streaming uses Accept: text/event-stream; events are parsed line by line
"""

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from urllib.parse import quote

import httpx

from rtdb_bridge.core.errors import BackendError, ErrorContext
from rtdb_bridge.core.query_constraints import (
    LIMITS,
    ORDER_FLAGS,
    RANGES,
    QueryConstraint,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]

_NO_BODY = object()

_ORDER_BY = {
    "orderByKey": "$key",
    "orderByValue": "$value",
    "orderByPriority": "$priority",
}


# ─── Authentication ──────────────────────────────────────────────

class IdTokenAuth(httpx.Auth):
    """Firebase ID token in the auth query parameter, fetched per request."""

    def __init__(self, token_provider: TokenProvider):
        self._token_provider = token_provider

    async def async_auth_flow(self, request: httpx.Request):
        token = await self._token_provider()
        request.url = request.url.copy_merge_params({"auth": token})
        yield request


# ─── Query parameters ────────────────────────────────────────────

def to_rest_params(constraints: tuple[QueryConstraint, ...]) -> dict[str, str]:
    """Translate validated constraint descriptors to REST query parameters."""
    params: dict[str, str] = {}
    for constraint in constraints:
        name = constraint.name
        if name in ORDER_FLAGS:
            params["orderBy"] = json.dumps(_ORDER_BY[name])
        elif name == "orderByChild":
            params["orderBy"] = json.dumps(constraint.args[0])
        elif name in LIMITS:
            params[name] = str(constraint.args[0])
        elif name in RANGES:
            if len(constraint.args) > 1:
                raise BackendError(
                    f'The "{name}" key argument is not supported by the REST protocol',
                    "query",
                )
            params[name] = json.dumps(constraint.args[0])

    if params and "orderBy" not in params:
        params["orderBy"] = json.dumps("$key")
    # priorities are only returned in export format
    if params.get("orderBy") == json.dumps("$priority"):
        params["format"] = "export"
    return params


# ─── Server-sent events ──────────────────────────────────────────

@dataclass(frozen=True)
class ServerSentEvent:
    event: str
    data: str


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[ServerSentEvent]:
    """Parse a text/event-stream into events (dispatched on blank lines)."""
    event = "message"
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data:
                yield ServerSentEvent(event, "\n".join(data))
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield ServerSentEvent(event, "\n".join(data))


# ─── Transport ───────────────────────────────────────────────────

def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "error" in body:
        return str(body["error"])
    return response.text


class RestTransport:
    """Authenticated JSON requests against one database URL."""

    def __init__(
        self,
        database_url: str,
        auth: httpx.Auth,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.database_url = database_url.rstrip("/")
        self._auth = auth
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    def url_for(self, path: str | None) -> str:
        segments = [quote(s, safe="") for s in (path or "").split("/") if s]
        return f"{self.database_url}/{'/'.join(segments)}.json"

    async def request(
        self,
        method: str,
        path: str | None,
        *,
        operation: str,
        params: dict | None = None,
        body: object = _NO_BODY,
        timeout: float | None = None,
    ) -> object:
        """Send one request, return the decoded JSON body (None for empty bodies)."""
        headers: dict[str, str] = {}
        kwargs: dict = {"params": dict(params or {}), "headers": headers, "auth": self._auth}
        if body is not _NO_BODY:
            kwargs["content"] = json.dumps(body)
            headers["Content-Type"] = "application/json"
        if timeout is not None:
            kwargs["timeout"] = timeout

        context = ErrorContext(path=path, method=operation)
        try:
            response = await self._client.request(method, self.url_for(path), **kwargs)
        except httpx.TransportError as e:
            logger.warning(
                f"Transport error during {operation}: {e}",
                extra={"path": path, "operation": operation},
            )
            raise BackendError(str(e) or type(e).__name__, operation, cause=e, context=context)

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(
                f"Backend rejected {operation}: {message}",
                extra={"path": path, "operation": operation, "status_code": response.status_code},
            )
            raise BackendError(message, operation, response.status_code, context=context)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(
                f"Invalid JSON in response: {e}", operation, response.status_code,
                cause=e, context=context,
            )

    @asynccontextmanager
    async def stream(
        self, path: str | None, params: dict | None = None,
    ) -> AsyncIterator[AsyncIterator[ServerSentEvent]]:
        """Open a streaming request and yield its parsed events."""
        headers = {"Accept": "text/event-stream"}
        context = ErrorContext(path=path, method="listen")

        try:
            async with self._client.stream(
                "GET", self.url_for(path), params=dict(params or {}), headers=headers,
                auth=self._auth,
                timeout=httpx.Timeout(None, connect=10.0), follow_redirects=True,
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise BackendError(
                        _error_message(response), "listen", response.status_code,
                        context=context,
                    )
                yield iter_sse(response.aiter_lines())
        except httpx.TransportError as e:
            raise BackendError(str(e) or type(e).__name__, "listen", cause=e, context=context)

    async def aclose(self) -> None:
        await self._client.aclose()
