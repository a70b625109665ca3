"""Event Emitter: synchronous in-process publish/subscribe for lifecycle events.

Invariants:
    - Handlers run in registration order, on the caller's thread, during emit()
    - once() handlers are removed before they run
    - A failing handler is logged and does not stop delivery to the others
"""

import logging
from collections.abc import Callable
from enum import Enum

logger = logging.getLogger(__name__)

Handler = Callable[..., object]


def _name(event: str | Enum) -> str:
    return event.value if isinstance(event, Enum) else event


class EventEmitter:
    """Named-event registry. Events are addressed by plain string or str Enum."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[tuple[Handler, bool]]] = {}

    def on(self, event: str | Enum, handler: Handler) -> "EventEmitter":
        self._handlers.setdefault(_name(event), []).append((handler, False))
        return self

    def once(self, event: str | Enum, handler: Handler) -> "EventEmitter":
        self._handlers.setdefault(_name(event), []).append((handler, True))
        return self

    def off(self, event: str | Enum, handler: Handler) -> "EventEmitter":
        name = _name(event)
        entries = self._handlers.get(name, [])
        for index, (registered, _) in enumerate(entries):
            if registered is handler or registered == handler:
                del entries[index]
                break
        if not entries:
            self._handlers.pop(name, None)
        return self

    def remove_all_listeners(self, event: str | Enum | None = None) -> None:
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(_name(event), None)

    def listener_count(self, event: str | Enum) -> int:
        return len(self._handlers.get(_name(event), []))

    def emit(self, event: str | Enum, *args: object) -> bool:
        """Call every handler of `event`. Returns False when nobody listens."""
        name = _name(event)
        entries = list(self._handlers.get(name, []))
        if not entries:
            return False

        remaining = [entry for entry in self._handlers.get(name, []) if not entry[1]]
        if remaining:
            self._handlers[name] = remaining
        else:
            self._handlers.pop(name, None)

        for handler, _ in entries:
            try:
                handler(*args)
            except Exception:
                logger.error(
                    f"Handler for '{name}' failed", exc_info=True,
                    extra={"event": name},
                )
        return True
