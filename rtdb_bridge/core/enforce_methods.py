"""Method & Argument Enforcement: validates every non-path input of the query surface.

Invariants:
    - All functions are PURE: no IO, no side effects
    - Raise ValidationError naming the offending field; never return error values
    - Priority is None or an integer > 0; numeric strings are coerced
    - Each write method has a fixed positional shape; extra arguments are rejected

Design Decisions:
    - Method names accepted as enum members or their wire strings ("setPriority")
    - Argument shapes live in one table so write and on-disconnect share the unpacking
"""

import inspect
from collections.abc import Callable, Mapping, Sequence
from typing import NamedTuple

from rtdb_bridge.core.domain_types import (
    ListenerKind,
    OnDisconnectMethod,
    Priority,
    WriteMethod,
)
from rtdb_bridge.core.errors import ValidationError

_MISSING = object()


class WriteArgs(NamedTuple):
    value: object
    priority: Priority | None


# Positional names per method; "value?" marks an optional trailing argument.
_WRITE_SHAPES: dict[str, tuple[str, ...]] = {
    WriteMethod.SET.value: ("value",),
    WriteMethod.PUSH.value: ("value?",),
    WriteMethod.UPDATE.value: ("value",),
    WriteMethod.REMOVE.value: ("value?",),
    WriteMethod.SET_PRIORITY.value: ("priority",),
    WriteMethod.SET_WITH_PRIORITY.value: ("value", "priority"),
}

_ON_DISCONNECT_SHAPES: dict[str, tuple[str, ...]] = {
    OnDisconnectMethod.CANCEL.value: (),
    OnDisconnectMethod.SET.value: ("value",),
    OnDisconnectMethod.UPDATE.value: ("value",),
    OnDisconnectMethod.REMOVE.value: (),
    OnDisconnectMethod.SET_WITH_PRIORITY.value: ("value", "priority"),
}


def _choices(enum_cls) -> str:
    return ", ".join(m.value for m in enum_cls)


def check_write_method(method: object) -> WriteMethod:
    """Validate a write method name."""
    if method is None:
        raise ValidationError("Query Method does not exist!", "method")
    if not isinstance(method, str):
        raise ValidationError("Query Method must be a string!", "method")
    try:
        return WriteMethod(method)
    except ValueError:
        raise ValidationError(
            f"Query Method must be one of {_choices(WriteMethod)}.", "method",
        ) from None


def check_on_disconnect_method(method: object) -> OnDisconnectMethod:
    """Validate an on-disconnect method name."""
    if method is None:
        raise ValidationError("On Disconnect Query Method does not exist!", "method")
    if not isinstance(method, str):
        raise ValidationError("On Disconnect Query Method must be a string!", "method")
    try:
        return OnDisconnectMethod(method)
    except ValueError:
        raise ValidationError(
            f"On Disconnect Query Method must be one of {_choices(OnDisconnectMethod)}.",
            "method",
        ) from None


def check_listener(listener: object) -> ListenerKind:
    """Validate a listener kind."""
    if isinstance(listener, str):
        try:
            return ListenerKind(listener)
        except ValueError:
            pass
    raise ValidationError(f'The listener "{listener}" is invalid!', "listener")


def check_callback(callback: object) -> Callable:
    """Callback must accept (snapshot, previous_child_key)."""
    if not callable(callback):
        raise ValidationError("The callback must be a function", "callback")
    try:
        inspect.signature(callback).bind(None, None)
    except TypeError:
        raise ValidationError(
            "The callback must accept two arguments (snapshot, previous_child_key)",
            "callback",
        ) from None
    except ValueError:
        # builtins without an introspectable signature
        pass
    return callback


def check_priority(priority: object = _MISSING) -> Priority | None:
    """Validate a priority. None passes through; positive integers and their strings pass."""
    if priority is None:
        return None
    if priority is _MISSING:
        raise ValidationError("The Priority does not exist!", "priority")

    number: object = priority
    if isinstance(priority, str):
        number = _parse_number(priority)

    if isinstance(number, bool):
        number = None
    if isinstance(number, float) and number.is_integer():
        number = int(number)
    if isinstance(number, int) and not isinstance(number, bool) and number > 0:
        return Priority(number)

    raise ValidationError("The priority must be an INTEGER > 0!", "priority")


def _parse_number(text: str) -> int | float | None:
    text = text.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return None


def check_update_value(value: object, field: str = "value") -> Mapping:
    """update() payloads must be a mapping."""
    if isinstance(value, Mapping):
        return value
    raise ValidationError(
        'The value to write must be an object with "update" query.', field,
    )


def split_write_args(method: WriteMethod, args: Sequence) -> WriteArgs:
    """Unpack positional args of a write method into (value, priority)."""
    return _split(_WRITE_SHAPES[method.value], method.value, args)


def split_on_disconnect_args(method: OnDisconnectMethod, args: Sequence) -> WriteArgs:
    """Unpack positional args of an on-disconnect method into (value, priority)."""
    return _split(_ON_DISCONNECT_SHAPES[method.value], method.value, args)


def _split(shape: tuple[str, ...], method: str, args: Sequence) -> WriteArgs:
    if len(args) > len(shape):
        raise ValidationError(
            f'"{method}" takes at most {len(shape)} argument(s), got {len(args)}.',
            "args",
        )

    values: dict[str, object] = {}
    for index, name in enumerate(shape):
        optional = name.endswith("?")
        name = name.rstrip("?")
        if index < len(args):
            values[name] = args[index]
        elif optional:
            values[name] = None
        else:
            values[name] = _MISSING

    value = values.get("value")
    if value is _MISSING:
        raise ValidationError(f'"{method}" requires a value to write.', "value")
    if method == WriteMethod.UPDATE.value:
        check_update_value(value)

    priority = None
    if "priority" in values:
        priority = check_priority(values["priority"])

    return WriteArgs(value, priority)
