"""Method enforcement tests: write/on-disconnect methods, listeners, callbacks, priorities.

Tests cover:
    - Enumerated inputs accept wire names and reject everything else
    - Priority round-trip: positive ints and their strings, None passes, rest rejected
    - Positional argument shapes per method (value, priority)
    - update() payloads must be mappings
    - Callbacks must accept (snapshot, previous_child_key)
"""

import pytest

from rtdb_bridge.core.domain_types import ListenerKind, OnDisconnectMethod, WriteMethod
from rtdb_bridge.core.enforce_methods import (
    check_callback,
    check_listener,
    check_on_disconnect_method,
    check_priority,
    check_write_method,
    split_on_disconnect_args,
    split_write_args,
)
from rtdb_bridge.core.errors import ValidationError


# --- Methods & listeners -------------------------------------------------------

@pytest.mark.parametrize("method", [m.value for m in WriteMethod])
def test_write_methods_accepted(method):
    assert check_write_method(method) is WriteMethod(method)


def test_write_method_enum_member_accepted():
    assert check_write_method(WriteMethod.UPDATE) is WriteMethod.UPDATE


@pytest.mark.parametrize("method", ["transaction", "SET", "", "get"])
def test_unknown_write_method_rejected(method):
    with pytest.raises(ValidationError) as exc:
        check_write_method(method)
    assert exc.value.field == "method"


def test_missing_write_method_rejected():
    with pytest.raises(ValidationError, match="does not exist"):
        check_write_method(None)


def test_non_string_write_method_rejected():
    with pytest.raises(ValidationError):
        check_write_method(3)


@pytest.mark.parametrize("method", [m.value for m in OnDisconnectMethod])
def test_on_disconnect_methods_accepted(method):
    assert check_on_disconnect_method(method) is OnDisconnectMethod(method)


def test_push_is_not_an_on_disconnect_method():
    with pytest.raises(ValidationError):
        check_on_disconnect_method("push")


@pytest.mark.parametrize("listener", [k.value for k in ListenerKind])
def test_listeners_accepted(listener):
    assert check_listener(listener) is ListenerKind(listener)


def test_unknown_listener_rejected():
    with pytest.raises(ValidationError, match='"child_updated" is invalid'):
        check_listener("child_updated")


# --- Callbacks -----------------------------------------------------------------

def test_two_argument_callback_accepted():
    def callback(snapshot, previous_key):
        pass

    assert check_callback(callback) is callback


def test_callback_with_optional_previous_key_accepted():
    def callback(snapshot, previous_key=None):
        pass

    assert check_callback(callback) is callback


def test_variadic_callback_accepted():
    def callback(*args):
        pass

    assert check_callback(callback) is callback


def test_non_callable_rejected():
    with pytest.raises(ValidationError, match="must be a function"):
        check_callback("not a function")


def test_zero_argument_callback_rejected():
    with pytest.raises(ValidationError) as exc:
        check_callback(lambda: None)
    assert exc.value.field == "callback"


# --- Priority ------------------------------------------------------------------

@pytest.mark.parametrize("n", [1, 2, 7, 100, 2 ** 31])
def test_priority_round_trip(n):
    assert check_priority(n) == n
    assert check_priority(str(n)) == n


def test_priority_none_passes():
    assert check_priority(None) is None


def test_integral_float_coerced():
    assert check_priority(3.0) == 3
    assert isinstance(check_priority(3.0), int)


@pytest.mark.parametrize("priority", [0, -1, "abc", "0", "-5", 1.5, "2.5", True, False, "", [], {}])
def test_invalid_priority_rejected(priority):
    with pytest.raises(ValidationError, match="INTEGER > 0"):
        check_priority(priority)


def test_missing_priority_rejected_with_distinct_message():
    with pytest.raises(ValidationError, match="does not exist"):
        check_priority()


# --- Argument shapes -----------------------------------------------------------

def test_set_takes_value():
    assert split_write_args(WriteMethod.SET, ["v"]) == ("v", None)


def test_set_requires_value():
    with pytest.raises(ValidationError) as exc:
        split_write_args(WriteMethod.SET, [])
    assert exc.value.field == "value"


def test_push_value_optional():
    assert split_write_args(WriteMethod.PUSH, []) == (None, None)


def test_remove_takes_nothing_else():
    assert split_write_args(WriteMethod.REMOVE, []) == (None, None)


@pytest.mark.parametrize("value", ["text", 1, None, True, ["a"]])
def test_update_rejects_non_mapping(value):
    with pytest.raises(ValidationError, match='"update"'):
        split_write_args(WriteMethod.UPDATE, [value])


def test_update_accepts_mapping():
    assert split_write_args(WriteMethod.UPDATE, [{"a": 1}]).value == {"a": 1}


def test_set_priority_reads_first_argument():
    assert split_write_args(WriteMethod.SET_PRIORITY, ["4"]) == (None, 4)


def test_set_priority_requires_priority():
    with pytest.raises(ValidationError, match="does not exist"):
        split_write_args(WriteMethod.SET_PRIORITY, [])


def test_set_with_priority_validates_priority():
    assert split_write_args(WriteMethod.SET_WITH_PRIORITY, ["v", 2]) == ("v", 2)
    with pytest.raises(ValidationError):
        split_write_args(WriteMethod.SET_WITH_PRIORITY, ["v", 0])


def test_too_many_arguments_rejected():
    with pytest.raises(ValidationError) as exc:
        split_write_args(WriteMethod.SET, ["a", "b"])
    assert exc.value.field == "args"


def test_on_disconnect_cancel_takes_no_arguments():
    assert split_on_disconnect_args(OnDisconnectMethod.CANCEL, []) == (None, None)
    with pytest.raises(ValidationError):
        split_on_disconnect_args(OnDisconnectMethod.CANCEL, ["x"])


def test_on_disconnect_update_requires_mapping():
    with pytest.raises(ValidationError):
        split_on_disconnect_args(OnDisconnectMethod.UPDATE, ["x"])
