"""Admin database tests: Admin SDK calls, listener registrations, unsubscription handles.

Tests cover:
    - connect() initializes a dedicated App; close() deletes it
    - Reads run as SDK queries when expressible, otherwise filtered locally
    - orderByPriority rejected; SDK failures mapped to BackendError with the HTTP status
    - Writes map to set/push/update/delete, including the None and priority shapes
    - listen() returns a (listener, callback) pair; events from the listener thread reach
      the callback; unlisten() closes the registration
    - Several registrations of one callback are released one at a time
    - cancel events and listen failures reach the error callback
    - Liveness and on-disconnect over the SDK
"""

import asyncio
from types import SimpleNamespace

import pytest
from firebase_admin import exceptions

from rtdb_bridge.core.domain_types import CONNECTED_SIGNAL_PATH, ListenerKind
from rtdb_bridge.core.errors import BackendError, RTDBError, ValidationError
from rtdb_bridge.core.query_constraints import parse_query_constraints
from rtdb_bridge.infrastructure.admin_database import AdminDatabase
from tests.infrastructure.conftest import DATABASE_URL


def _ignore_error(error):
    pass


def _denied():
    return exceptions.FirebaseError(
        exceptions.PERMISSION_DENIED, "Permission denied",
        http_response=SimpleNamespace(status_code=401),
    )


async def _wait_for(predicate, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


# ─── App lifecycle ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_connect_initializes_named_app_and_close_deletes_it(store, settings, monkeypatch):
    initialized = []

    def initialize_app(credential, options, name):
        initialized.append((credential, options, name))
        return SimpleNamespace(name=name, options=options)

    monkeypatch.setattr(
        "rtdb_bridge.infrastructure.admin_database.firebase_admin.initialize_app", initialize_app,
    )
    credential = object()
    database = AdminDatabase.connect(DATABASE_URL, credential, settings)
    other = AdminDatabase.connect(DATABASE_URL, credential, settings)

    (used, options, name), (_, _, other_name) = initialized
    assert used is credential
    assert options == {"databaseURL": DATABASE_URL, "httpTimeout": settings.request_timeout_seconds}
    assert name.startswith("rtdb-bridge-") and name != other_name
    assert database.url == DATABASE_URL

    await database.close()
    await other.close()
    assert [app.name for app in store.deleted_apps] == [name, other_name]


def test_connect_failure_is_rtdb_error(settings, monkeypatch):
    def initialize_app(credential, options, name):
        raise ValueError("The default Firebase app already exists.")

    monkeypatch.setattr(
        "rtdb_bridge.infrastructure.admin_database.firebase_admin.initialize_app", initialize_app,
    )
    with pytest.raises(RTDBError, match="already exists"):
        AdminDatabase.connect(DATABASE_URL, None, settings, name="[DEFAULT]")


@pytest.mark.asyncio
async def test_references_bound_to_own_app(admin_database, store, admin_app):
    await admin_database.get(None)
    assert store.calls == [("/", "get", (False,))]
    assert store.apps == [admin_app]


# ─── Reads ───────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_server_query_for_expressible_constraints(admin_database, store):
    store.values["scores"] = {"a": 3, "b": 1, "c": 2}
    snapshot = await admin_database.get(
        "scores", parse_query_constraints({"orderByValue": None, "startAt": {"value": 1},
                                           "limitToFirst": 2}),
    )
    assert store.calls == [(
        "scores", "query",
        ((("order_by_value",), ("start_at", 1), ("limit_to_first", 2)),),
    )]
    assert [child.key for child in snapshot.children()] == ["b", "c", "a"]


@pytest.mark.asyncio
async def test_range_without_order_uses_key_order(admin_database, store):
    await admin_database.get("scores", parse_query_constraints({"equalTo": {"value": "b"}}))
    assert store.calls_for("query")[0][2] == ((("order_by_key",), ("equal_to", "b")),)


@pytest.mark.asyncio
async def test_exclusive_range_filtered_locally(admin_database, store):
    store.values["scores"] = {"a": {"n": 1}, "b": {"n": 2}, "c": {"n": 3}}
    snapshot = await admin_database.get(
        "scores", parse_query_constraints({"orderByChild": "n", "startAfter": {"value": 1}}),
    )
    assert store.calls == [("scores", "get", (False,))]
    assert snapshot.val() == {"b": {"n": 2}, "c": {"n": 3}}


@pytest.mark.asyncio
async def test_key_argument_filtered_locally(admin_database, store):
    store.values["scores"] = {"a": {"n": 1}, "b": {"n": 1}, "c": {"n": 2}}
    snapshot = await admin_database.get(
        "scores", parse_query_constraints({"orderByChild": "n", "startAt": {"value": 1, "key": "b"}}),
    )
    assert [child.key for child in snapshot.children()] == ["b", "c"]


@pytest.mark.asyncio
async def test_null_range_value_filtered_locally(admin_database, store):
    store.values["scores"] = {"a": {"t": 1}, "b": {"n": 1}}
    snapshot = await admin_database.get(
        "scores", parse_query_constraints({"orderByChild": "n", "endAt": {"value": None}}),
    )
    assert not store.calls_for("query")
    assert snapshot.val() == {"a": {"t": 1}}


@pytest.mark.asyncio
async def test_order_by_priority_rejected(admin_database, store):
    with pytest.raises(BackendError, match="orderByPriority") as exc:
        await admin_database.get("scores", parse_query_constraints({"orderByPriority": None}))
    assert exc.value.operation == "get"
    assert store.calls == []


@pytest.mark.asyncio
async def test_sdk_error_mapped_with_status(admin_database, store):
    store.errors[("secret", "get")] = _denied()
    with pytest.raises(BackendError, match="Permission denied") as exc:
        await admin_database.get("secret")
    assert exc.value.status_code == 401
    assert exc.value.is_permission_denied
    assert isinstance(exc.value.cause, exceptions.FirebaseError)


@pytest.mark.asyncio
async def test_transport_error_has_no_status(admin_database, store):
    store.errors[("a", "set")] = exceptions.UnavailableError("connection refused")
    with pytest.raises(BackendError) as exc:
        await admin_database.set("a", 1)
    assert exc.value.status_code is None


# ─── Writes ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_writes_map_to_sdk_calls(admin_database, store):
    await admin_database.set("users/alice", {"age": 3})
    await admin_database.update("users/alice", {"age": 4})
    await admin_database.remove("users/bob")
    assert store.calls == [
        ("users/alice", "set", ({"age": 3},)),
        ("users/alice", "update", ({"age": 4},)),
        ("users/bob", "delete", ()),
    ]


@pytest.mark.asyncio
async def test_set_none_deletes(admin_database, store):
    await admin_database.set("users/alice", None)
    assert store.calls == [("users/alice", "delete", ())]


@pytest.mark.asyncio
async def test_empty_update_is_noop(admin_database, store):
    await admin_database.update("users/alice", {})
    assert store.calls == []


@pytest.mark.asyncio
async def test_push_returns_server_key(admin_database, store):
    assert await admin_database.push("items", {"n": 1}) == "-Npushed1"
    assert await admin_database.push("items", None) == "-Npushed2"
    assert [call[2] for call in store.calls_for("push")] == [({"n": 1},), ({},)]


@pytest.mark.asyncio
async def test_priority_writes(admin_database, store):
    await admin_database.set_priority("users/alice", 3)
    await admin_database.set_with_priority("a", "text", 2)
    await admin_database.set_with_priority("b", {"x": 1}, 5)
    assert store.calls == [
        ("users/alice", "update", ({".priority": 3},)),
        ("a", "set", ({".value": "text", ".priority": 2},)),
        ("b", "set", ({"x": 1, ".priority": 5},)),
    ]


# ─── Listeners ───────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_listen_returns_pair_and_unlisten_closes_registration(admin_database, store):
    seen = []

    def callback(snapshot, previous_key):
        seen.append(snapshot.val())

    handle = admin_database.listen(ListenerKind.VALUE, callback, _ignore_error, "rooms", ())
    assert handle == (ListenerKind.VALUE, callback)
    await _wait_for(lambda: store.open_registrations("rooms"))

    registration = store.open_registrations("rooms")[0]
    registration.emit("put", "/", {"a": 1})
    registration.emit("patch", "/", {"b": 2})
    await _wait_for(lambda: len(seen) == 2)
    assert seen == [{"a": 1}, {"a": 1, "b": 2}]

    admin_database.unlisten(ListenerKind.VALUE, handle, "rooms")
    await _wait_for(lambda: registration.closed)
    registration.emit("put", "/", {"c": 3})
    await asyncio.sleep(0.02)
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_events_from_listener_thread_reach_loop(admin_database, store):
    seen = []
    admin_database.listen(
        ListenerKind.CHILD_ADDED, lambda snap, prev: seen.append((snap.key, prev)),
        _ignore_error, "rooms", (),
    )
    await _wait_for(lambda: store.open_registrations("rooms"))
    registration = store.open_registrations("rooms")[0]
    await asyncio.to_thread(registration.emit, "put", "/", {"b": 2, "a": 1})
    await _wait_for(lambda: len(seen) == 2)
    assert seen == [("a", None), ("b", "a")]


@pytest.mark.asyncio
async def test_listener_constraints_evaluated_locally(admin_database, store):
    seen = []
    admin_database.listen(
        ListenerKind.VALUE, lambda snap, prev: seen.append(snap.val()), _ignore_error, "scores",
        parse_query_constraints({"orderByValue": None, "limitToLast": 1}),
    )
    await _wait_for(lambda: store.open_registrations("scores"))
    registration = store.open_registrations("scores")[0]
    registration.emit("put", "/", {"a": 3, "b": 1})
    registration.emit("put", "/b", 0)
    registration.emit("put", "/c", 9)
    await _wait_for(lambda: len(seen) == 2)
    assert seen == [{"a": 3}, {"c": 9}]


@pytest.mark.asyncio
async def test_keep_alive_events_ignored(admin_database, store):
    seen = []
    admin_database.listen(
        ListenerKind.VALUE, lambda snap, prev: seen.append(snap.val()), _ignore_error, "rooms", (),
    )
    await _wait_for(lambda: store.open_registrations("rooms"))
    store.open_registrations("rooms")[0].emit("keep-alive")
    await asyncio.sleep(0.02)
    assert seen == []


@pytest.mark.asyncio
async def test_cancel_event_reaches_error_callback(admin_database, store):
    errors = []
    admin_database.listen(ListenerKind.VALUE, lambda snap, prev: None, errors.append, "rooms", ())
    await _wait_for(lambda: store.open_registrations("rooms"))
    registration = store.open_registrations("rooms")[0]
    registration.emit("cancel")
    await _wait_for(lambda: errors)
    assert isinstance(errors[0], BackendError)
    assert errors[0].is_permission_denied
    await _wait_for(lambda: registration.closed)
    assert len(errors) == 1


@pytest.mark.asyncio
async def test_listen_failure_reaches_error_callback(admin_database, store):
    store.errors[("secret", "listen")] = _denied()
    errors = []
    admin_database.listen(ListenerKind.VALUE, lambda snap, prev: None, errors.append, "secret", ())
    await _wait_for(lambda: errors)
    assert errors[0].status_code == 401
    assert errors[0].operation == "listen"


@pytest.mark.asyncio
async def test_priority_listener_rejected(admin_database, store):
    errors = []
    admin_database.listen(
        ListenerKind.VALUE, lambda snap, prev: None, errors.append, "rooms",
        parse_query_constraints({"orderByPriority": None}),
    )
    await _wait_for(lambda: errors)
    assert "orderByPriority" in errors[0].message
    assert store.calls_for("listen") == []


@pytest.mark.asyncio
async def test_go_offline_closes_and_go_online_reopens(admin_database, store):
    admin_database.listen(ListenerKind.VALUE, lambda snap, prev: None, _ignore_error, "rooms", ())
    await _wait_for(lambda: store.open_registrations("rooms"))
    first = store.open_registrations("rooms")[0]

    admin_database.go_offline()
    await _wait_for(lambda: first.closed)
    admin_database.go_online()
    await _wait_for(lambda: store.open_registrations("rooms"))
    assert len(store.calls_for("listen")) == 2


@pytest.mark.asyncio
async def test_stop_before_open_closes_late_registration(admin_database, store):
    handle = admin_database.listen(
        ListenerKind.VALUE, lambda snap, prev: None, _ignore_error, "rooms", (),
    )
    admin_database.unlisten(ListenerKind.VALUE, handle, "rooms")
    await _wait_for(lambda: store.registrations and store.registrations[0].closed)
    assert store.open_registrations("rooms") == []


@pytest.mark.asyncio
async def test_same_callback_released_one_registration_at_a_time(admin_database, store):
    def callback(snapshot, previous_key):
        pass

    first = admin_database.listen(ListenerKind.VALUE, callback, _ignore_error, "rooms", ())
    second = admin_database.listen(ListenerKind.VALUE, callback, _ignore_error, "rooms", ())
    assert len(admin_database._registry[("rooms", ListenerKind.VALUE)]) == 2

    admin_database.unlisten(ListenerKind.VALUE, first, "rooms")
    assert len(admin_database._registry[("rooms", ListenerKind.VALUE)]) == 1
    admin_database.unlisten(ListenerKind.VALUE, second, "rooms")
    assert ("rooms", ListenerKind.VALUE) not in admin_database._registry


@pytest.mark.asyncio
async def test_unlisten_unknown_registration_is_harmless(admin_database):
    def callback(snapshot, previous_key):
        pass

    admin_database.unlisten(ListenerKind.VALUE, (ListenerKind.VALUE, callback), "nowhere")


@pytest.mark.asyncio
async def test_none_handle_is_noop(admin_database):
    admin_database.unlisten(ListenerKind.VALUE, None, "rooms")


@pytest.mark.asyncio
@pytest.mark.parametrize("handle", [lambda: None, ("value",), ("value", "not callable"), "x"])
async def test_malformed_handle_rejected(admin_database, handle):
    with pytest.raises(ValidationError) as exc:
        admin_database.unlisten(ListenerKind.VALUE, handle, "rooms")
    assert exc.value.field == "handle"


@pytest.mark.asyncio
async def test_handle_for_other_listener_rejected(admin_database):
    def callback(snapshot, previous_key):
        pass

    with pytest.raises(ValidationError, match="child_added"):
        admin_database.unlisten(
            ListenerKind.VALUE, (ListenerKind.CHILD_ADDED, callback), "rooms",
        )


# ─── Liveness & on-disconnect ────────────────────────────────────

@pytest.mark.asyncio
async def test_connected_path_served_by_shallow_get(admin_database, store):
    seen = []
    admin_database.listen(
        ListenerKind.VALUE, lambda snap, prev: seen.append(snap.val()), _ignore_error,
        CONNECTED_SIGNAL_PATH, (),
    )
    await _wait_for(lambda: seen == [False, True])
    assert ("__liveness", "get", (True,)) in store.calls
    assert store.calls_for("listen") == []


@pytest.mark.asyncio
async def test_rejected_liveness_request_still_counts_as_connected(admin_database, store):
    store.errors[("__liveness", "get")] = _denied()
    assert await admin_database._check_reachable() is True


@pytest.mark.asyncio
async def test_unreachable_server_is_disconnected(admin_database, store):
    store.errors[("__liveness", "get")] = exceptions.UnavailableError("connection refused")
    assert await admin_database._check_reachable() is False


@pytest.mark.asyncio
async def test_on_disconnect_flushed_on_close(store, admin_app, settings):
    database = AdminDatabase(admin_app, settings)
    await database.on_disconnect("presence/alice").set_with_priority("offline", 1)
    await database.on_disconnect("sessions/alice").remove()
    assert store.calls == []

    await database.close()
    assert store.calls == [
        ("presence/alice", "set", ({".value": "offline", ".priority": 1},)),
        ("sessions/alice", "delete", ()),
    ]
    assert store.deleted_apps == [admin_app]
