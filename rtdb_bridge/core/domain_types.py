"""Domain Types: enums and value types shared by the query engine and connection tracking.

Invariants:
    - Every enumerated input (listener, write method, on-disconnect method) is a str Enum
      whose values are the wire names callers pass in
    - ConnectionState starts at DISCONNECTED and is only mutated by services.connection
    - CONNECTED_SIGNAL_PATH is the single source of truth for the reserved liveness path

Design Decisions:
    - NewType over wrapper classes for priorities
    - str Enums: callers may pass either the enum member or its plain string value
"""

from enum import Enum
from typing import NewType


# ─── Value Types ─────────────────────────────────────────────────

Priority = NewType("Priority", int)            # > 0

CONNECTED_SIGNAL_PATH = ".info/connected"
DISCONNECT_TIMEOUT_SECONDS: float = 30.0


# ─── Enums ───────────────────────────────────────────────────────

class ListenerKind(str, Enum):
    """Change-notification channels a subscription can attach to."""
    VALUE = "value"
    CHILD_ADDED = "child_added"
    CHILD_CHANGED = "child_changed"
    CHILD_MOVED = "child_moved"
    CHILD_REMOVED = "child_removed"


class WriteMethod(str, Enum):
    """Mutations accepted by do_write_query."""
    SET = "set"
    PUSH = "push"
    UPDATE = "update"
    REMOVE = "remove"
    SET_PRIORITY = "setPriority"
    SET_WITH_PRIORITY = "setWithPriority"


class OnDisconnectMethod(str, Enum):
    """Mutations that can be scheduled for execution when the connection drops."""
    CANCEL = "cancel"
    SET = "set"
    UPDATE = "update"
    REMOVE = "remove"
    SET_WITH_PRIORITY = "setWithPriority"


class ConnectionState(str, Enum):
    """Best-effort view of database connectivity."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    RECONNECTING = "RECONNECTING"
    CONNECTED = "CONNECTED"


class ConnectionEvent(str, Enum):
    """Lifecycle events emitted by the connection tracker."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECT = "disconnect"
    DISCONNECTED = "disconnected"
    RECONNECTING = "re-connecting"
    LOG = "log"


class SessionEvent(str, Enum):
    """Lifecycle events emitted by the session collaborator."""
    SIGN_IN = "sign-in"
    SIGNED_IN = "signed-in"
    SIGN_IN_ERROR = "sign-in-error"
    SIGN_OUT = "sign-out"
    DELETING_CLIENT = "deleting-client"


class SignState(str, Enum):
    """Session sign-in progress."""
    NOT_YET = "not_yet"
    SIGN_IN = "sign_in"
    SIGNED_IN = "signed_in"
    SIGN_OUT = "sign_out"
    ERROR = "error"


class TimerAction(str, Enum):
    """What the shell must do with the disconnect timer after a transition."""
    ARM = "arm"
    CANCEL = "cancel"
    KEEP = "keep"
