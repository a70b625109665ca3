"""Connection State: pure transitions of the liveness state machine.

Invariants:
    - Initial state is DISCONNECTED, first_connection_established is False
    - true signal -> CONNECTED, cancel timer, sticky first_connection_established, emit connected
    - false/absent signal -> arm timer (replacing any pending one);
      CONNECTING before the first connection, RECONNECTING after it;
      a drop after a connection also emits disconnect (before re-connecting)
    - timer expiry -> DISCONNECTED, emit disconnected
    - Functions return a LivenessTransition and never mutate their input

Design Decisions:
    - Repeated false signals re-arm the timer (reset, never accumulate)
    - Shell (services/connection.py) applies the transition: owns the timer and emitter
"""

from dataclasses import dataclass, replace

from rtdb_bridge.core.domain_types import ConnectionEvent, ConnectionState, TimerAction


@dataclass(frozen=True)
class LivenessState:
    """What the connection tracker knows between two signals."""
    state: ConnectionState = ConnectionState.DISCONNECTED
    first_connection_established: bool = False


@dataclass(frozen=True)
class LivenessTransition:
    """Result of one signal: next state, events to emit in order, timer action."""
    next: LivenessState
    events: tuple[ConnectionEvent, ...] = ()
    timer: TimerAction = TimerAction.KEEP


def on_liveness_signal(current: LivenessState, connected: object) -> LivenessTransition:
    """Interpret one value of the reserved liveness path."""
    if connected is True:
        return LivenessTransition(
            next=LivenessState(ConnectionState.CONNECTED, True),
            events=(ConnectionEvent.CONNECTED,),
            timer=TimerAction.CANCEL,
        )

    if current.first_connection_established:
        return LivenessTransition(
            next=replace(current, state=ConnectionState.RECONNECTING),
            events=(ConnectionEvent.DISCONNECT, ConnectionEvent.RECONNECTING),
            timer=TimerAction.ARM,
        )

    return LivenessTransition(
        next=replace(current, state=ConnectionState.CONNECTING),
        events=(ConnectionEvent.CONNECTING,),
        timer=TimerAction.ARM,
    )


def on_disconnect_timeout(current: LivenessState) -> LivenessTransition:
    """The disconnect timer fired without an intervening true signal."""
    return LivenessTransition(
        next=replace(current, state=ConnectionState.DISCONNECTED),
        events=(ConnectionEvent.DISCONNECTED,),
        timer=TimerAction.KEEP,
    )
