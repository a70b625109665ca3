"""Services Layer: query engine, connection tracking and the session collaborator.

Invariants:
    - Services hold the mutable state (timer, subscriptions, credentials); core stays pure
    - Backends are reached only through core.backend_protocols.RealtimeDatabase

Design Decisions:
    - Connection emits through the QueryEngine's emitter rather than owning one
"""
