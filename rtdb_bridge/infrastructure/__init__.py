"""Infrastructure Layer: database adapters, HTTP transport and cross-cutting concerns.

Invariants:
    - Every HTTP failure is mapped to core.errors.BackendError at the transport boundary
    - No retries on writes; streams and the liveness monitor reconnect on their own
"""
