"""rtdb-bridge: one query surface over the admin and client Realtime Database backends.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports from the layer modules, no star exports
"""
