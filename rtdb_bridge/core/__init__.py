"""Core Layer: pure validation and state logic, no IO, no network.

Invariants:
    - No module in core/ imports from services/ or infrastructure/
    - Transition and validation functions are deterministic
"""
