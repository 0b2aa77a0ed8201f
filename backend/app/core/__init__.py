"""Core Layer: pure tenancy rules, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Enforcement functions return errors as values; the shell decides to raise

Design Decisions:
    - Functional core separated from imperative shell
"""
