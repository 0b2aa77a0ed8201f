"""Infrastructure Layer: database session management, logging, and the store adapter.

Invariants:
    - Every store call is bounded by a timeout and mapped to UpstreamUnavailableError
    - Visibility scoping lives in data_access.py, the only module that builds tenancy queries
"""
