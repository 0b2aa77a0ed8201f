"""Services Layer: membership resolution, invites, access requests, onboarding.

Invariants:
    - Services talk to storage ONLY through the ports in core/repository_protocols.py
    - Every service call carries an explicit RequestContext (identity + cache)

Design Decisions:
    - One service class per workflow; wired per request in api/dependencies.py
"""
