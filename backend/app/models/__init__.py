"""ORM Models: SQLAlchemy declarative models for the tenancy collections.

Invariants:
    - All models inherit from Base (db/base.py)
    - Organization is the aggregate root; businesses, members and invites hang off it

Design Decisions:
    - One file per entity for locality
    - All models imported here so Base.metadata is complete before
      create_all (tests) or alembic autogenerate runs
"""

from app.models.profile import Profile  # noqa: F401
from app.models.organization import Organization  # noqa: F401
from app.models.organization_member import OrganizationMember  # noqa: F401
from app.models.business import Business  # noqa: F401
from app.models.business_member import BusinessMember  # noqa: F401
from app.models.invite import Invite  # noqa: F401
from app.models.access_request import AccessRequest  # noqa: F401
