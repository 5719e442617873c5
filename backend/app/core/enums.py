# backend/app/core/enums.py
"""
Core enums for the GymApp platform.

Role names arrive from the upstream auth gateway with every request;
the booking core trusts them and only uses them for authorization.
"""

from enum import Enum


class RoleName(str, Enum):
    """Standard role names supplied by the auth context."""

    MEMBER = "member"
    TRAINER = "trainer"
    ADMIN = "admin"
    STAFF = "staff"


# Roles allowed to manage classes and other members' bookings
STAFF_ROLES = frozenset({RoleName.TRAINER, RoleName.ADMIN})
