"""Actor context for callers of the booking core."""

from __future__ import annotations

from dataclasses import dataclass

from app.core.enums import STAFF_ROLES, RoleName


@dataclass(frozen=True)
class ActorContext:
    """
    Who is making the request.

    Supplied by the upstream auth gateway and trusted as-is; credentials are
    never re-verified here.
    """

    user_id: str
    role: RoleName

    @property
    def is_staff(self) -> bool:
        """Trainers and admins manage classes and other members' bookings."""
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN

    def can_act_for(self, owner_user_id: str) -> bool:
        return self.is_staff or self.user_id == owner_user_id
