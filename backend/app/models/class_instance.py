# backend/app/models/class_instance.py
"""
Class instance models for the GymApp platform.

A ClassInstance is one concrete, dated occurrence of a ClassTemplate. It owns
the roster counter (``current_bookings``), which must always equal the number
of confirmed bookings against it and never exceed ``max_capacity``. The counter
is only moved through conditional UPDATE statements in ClassInstanceRepository.
"""

from enum import Enum
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.timezone_utils import ensure_utc
from ..core.ulid_helper import generate_ulid
from ..database import Base


class ClassInstanceStatus(str, Enum):
    """Instance lifecycle: scheduled -> ongoing -> completed, or -> cancelled."""

    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed status transitions; anything else is rejected
INSTANCE_TRANSITIONS: dict[ClassInstanceStatus, frozenset[ClassInstanceStatus]] = {
    ClassInstanceStatus.SCHEDULED: frozenset(
        {ClassInstanceStatus.ONGOING, ClassInstanceStatus.CANCELLED}
    ),
    ClassInstanceStatus.ONGOING: frozenset(
        {ClassInstanceStatus.COMPLETED, ClassInstanceStatus.CANCELLED}
    ),
    ClassInstanceStatus.COMPLETED: frozenset(),
    ClassInstanceStatus.CANCELLED: frozenset(),
}


class ClassInstance(Base):
    """One scheduled occurrence of a class template."""

    __tablename__ = "class_instances"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    class_id = Column(String(26), ForeignKey("class_templates.id"), nullable=False, index=True)
    trainer_id = Column(String(26), nullable=False, index=True)

    scheduled_date = Column(Date, nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False, index=True)
    end_time = Column(DateTime(timezone=True), nullable=False)

    max_capacity = Column(Integer, nullable=False)
    current_bookings = Column(Integer, nullable=False, default=0)
    status = Column(
        String(20), nullable=False, default=ClassInstanceStatus.SCHEDULED.value, index=True
    )

    actual_start_time = Column(DateTime(timezone=True), nullable=True)
    actual_end_time = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    class_template = relationship("ClassTemplate", back_populates="instances")
    attendance = relationship(
        "ClassAttendance",
        back_populates="class_instance",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("class_id", "start_time", name="uq_class_instances_class_start"),
        CheckConstraint(
            "status IN ('scheduled', 'ongoing', 'completed', 'cancelled')",
            name="ck_class_instances_status",
        ),
        CheckConstraint("max_capacity >= 1", name="check_instance_capacity_positive"),
        CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_capacity",
            name="check_roster_within_capacity",
        ),
        CheckConstraint("start_time < end_time", name="check_instance_time_order"),
    )

    def __repr__(self) -> str:
        return (
            f"<ClassInstance {self.id}: class={self.class_id}, start={self.start_time}, "
            f"roster={self.current_bookings}/{self.max_capacity}, status={self.status}>"
        )

    @property
    def available_spots(self) -> int:
        return max(0, int(self.max_capacity) - int(self.current_bookings or 0))

    @property
    def is_bookable(self) -> bool:
        return self.status == ClassInstanceStatus.SCHEDULED.value

    def snapshot(self) -> dict[str, Any]:
        """Roster/capacity/status view returned to callers."""
        return {
            "id": self.id,
            "class_id": self.class_id,
            "trainer_id": self.trainer_id,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "start_time": ensure_utc(self.start_time).isoformat(),
            "end_time": ensure_utc(self.end_time).isoformat(),
            "max_capacity": self.max_capacity,
            "current_bookings": self.current_bookings,
            "available_spots": self.available_spots,
            "status": self.status,
        }


class ClassAttendance(Base):
    """Check-in/check-out record for a member at a class instance."""

    __tablename__ = "class_attendance"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    class_instance_id = Column(
        String(26), ForeignKey("class_instances.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String(26), nullable=False, index=True)
    check_in_time = Column(DateTime(timezone=True), nullable=False)
    check_out_time = Column(DateTime(timezone=True), nullable=True)

    class_instance = relationship("ClassInstance", back_populates="attendance")

    __table_args__ = (
        UniqueConstraint("class_instance_id", "user_id", name="uq_class_attendance_user"),
    )

    def __repr__(self) -> str:
        return f"<ClassAttendance instance={self.class_instance_id} user={self.user_id}>"
