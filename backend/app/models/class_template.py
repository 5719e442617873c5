# backend/app/models/class_template.py
"""
Class template models for the GymApp platform.

A ClassTemplate is the recurring definition of a class (name, type, price,
capacity, weekly schedule and cancellation policy). It is the source of
truth when concrete ClassInstances are materialized. Templates are never
hard-deleted; cancelling one is a status change.
"""

from enum import Enum
import logging
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)


class ClassType(str, Enum):
    """Kinds of classes offered."""

    YOGA = "yoga"
    PILATES = "pilates"
    CARDIO = "cardio"
    STRENGTH = "strength"
    CROSSFIT = "crossfit"
    SPINNING = "spinning"
    DANCE = "dance"
    MARTIAL_ARTS = "martial_arts"
    AQUA = "aqua"
    PERSONAL_TRAINING = "personal_training"
    GROUP_FITNESS = "group_fitness"


class ClassStatus(str, Enum):
    """Template lifecycle statuses."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"  # Soft delete - hidden from public listings


class Difficulty(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ClassTemplate(Base):
    """Recurring class definition."""

    __tablename__ = "class_templates"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(String(30), nullable=False, index=True)
    trainer_id = Column(String(26), nullable=False, index=True)
    max_capacity = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=ClassStatus.ACTIVE.value, index=True)
    difficulty = Column(String(20), nullable=False)

    # Cancellation policy
    cancellation_hours_before_class = Column(Float, nullable=False, default=24.0)
    cancellation_refund_percentage = Column(Integer, nullable=False, default=100)

    # Location
    location_room = Column(String(100), nullable=True)
    location_floor = Column(Integer, nullable=True)
    location_building = Column(String(100), nullable=True)

    requirements = Column(JSON, nullable=False, default=list)
    equipment = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    image_url = Column(String(500), nullable=True)
    is_bookable = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    schedule = relationship(
        "ClassScheduleEntry",
        back_populates="class_template",
        cascade="all, delete-orphan",
        order_by="[ClassScheduleEntry.day_of_week, ClassScheduleEntry.start_time]",
        lazy="selectin",
    )
    # Instances are paged through ClassInstanceRepository, never via this collection
    instances = relationship("ClassInstance", back_populates="class_template", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'cancelled')",
            name="ck_class_templates_status",
        ),
        CheckConstraint(
            "difficulty IN ('beginner', 'intermediate', 'advanced')",
            name="ck_class_templates_difficulty",
        ),
        CheckConstraint(
            "max_capacity >= 1 AND max_capacity <= 100", name="check_capacity_range"
        ),
        CheckConstraint(
            "duration_minutes >= 15 AND duration_minutes <= 180", name="check_duration_range"
        ),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        CheckConstraint(
            "cancellation_refund_percentage >= 0 AND cancellation_refund_percentage <= 100",
            name="check_refund_percentage_range",
        ),
        CheckConstraint(
            "cancellation_hours_before_class >= 0", name="check_cancellation_hours_non_negative"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ClassTemplate {self.id}: name={self.name!r}, type={self.type}, "
            f"capacity={self.max_capacity}, status={self.status}>"
        )

    @property
    def is_publicly_listed(self) -> bool:
        return self.status != ClassStatus.CANCELLED.value

    @property
    def accepts_new_instances(self) -> bool:
        """Only active, bookable templates may be materialized into instances."""
        return self.status == ClassStatus.ACTIVE.value and bool(self.is_bookable)

    @property
    def cancellation_policy(self) -> dict[str, Any]:
        return {
            "hours_before_class": float(self.cancellation_hours_before_class),
            "refund_percentage": int(self.cancellation_refund_percentage),
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "trainer_id": self.trainer_id,
            "max_capacity": self.max_capacity,
            "duration_minutes": self.duration_minutes,
            "price": float(self.price),
            "status": self.status,
            "difficulty": self.difficulty,
            "schedule": [entry.to_dict() for entry in self.schedule],
            "cancellation_policy": self.cancellation_policy,
            "location": {
                "room": self.location_room,
                "floor": self.location_floor,
                "building": self.location_building,
            },
            "requirements": list(self.requirements or []),
            "equipment": list(self.equipment or []),
            "tags": list(self.tags or []),
            "image_url": self.image_url,
            "is_bookable": self.is_bookable,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ClassScheduleEntry(Base):
    """One weekly slot of a class template (day of week plus HH:MM range)."""

    __tablename__ = "class_schedule_entries"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    class_id = Column(
        String(26), ForeignKey("class_templates.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week = Column(Integer, nullable=False)  # 0-6, Sunday-Saturday
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    is_recurring = Column(Boolean, nullable=False, default=True)

    class_template = relationship("ClassTemplate", back_populates="schedule")

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="check_day_of_week_range"),
        CheckConstraint("start_time < end_time", name="check_schedule_time_order"),
    )

    def __repr__(self) -> str:
        return f"<ClassScheduleEntry day={self.day_of_week} {self.start_time}-{self.end_time}>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_recurring": self.is_recurring,
        }


Index("ix_class_schedule_entries_day", ClassScheduleEntry.day_of_week)
Index("ix_class_schedule_entries_class", ClassScheduleEntry.class_id)

