"""
Database models for the GymApp platform.

This module exports all SQLAlchemy models used in the application.
The models are organized by functionality:
- Class catalog (templates and their weekly schedule)
- Class instances (dated occurrences with roster counters) and attendance
- Bookings (seat reservations; the durable ledger)
"""

from .booking import PAYMENT_TRANSITIONS, Booking, BookingStatus, PaymentStatus
from .class_instance import (
    INSTANCE_TRANSITIONS,
    ClassAttendance,
    ClassInstance,
    ClassInstanceStatus,
)
from .class_template import (
    ClassScheduleEntry,
    ClassStatus,
    ClassTemplate,
    ClassType,
    Difficulty,
)

__all__ = [
    # Catalog models
    "ClassTemplate",
    "ClassScheduleEntry",
    "ClassType",
    "ClassStatus",
    "Difficulty",
    # Instance models
    "ClassInstance",
    "ClassInstanceStatus",
    "ClassAttendance",
    "INSTANCE_TRANSITIONS",
    # Booking models
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "PAYMENT_TRANSITIONS",
]
