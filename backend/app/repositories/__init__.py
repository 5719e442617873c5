# backend/app/repositories/__init__.py
"""
Repository layer for the GymApp platform.

Repositories own every query; services never touch the session's query API
directly. The roster counter UPDATEs live here so the capacity guard is a
single conditional statement.

Usage:
    from app.repositories import ClassInstanceRepository

    repo = ClassInstanceRepository(db)
    if not repo.try_increment_roster(instance_id):
        ...
"""

from .base_repository import BaseRepository, IRepository
from .booking_repository import BookingRepository
from .class_instance_repository import ClassInstanceRepository
from .class_template_repository import ClassTemplateRepository

__all__ = [
    "BaseRepository",
    "IRepository",
    "BookingRepository",
    "ClassInstanceRepository",
    "ClassTemplateRepository",
]
