# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .auth import get_current_actor, require_admin, require_roles, require_staff
from .database import get_db
from .services import (
    get_booking_service,
    get_class_catalog_service,
    get_class_instance_service,
    get_event_publisher,
)

__all__ = [
    # Auth
    "get_current_actor",
    "require_roles",
    "require_staff",
    "require_admin",
    # Database
    "get_db",
    # Services
    "get_booking_service",
    "get_class_catalog_service",
    "get_class_instance_service",
    "get_event_publisher",
]
