# backend/app/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import bookings, class_instances, classes, health, prometheus

__all__ = [
    "bookings",
    "class_instances",
    "classes",
    "health",
    "prometheus",
]
