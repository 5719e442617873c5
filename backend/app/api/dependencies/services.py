# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ...events import EventPublisher, LoggingNotificationDispatch
from ...services.booking_service import BookingService
from ...services.class_catalog_service import ClassCatalogService
from ...services.class_instance_service import ClassInstanceService
from .database import get_db


@lru_cache(maxsize=1)
def get_event_publisher() -> EventPublisher:
    """Process-wide publisher; swap the dispatcher here to wire real delivery."""
    return EventPublisher(LoggingNotificationDispatch())


def get_class_catalog_service(db: Session = Depends(get_db)) -> ClassCatalogService:
    return ClassCatalogService(db)


def get_class_instance_service(db: Session = Depends(get_db)) -> ClassInstanceService:
    return ClassInstanceService(db)


def get_booking_service(
    db: Session = Depends(get_db),
    event_publisher: EventPublisher = Depends(get_event_publisher),
) -> BookingService:
    """
    Get booking service instance with all dependencies.

    Args:
        db: Database session
        event_publisher: Publisher for booking lifecycle notifications

    Returns:
        BookingService instance
    """
    return BookingService(db, event_publisher=event_publisher)
