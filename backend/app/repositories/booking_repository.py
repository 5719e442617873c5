# backend/app/repositories/booking_repository.py
"""
Booking Repository for the GymApp platform.

Implements data access for the booking ledger:
- Confirmed-booking lookups used by the duplicate check
- Filtered, paginated listings
- Status aggregation for the stats overview

Writes never commit; the BookingService transaction does.
"""

from datetime import datetime
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_confirmed_booking(self, user_id: str, class_instance_id: str) -> Optional[Booking]:
        """The user's confirmed booking on an instance, if any."""
        try:
            return (
                self.db.query(Booking)
                .filter(
                    Booking.user_id == user_id,
                    Booking.class_instance_id == class_instance_id,
                    Booking.status == BookingStatus.CONFIRMED.value,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking confirmed booking: {str(e)}")
            raise RepositoryException(f"Failed to check existing booking: {str(e)}")

    def list_bookings(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        class_id: Optional[str] = None,
        class_instance_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Booking], int]:
        """
        Get bookings with optional filters.

        Returns:
            (page of bookings newest first, total matching count)
        """
        try:
            query = self._build_query()
            if user_id:
                query = query.filter(Booking.user_id == user_id)
            if status:
                query = query.filter(Booking.status == status)
            if class_id:
                query = query.filter(Booking.class_id == class_id)
            if class_instance_id:
                query = query.filter(Booking.class_instance_id == class_instance_id)

            total = query.count()
            items = (
                query.order_by(Booking.booking_date.desc(), Booking.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return items, total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}")

    # Counting Queries

    def count_bookings_by_status(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """
        Count bookings grouped by status, optionally within a booking_date range.

        Uses SQL aggregation instead of Python-side counting.

        Returns:
            Dictionary with every status as key (zero when absent)
        """
        try:
            query: Query = self.db.query(Booking.status, func.count(Booking.id).label("count"))
            if start is not None:
                query = query.filter(Booking.booking_date >= start)
            if end is not None:
                query = query.filter(Booking.booking_date <= end)

            status_counts = {status.value: 0 for status in BookingStatus}
            for row in query.group_by(Booking.status).all():
                if row.status:
                    status_counts[row.status] = row.count
            return status_counts
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting bookings by status: {str(e)}")
            raise RepositoryException(f"Failed to count bookings by status: {str(e)}")

    # Status Management

    def transition_status(self, booking_id: str, expected_status: str, **values: Any) -> bool:
        """
        Conditionally move a booking out of ``expected_status``.

        A single UPDATE guarded on the current status, so two concurrent
        cancellations of the same booking cannot both succeed.

        Returns:
            True when this call performed the transition
        """
        try:
            stmt = (
                update(Booking)
                .where(Booking.id == booking_id, Booking.status == expected_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating status of booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to update booking status: {str(e)}")

    def get_fresh(self, booking_id: str) -> Optional[Booking]:
        """Reload a booking, overwriting any stale identity-map state."""
        try:
            return (
                self.db.query(Booking)
                .filter(Booking.id == booking_id)
                .populate_existing()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error reloading booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve Booking: {str(e)}")
