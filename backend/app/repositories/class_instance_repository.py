# backend/app/repositories/class_instance_repository.py
"""
Class Instance Repository for the GymApp platform.

Owns the roster counter primitives and status transitions.
``try_increment_roster``, ``decrement_roster`` and ``transition_status`` are
single conditional UPDATE statements. The affected row count is the only
thing that decides success, so two writers can never both take the last
seat or both move an instance out of the same status.
"""

from datetime import date, datetime
import logging
from typing import Any, Iterable, List, Optional, Set, Tuple

from sqlalchemy import and_, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import Booking, BookingStatus
from ..models.class_instance import ClassAttendance, ClassInstance, ClassInstanceStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Statuses that occupy a seat on the roster; only cancellation frees one
SEAT_HOLDING_STATUSES = (
    BookingStatus.CONFIRMED.value,
    BookingStatus.COMPLETED.value,
    BookingStatus.NO_SHOW.value,
)


class ClassInstanceRepository(BaseRepository[ClassInstance]):
    """Repository for class instances, roster counters and attendance."""

    def __init__(self, db: Session):
        super().__init__(db, ClassInstance)

    # Roster counter

    def try_increment_roster(self, instance_id: str) -> bool:
        """
        Take one seat if one is free and the instance is still scheduled.

        Returns:
            True when the counter moved, False when the instance was full,
            no longer scheduled, or does not exist.
        """
        try:
            stmt = (
                update(ClassInstance)
                .where(
                    and_(
                        ClassInstance.id == instance_id,
                        ClassInstance.status == ClassInstanceStatus.SCHEDULED.value,
                        ClassInstance.current_bookings < ClassInstance.max_capacity,
                    )
                )
                .values(current_bookings=ClassInstance.current_bookings + 1)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self.logger.error(f"Error incrementing roster for {instance_id}: {str(e)}")
            raise RepositoryException(f"Failed to increment roster: {str(e)}")

    def decrement_roster(self, instance_id: str) -> bool:
        """
        Release one seat, flooring at zero.

        Returns:
            False when the counter was already zero (no row matched).
        """
        try:
            stmt = (
                update(ClassInstance)
                .where(
                    and_(
                        ClassInstance.id == instance_id,
                        ClassInstance.current_bookings > 0,
                    )
                )
                .values(current_bookings=ClassInstance.current_bookings - 1)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self.logger.error(f"Error decrementing roster for {instance_id}: {str(e)}")
            raise RepositoryException(f"Failed to decrement roster: {str(e)}")

    def set_roster_count(self, instance_id: str, count: int) -> None:
        """Overwrite the counter (reconciliation repair only)."""
        try:
            self.db.execute(
                update(ClassInstance)
                .where(ClassInstance.id == instance_id)
                .values(current_bookings=count)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error repairing roster for {instance_id}: {str(e)}")
            raise RepositoryException(f"Failed to repair roster: {str(e)}")

    def transition_status(self, instance_id: str, expected_status: str, **values: Any) -> bool:
        """
        Conditionally move an instance out of ``expected_status``.

        The UPDATE is guarded on the status the caller validated against, so
        of two concurrent transitions from the same status only one applies.

        Returns:
            True when this call performed the transition
        """
        try:
            stmt = (
                update(ClassInstance)
                .where(ClassInstance.id == instance_id, ClassInstance.status == expected_status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating status of class instance {instance_id}: {str(e)}")
            raise RepositoryException(f"Failed to update class instance status: {str(e)}")

    def count_seat_holding_bookings(self, instance_id: str) -> int:
        """Count bookings that occupy a seat on this instance."""
        query = self.db.query(func.count(Booking.id)).filter(
            Booking.class_instance_id == instance_id,
            Booking.status.in_(SEAT_HOLDING_STATUSES),
        )
        return int(self._execute_scalar(query) or 0)

    # Lookups

    def get_fresh(self, instance_id: str) -> Optional[ClassInstance]:
        """Load an instance bypassing the identity map (after counter UPDATEs)."""
        try:
            return (
                self.db.query(ClassInstance)
                .filter(ClassInstance.id == instance_id)
                .populate_existing()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading class instance {instance_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve ClassInstance: {str(e)}")

    def get_start_times_for_class(
        self, class_id: str, window_start: datetime, window_end: datetime
    ) -> Set[datetime]:
        """Start times already materialized for a template within a window."""
        query = self.db.query(ClassInstance.start_time).filter(
            ClassInstance.class_id == class_id,
            ClassInstance.start_time >= window_start,
            ClassInstance.start_time < window_end,
        )
        return {row[0] for row in self._execute_query(query)}

    def list_for_class(
        self,
        class_id: str,
        *,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[ClassInstance], int]:
        """Instances of a template ordered by start time, with total count."""
        try:
            query = self._build_query().filter(ClassInstance.class_id == class_id)
            if from_date:
                query = query.filter(ClassInstance.scheduled_date >= from_date)
            if to_date:
                query = query.filter(ClassInstance.scheduled_date <= to_date)
            if status:
                query = query.filter(ClassInstance.status == status)

            total = query.count()
            items = query.order_by(ClassInstance.start_time.asc()).offset(offset).limit(limit).all()
            return items, total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing instances for class {class_id}: {str(e)}")
            raise RepositoryException(f"Failed to list class instances: {str(e)}")

    def add_all(self, instances: Iterable[ClassInstance]) -> List[ClassInstance]:
        """Persist a batch of new instances with a single flush."""
        batch = list(instances)
        self.db.add_all(batch)
        self.db.flush()
        return batch

    # Attendance

    def get_attendance(self, instance_id: str, user_id: str) -> Optional[ClassAttendance]:
        return (
            self.db.query(ClassAttendance)
            .filter(
                ClassAttendance.class_instance_id == instance_id,
                ClassAttendance.user_id == user_id,
            )
            .first()
        )

    def add_attendance(
        self, instance_id: str, user_id: str, check_in_time: datetime
    ) -> ClassAttendance:
        record = ClassAttendance(
            class_instance_id=instance_id, user_id=user_id, check_in_time=check_in_time
        )
        self.db.add(record)
        self.db.flush()
        return record
