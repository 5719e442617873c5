"""
Concurrency tests for the booking ledger and class instance lifecycle.

Each worker thread gets its own session (and so its own SQLite connection);
a barrier releases them together so the conditional UPDATEs genuinely contend.
"""

from concurrent.futures import ThreadPoolExecutor
import threading
from typing import Callable, List

import pytest

from app.core.enums import RoleName
from app.core.exceptions import (
    AlreadyCancelledException,
    ClassFullException,
    DuplicateBookingException,
    InvalidStateTransitionException,
    NotFoundException,
)
from app.core.ulid_helper import generate_ulid
from app.events import EventPublisher
from app.models.booking import Booking, BookingStatus
from app.models.class_instance import ClassInstance
from app.principal import ActorContext
from app.services.booking_service import BookingService
from app.services.class_instance_service import ClassInstanceService


def run_in_threads(session_factory, calls: List[Callable]) -> List[object]:
    """Run ``call(session)`` for each call on its own thread; collect results or exceptions."""
    barrier = threading.Barrier(len(calls))

    def worker(call: Callable) -> object:
        session = session_factory()
        try:
            barrier.wait(timeout=10)
            return call(session)
        except Exception as exc:  # collected for assertions
            return exc
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(worker, calls))


def run_concurrently(session_factory, publisher, calls: List[Callable]) -> List[object]:
    """Run ``call(service)`` against a per-thread BookingService."""
    return run_in_threads(
        session_factory,
        [
            lambda session, call=call: call(BookingService(session, event_publisher=publisher))
            for call in calls
        ],
    )


def member() -> ActorContext:
    return ActorContext(user_id=generate_ulid(), role=RoleName.MEMBER)


def current_roster(session_factory, instance_id: str) -> int:
    session = session_factory()
    try:
        return ClassInstanceService(session).snapshot(instance_id)["current_bookings"]
    finally:
        session.close()


def count_confirmed(session_factory, instance_id: str) -> int:
    session = session_factory()
    try:
        return (
            session.query(Booking)
            .filter(
                Booking.class_instance_id == instance_id,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
            .count()
        )
    finally:
        session.close()


@pytest.fixture
def ready(db):
    """Make sure the fixture session holds no open transaction before threads start."""

    def _ready() -> None:
        db.commit()

    return _ready


def test_last_seat_goes_to_exactly_one_member(
    session_factory, publisher, make_instance, ready
):
    instance = make_instance(max_capacity=1)
    instance_id = instance.id
    ready()

    results = run_concurrently(
        session_factory,
        publisher,
        [
            lambda service, actor=member(): service.create_booking(actor, instance_id)
            for _ in range(2)
        ],
    )

    booked = [r for r in results if isinstance(r, Booking)]
    full = [r for r in results if isinstance(r, ClassFullException)]
    assert len(booked) == 1
    assert len(full) == 1
    assert current_roster(session_factory, instance_id) == 1
    assert count_confirmed(session_factory, instance_id) == 1


def test_never_oversubscribed(session_factory, publisher, make_instance, ready):
    capacity = 3
    attempts = 8
    instance = make_instance(max_capacity=capacity)
    instance_id = instance.id
    ready()

    results = run_concurrently(
        session_factory,
        publisher,
        [
            lambda service, actor=member(): service.create_booking(actor, instance_id)
            for _ in range(attempts)
        ],
    )

    booked = [r for r in results if isinstance(r, Booking)]
    rejected = [r for r in results if isinstance(r, ClassFullException)]
    assert len(booked) == capacity
    assert len(rejected) == attempts - capacity
    assert current_roster(session_factory, instance_id) == capacity
    assert count_confirmed(session_factory, instance_id) == capacity


def test_same_member_double_submit(session_factory, publisher, make_instance, ready):
    instance = make_instance(max_capacity=5)
    instance_id = instance.id
    actor = member()
    ready()

    results = run_concurrently(
        session_factory,
        publisher,
        [lambda service: service.create_booking(actor, instance_id) for _ in range(3)],
    )

    booked = [r for r in results if isinstance(r, Booking)]
    duplicates = [r for r in results if isinstance(r, DuplicateBookingException)]
    assert len(booked) == 1
    assert len(duplicates) == 2
    assert current_roster(session_factory, instance_id) == 1


def test_concurrent_cancellations_release_one_seat(
    session_factory, publisher, booking_service, make_instance, ready
):
    instance = make_instance(max_capacity=2)
    instance_id = instance.id
    owner = member()
    booking_id = booking_service.create_booking(owner, instance_id).id
    booking_service.create_booking(member(), instance_id)
    ready()

    results = run_concurrently(
        session_factory,
        publisher,
        [lambda service: service.cancel_booking(owner, booking_id) for _ in range(2)],
    )

    cancelled = [r for r in results if isinstance(r, Booking)]
    rejected = [r for r in results if isinstance(r, AlreadyCancelledException)]
    assert len(cancelled) == 1
    assert len(rejected) == 1
    assert current_roster(session_factory, instance_id) == 1


def test_cancel_and_book_race_keeps_roster_consistent(
    session_factory, publisher, booking_service, make_instance, ready
):
    instance = make_instance(max_capacity=1)
    instance_id = instance.id
    holder = member()
    booking_id = booking_service.create_booking(holder, instance_id).id
    ready()

    results = run_concurrently(
        session_factory,
        publisher,
        [
            lambda service: service.cancel_booking(holder, booking_id),
            lambda service, actor=member(): service.create_booking(actor, instance_id),
        ],
    )

    # The new booking either got the freed seat or saw the class full
    assert isinstance(results[0], Booking)
    assert isinstance(results[1], (Booking, ClassFullException))
    assert current_roster(session_factory, instance_id) == count_confirmed(
        session_factory, instance_id
    )


def test_publisher_is_shared_safely(session_factory, make_instance, ready, dispatch):
    instance = make_instance(max_capacity=4)
    instance_id = instance.id
    ready()

    run_concurrently(
        session_factory,
        EventPublisher(dispatch),
        [
            lambda service, actor=member(): service.create_booking(actor, instance_id)
            for _ in range(4)
        ],
    )

    assert dispatch.kinds() == ["booking_created"] * 4


def staff() -> ActorContext:
    return ActorContext(user_id=generate_ulid(), role=RoleName.ADMIN)


def current_status(session_factory, instance_id: str) -> str:
    session = session_factory()
    try:
        return ClassInstanceService(session).get(instance_id).status
    finally:
        session.close()


def test_competing_instance_transitions_apply_once(
    session_factory, instance_service, make_instance, ready
):
    instance = make_instance()
    instance_id = instance.id
    instance_service.set_status(staff(), instance_id, "ongoing")
    ready()

    results = run_in_threads(
        session_factory,
        [
            lambda session, target=target: ClassInstanceService(session).set_status(
                staff(), instance_id, target
            )
            for target in ("completed", "cancelled")
        ],
    )

    moved = [r for r in results if isinstance(r, ClassInstance)]
    rejected = [r for r in results if isinstance(r, InvalidStateTransitionException)]
    assert len(moved) == 1
    assert len(rejected) == 1
    assert current_status(session_factory, instance_id) == moved[0].status


def test_booking_racing_instance_cancellation(
    session_factory, publisher, make_instance, ready
):
    instance = make_instance(max_capacity=5)
    instance_id = instance.id
    ready()

    results = run_in_threads(
        session_factory,
        [
            lambda session: ClassInstanceService(session).set_status(
                staff(), instance_id, "cancelled"
            ),
            lambda session: BookingService(session, event_publisher=publisher).create_booking(
                member(), instance_id
            ),
        ],
    )

    assert isinstance(results[0], ClassInstance)
    assert isinstance(results[1], (Booking, NotFoundException))
    assert current_status(session_factory, instance_id) == "cancelled"
    # A seat is only taken when the booking committed before the cancellation
    assert current_roster(session_factory, instance_id) == count_confirmed(
        session_factory, instance_id
    )
