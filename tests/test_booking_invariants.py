import random
import threading
import time
from datetime import timedelta

import pytest

from app.exceptions import ConflictError
from app.models.reservation import Reservation, ReservationStatus
from app.repositories.reservation_repository import ReservationRepository
from app.utils.locks import FacilityLocks

from tests.conf_tests import (
    TestingSessionLocal,
    at,
    booking_engine,
    build_engine,
    clear_db,
    make_reservation,
    test_db,
    test_facility,
    test_user,
)


def overlaps(a_start, a_end, b_start, b_end):
    return a_start <= b_end and a_end >= b_start


def random_windows(seed, count=40):
    rng = random.Random(seed)
    windows = []
    for _ in range(count):
        start = at(8) + timedelta(minutes=rng.randrange(0, 12 * 60, 15))
        windows.append((start, start + timedelta(minutes=rng.choice([15, 30, 45, 60, 90, 120]))))
    return windows


def assert_no_approved_overlap(reservations):
    approved = [r for r in reservations if r.status == ReservationStatus.APPROVED]
    for i, first in enumerate(approved):
        for second in approved[i + 1:]:
            assert not overlaps(first.start_time, first.end_time, second.start_time, second.end_time), (
                f"{first} overlaps {second}"
            )


@pytest.mark.parametrize("seed", range(5))
# pylint: disable-next=redefined-outer-name
def test_create_admits_exactly_when_no_approved_overlap(
    booking_engine, test_facility, test_user, make_reservation, seed
):
    windows = random_windows(seed)
    approved = []
    for start, end in windows[:10]:
        if not any(overlaps(s, e, start, end) for s, e in approved):
            make_reservation(test_facility, test_user, start, end)
            approved.append((start, end))

    for start, end in windows[10:]:
        expected_free = not any(overlaps(s, e, start, end) for s, e in approved)
        assert booking_engine.check_availability(test_facility.id, start, end) is expected_free
        if expected_free:
            reservation = booking_engine.create_reservation(test_facility.id, test_user.id, start, end)
            assert reservation.status == ReservationStatus.PENDING
        else:
            with pytest.raises(ConflictError):
                booking_engine.create_reservation(test_facility.id, test_user.id, start, end)


@pytest.mark.parametrize("seed", range(5))
# pylint: disable-next=redefined-outer-name
def test_approved_reservations_never_overlap(test_db, test_facility, test_user, seed):
    engine = build_engine(test_db, recheck_on_approve=True)
    facility_id, user_id = test_facility.id, test_user.id
    for start, end in random_windows(seed):
        try:
            reservation = engine.create_reservation(facility_id, user_id, start, end)
            engine.update_status(reservation.id, ReservationStatus.APPROVED)
        except ConflictError:
            pass

    assert_no_approved_overlap(engine.list_by_facility(facility_id))


def run_concurrently(count, target):
    """Start `count` threads on target(index) together; return (results, errors)."""
    barrier = threading.Barrier(count)
    results, errors = [None] * count, [None] * count

    def worker(index):
        barrier.wait()
        try:
            results[index] = target(index)
        except Exception as exc:  # pylint: disable=broad-except
            errors[index] = exc

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


# pylint: disable-next=redefined-outer-name
def test_concurrent_approvals_of_same_slot(test_facility, test_user, make_reservation):
    first = make_reservation(test_facility, test_user, at(10), at(11), status=ReservationStatus.PENDING)
    second = make_reservation(test_facility, test_user, at(10), at(11), status=ReservationStatus.PENDING)
    ids = [first.id, second.id]
    locks = FacilityLocks()

    def approve(index):
        db = TestingSessionLocal()
        try:
            engine = build_engine(db, locks=locks, recheck_on_approve=True)
            return engine.update_status(ids[index], ReservationStatus.APPROVED).id
        finally:
            db.close()

    results, errors = run_concurrently(2, approve)

    assert len([r for r in results if r is not None]) == 1
    assert len([e for e in errors if isinstance(e, ConflictError)]) == 1
    assert all(e is None or isinstance(e, ConflictError) for e in errors)


class SlowReservationRepository(ReservationRepository):
    """Tracks how many callers are between the overlap query and the insert."""

    active = 0
    max_active = 0
    guard = threading.Lock()

    def find_overlapping(self, facility_id, start_time, end_time):
        with self.guard:
            SlowReservationRepository.active += 1
            SlowReservationRepository.max_active = max(
                SlowReservationRepository.max_active, SlowReservationRepository.active
            )
        result = super().find_overlapping(facility_id, start_time, end_time)
        time.sleep(0.05)
        return result

    def save(self, reservation):
        try:
            return super().save(reservation)
        finally:
            with self.guard:
                SlowReservationRepository.active -= 1


# pylint: disable-next=redefined-outer-name
def test_concurrent_creates_do_not_interleave(test_facility, test_user):
    from app.repositories.facility_repository import FacilityRepository
    from app.repositories.user_repository import UserRepository
    from app.services.booking_engine import BookingEngine

    SlowReservationRepository.active = 0
    SlowReservationRepository.max_active = 0
    facility_id, user_id = test_facility.id, test_user.id
    locks = FacilityLocks()

    def create(index):
        db = TestingSessionLocal()
        try:
            engine = BookingEngine(
                FacilityRepository(db), UserRepository(db), SlowReservationRepository(db), locks=locks
            )
            start = at(8) + timedelta(hours=2 * index)
            return engine.create_reservation(facility_id, user_id, start, start + timedelta(hours=1)).id
        finally:
            db.close()

    results, errors = run_concurrently(4, create)

    assert errors == [None] * 4
    assert len(set(results)) == 4
    assert SlowReservationRepository.max_active == 1


# pylint: disable-next=redefined-outer-name
def test_concurrent_creates_of_same_slot_then_approvals(test_db, test_facility, test_user):
    from app.repositories.facility_repository import FacilityRepository
    from app.repositories.user_repository import UserRepository
    from app.services.booking_engine import BookingEngine

    SlowReservationRepository.active = 0
    SlowReservationRepository.max_active = 0
    facility_id, user_id = test_facility.id, test_user.id
    locks = FacilityLocks()

    def create(index):
        db = TestingSessionLocal()
        try:
            engine = BookingEngine(
                FacilityRepository(db), UserRepository(db), SlowReservationRepository(db), locks=locks
            )
            reservation = engine.create_reservation(facility_id, user_id, at(10), at(11))
            return reservation.id, reservation.status
        finally:
            db.close()

    results, errors = run_concurrently(2, create)

    # PENDING never blocks, so both creates are admitted, one after the other
    assert errors == [None, None]
    assert [s for _, s in results] == [ReservationStatus.PENDING, ReservationStatus.PENDING]
    assert SlowReservationRepository.max_active == 1
    ids = [reservation_id for reservation_id, _ in results]

    def approve(index):
        db = TestingSessionLocal()
        try:
            engine = build_engine(db, locks=locks, recheck_on_approve=True)
            return engine.update_status(ids[index], ReservationStatus.APPROVED).id
        finally:
            db.close()

    approved, approve_errors = run_concurrently(2, approve)

    assert len([r for r in approved if r is not None]) == 1
    assert len([e for e in approve_errors if isinstance(e, ConflictError)]) == 1

    stored = [test_db.get(Reservation, reservation_id) for reservation_id in ids]
    assert sorted(r.status.value for r in stored) == ["APPROVED", "PENDING"]


def test_facility_locks_are_per_facility():
    locks = FacilityLocks()
    assert locks.get(1) is locks.get(1)
    assert locks.get(1) is not locks.get(2)

    with locks.hold(1):
        assert locks.get(2).acquire(blocking=False)
        locks.get(2).release()
        assert not locks.get(1).acquire(blocking=False)
