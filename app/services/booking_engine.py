"""
Booking engine: admission rules for facility reservations.

The invariant enforced here is that no two APPROVED reservations of one
facility overlap, using the inclusive predicate

    existing.start_time <= new.end_time and existing.end_time >= new.start_time

so a reservation ending at 11:00 and one starting at 11:00 do collide.
PENDING, REJECTED and CANCELLED reservations never block a booking.

Every check-then-write sequence runs under the facility's lock from
``app.utils.locks`` and inside one transaction of the reservation store, with
the facility row selected FOR UPDATE where the database supports it.
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from app.exceptions import ConflictError, InvalidArgumentError, NotFoundError
from app.models.reservation import PURPOSE_MAX_LENGTH, Reservation, ReservationStatus
from app.repositories.facility_repository import FacilityRepository
from app.repositories.reservation_repository import ReservationRepository
from app.repositories.user_repository import UserRepository
from app.utils.locks import FacilityLocks, facility_locks
from app.utils.validation_helpers import to_local_naive

logger = logging.getLogger(__name__)

# Transitions permitted when strict_status_transitions is enabled
ALLOWED_TRANSITIONS = {
    ReservationStatus.PENDING: {
        ReservationStatus.APPROVED,
        ReservationStatus.REJECTED,
        ReservationStatus.CANCELLED,
    },
    ReservationStatus.APPROVED: {ReservationStatus.CANCELLED},
    ReservationStatus.REJECTED: set(),
    ReservationStatus.CANCELLED: set(),
}


class BookingEngine:
    def __init__(
        self,
        facilities: FacilityRepository,
        users: UserRepository,
        reservations: ReservationRepository,
        locks: Optional[FacilityLocks] = None,
        clock: Callable[[], datetime] = datetime.now,
        strict_status_transitions: bool = False,
        recheck_on_approve: bool = False,
    ):
        self.facilities = facilities
        self.users = users
        self.reservations = reservations
        self.locks = locks or facility_locks
        self.clock = clock
        self.strict_status_transitions = strict_status_transitions
        self.recheck_on_approve = recheck_on_approve

    def _conflicts(
        self,
        facility_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> List[Reservation]:
        overlapping = self.reservations.find_overlapping(facility_id, start_time, end_time)
        if exclude_reservation_id is not None:
            overlapping = [r for r in overlapping if r.id != exclude_reservation_id]
        return overlapping

    def check_availability(
        self,
        facility_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> bool:
        """
        True when no APPROVED reservation of the facility overlaps the window.

        exclude_reservation_id drops one reservation from the candidates, so a
        reservation can be re-checked without clashing with itself. Facility
        existence and start/end ordering are not validated here.
        """
        start_time, end_time = to_local_naive(start_time), to_local_naive(end_time)
        conflicts = self._conflicts(facility_id, start_time, end_time, exclude_reservation_id)
        logger.debug(
            f"Availability for facility {facility_id}, {start_time} to {end_time}: "
            f"{len(conflicts)} conflicting reservation(s)"
        )
        return not conflicts

    def create_reservation(
        self,
        facility_id: int,
        user_id: int,
        start_time: datetime,
        end_time: datetime,
        purpose: Optional[str] = None,
    ) -> Reservation:
        """
        Validate and persist a new PENDING reservation.

        Checks run in this order and the first failure is raised:
        facility exists, user exists, end after start, start not in the past,
        purpose length, slot free of APPROVED reservations.
        """
        start_time, end_time = to_local_naive(start_time), to_local_naive(end_time)
        with self.locks.hold(facility_id), self.reservations.atomic():
            facility = self.facilities.get_by_id(facility_id, for_update=True)
            if facility is None:
                logger.error(f"Facility not found: {facility_id}")
                raise NotFoundError("facility", facility_id)

            user = self.users.get_by_id(user_id)
            if user is None:
                logger.error(f"User not found: {user_id}")
                raise NotFoundError("user", user_id)

            if end_time <= start_time:
                logger.error(f"Invalid window for facility {facility_id}: {start_time} to {end_time}")
                raise InvalidArgumentError(
                    "end_before_start",
                    "End time must be after start time",
                    start_time=start_time.isoformat(),
                    end_time=end_time.isoformat(),
                )

            now = self.clock()
            if start_time < now:
                logger.error(f"Start time in the past: {start_time} < {now}")
                raise InvalidArgumentError(
                    "past_booking",
                    "Cannot create a reservation in the past",
                    start_time=start_time.isoformat(),
                )

            if purpose is not None and len(purpose) > PURPOSE_MAX_LENGTH:
                raise InvalidArgumentError(
                    "purpose_too_long",
                    f"Purpose must be at most {PURPOSE_MAX_LENGTH} characters",
                    max_length=PURPOSE_MAX_LENGTH,
                )

            conflicts = self._conflicts(facility_id, start_time, end_time)
            if conflicts:
                logger.error(
                    f"Overlapping reservation found for facility {facility_id}, "
                    f"time: {start_time} to {end_time}"
                )
                raise ConflictError(facility_id, start_time, end_time, [r.id for r in conflicts])

            reservation = Reservation(
                facility_id=facility.id,
                user_id=user.id,
                start_time=start_time,
                end_time=end_time,
                purpose=purpose,
                status=ReservationStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            reservation = self.reservations.save(reservation)

        logger.debug(f"Created reservation {reservation.id} for facility {facility_id}, user {user_id}")
        return reservation

    def update_status(self, reservation_id: int, new_status: ReservationStatus) -> Reservation:
        """
        Set a reservation's status.

        Any status may be set from any other unless strict_status_transitions
        is on. With recheck_on_approve, moving into APPROVED fails with
        ConflictError when another APPROVED reservation overlaps.
        """
        new_status = ReservationStatus(new_status)
        reservation = self.reservations.find_by_id(reservation_id)
        if reservation is None:
            logger.error(f"Reservation not found: {reservation_id}")
            raise NotFoundError("reservation", reservation_id)

        if not (self.recheck_on_approve and new_status == ReservationStatus.APPROVED):
            return self._apply_status(reservation, new_status)

        with self.locks.hold(reservation.facility_id), self.reservations.atomic():
            self.facilities.get_by_id(reservation.facility_id, for_update=True)
            # Another request may have changed or removed it while we waited for the lock
            reservation = self.reservations.find_by_id(reservation_id, reload=True)
            if reservation is None:
                raise NotFoundError("reservation", reservation_id)
            self._check_transition(reservation, new_status)
            conflicts = self._conflicts(
                reservation.facility_id,
                reservation.start_time,
                reservation.end_time,
                exclude_reservation_id=reservation.id,
            )
            if conflicts:
                logger.error(
                    f"Cannot approve reservation {reservation.id}: overlaps "
                    f"{[r.id for r in conflicts]}"
                )
                raise ConflictError(
                    reservation.facility_id,
                    reservation.start_time,
                    reservation.end_time,
                    [r.id for r in conflicts],
                )
            return self._apply_status(reservation, new_status)

    def _check_transition(self, reservation: Reservation, new_status: ReservationStatus) -> None:
        old_status = ReservationStatus(reservation.status)
        if self.strict_status_transitions and new_status not in ALLOWED_TRANSITIONS[old_status]:
            logger.error(f"Illegal transition for reservation {reservation.id}: {old_status.value} -> {new_status.value}")
            raise InvalidArgumentError(
                "status_transition",
                f"Cannot change status from {old_status.value} to {new_status.value}",
                from_status=old_status.value,
                to_status=new_status.value,
            )

    def _apply_status(self, reservation: Reservation, new_status: ReservationStatus) -> Reservation:
        old_status = ReservationStatus(reservation.status)
        self._check_transition(reservation, new_status)
        reservation.status = new_status
        reservation.updated_at = self.clock()
        reservation = self.reservations.save(reservation)
        logger.debug(f"Reservation {reservation.id}: {old_status.value} -> {new_status.value}")
        return reservation

    def delete(self, reservation_id: int) -> None:
        if not self.reservations.exists_by_id(reservation_id):
            logger.error(f"Reservation not found: {reservation_id}")
            raise NotFoundError("reservation", reservation_id)
        self.reservations.delete_by_id(reservation_id)
        logger.debug(f"Deleted reservation: {reservation_id}")

    def get_reservation(self, reservation_id: int) -> Reservation:
        reservation = self.reservations.find_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError("reservation", reservation_id)
        return reservation

    def list_reservations(self, skip: int = 0, limit: int = 100) -> List[Reservation]:
        return self.reservations.find_all(skip, limit)

    def list_by_facility(self, facility_id: int) -> List[Reservation]:
        return self.reservations.find_by_facility_id(facility_id)

    def list_by_user(self, user_id: int) -> List[Reservation]:
        return self.reservations.find_by_user_id(user_id)

    def list_by_status(self, status: ReservationStatus) -> List[Reservation]:
        """Upcoming reservations (start after now) in the given status."""
        return self.reservations.find_by_status_starting_after(ReservationStatus(status), self.clock())
