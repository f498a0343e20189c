"""Reservation repository - database operations for reservations"""

from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from app.models.facility import Facility  # noqa: F401  (relationship target)
from app.models.reservation import Reservation, ReservationStatus
from app.models.user import User  # noqa: F401  (relationship target)


class ReservationRepository:
    """Repository for reservation database operations"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(Reservation).options(
            joinedload(Reservation.facility), joinedload(Reservation.user)
        )

    def find_overlapping(self, facility_id: int, start_time: datetime, end_time: datetime) -> List[Reservation]:
        """
        APPROVED reservations of a facility whose window touches or overlaps
        [start_time, end_time]. Both bounds are inclusive: a reservation ending
        exactly at start_time is returned.
        """
        return (
            self.db.query(Reservation)
            .filter(
                Reservation.facility_id == facility_id,
                Reservation.status == ReservationStatus.APPROVED,
                Reservation.start_time <= end_time,
                Reservation.end_time >= start_time,
            )
            .order_by(Reservation.start_time)
            .all()
        )

    def find_by_id(self, reservation_id: int, reload: bool = False) -> Optional[Reservation]:
        """Get a reservation by ID; reload=True overwrites any copy already in the session"""
        query = self._query().filter(Reservation.id == reservation_id)
        if reload:
            query = query.populate_existing()
        return query.first()

    def exists_by_id(self, reservation_id: int) -> bool:
        return self.db.query(Reservation.id).filter(Reservation.id == reservation_id).first() is not None

    def find_all(self, skip: int = 0, limit: int = 100) -> List[Reservation]:
        return self._query().order_by(Reservation.start_time).offset(skip).limit(limit).all()

    def find_by_facility_id(self, facility_id: int) -> List[Reservation]:
        return self._query().filter(Reservation.facility_id == facility_id).order_by(Reservation.start_time).all()

    def find_by_user_id(self, user_id: int) -> List[Reservation]:
        return self._query().filter(Reservation.user_id == user_id).order_by(Reservation.start_time).all()

    def find_by_status_starting_after(self, status: ReservationStatus, start_time: datetime) -> List[Reservation]:
        """Reservations in the given status that start after start_time"""
        return (
            self._query()
            .filter(Reservation.status == status, Reservation.start_time > start_time)
            .order_by(Reservation.start_time)
            .all()
        )

    def save(self, reservation: Reservation) -> Reservation:
        """Insert or update a reservation and commit"""
        self.db.add(reservation)
        self.db.commit()
        self.db.refresh(reservation)
        return reservation

    def delete_by_id(self, reservation_id: int) -> None:
        self.db.query(Reservation).filter(Reservation.id == reservation_id).delete(synchronize_session=False)
        self.db.commit()

    @contextmanager
    def atomic(self):
        """
        Transaction scope for a check-then-write sequence. Anything the block
        read or locked is rolled back if it raises; save() commits on success.

        A transaction already open on the session is committed first, so reads
        inside the block see rows other workers committed before it started,
        also on REPEATABLE READ backends where the first read fixes the snapshot.
        """
        if self.db.in_transaction():
            self.db.commit()
        try:
            yield
        except Exception:
            self.db.rollback()
            raise
