from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from datetime import datetime
from sqlalchemy.orm import Session
from app.config import get_settings
from app.db import get_db
from app.exceptions import NotFoundError
from app.models.reservation import ReservationStatus
from app.repositories.facility_repository import FacilityRepository
from app.repositories.reservation_repository import ReservationRepository
from app.repositories.user_repository import UserRepository
from app.schemas.reservation import AvailabilityResponse, ReservationCreate, ReservationResponse
from app.services.booking_engine import BookingEngine
from app.utils.auth import get_current_user, require_admin
from app.utils.validation_helpers import to_local_naive
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/reservations",
    tags=["reservations"],
)


def get_booking_engine(db: Session = Depends(get_db)) -> BookingEngine:
    """Build a booking engine bound to the request's database session."""
    settings = get_settings()
    return BookingEngine(
        FacilityRepository(db),
        UserRepository(db),
        ReservationRepository(db),
        strict_status_transitions=settings.strict_status_transitions,
        recheck_on_approve=settings.recheck_on_approve,
    )


@router.get(
    "/",
    response_model=List[ReservationResponse],
    summary="List all reservations",
)
def get_reservations(skip: int = 0, limit: int = 100, engine: BookingEngine = Depends(get_booking_engine)):
    """
    Retrieve a paginated list of reservations ordered by start time.

    - **skip**: Number of reservations to skip.
    - **limit**: Maximum number of reservations to return.
    """
    reservations = engine.list_reservations(skip, limit)
    logger.debug(f"Retrieved {len(reservations)} reservations")
    return [ReservationResponse.from_reservation(r) for r in reservations]


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    summary="Check whether a time slot is free",
    description="A slot is free when no APPROVED reservation of the facility touches or overlaps it.",
)
def check_availability(
    facility_id: int,
    start_time: datetime,
    end_time: datetime,
    exclude_reservation_id: Optional[int] = None,
    engine: BookingEngine = Depends(get_booking_engine),
):
    if engine.facilities.get_by_id(facility_id) is None:
        logger.error(f"Facility not found: {facility_id}")
        raise NotFoundError("facility", facility_id)
    start_time, end_time = to_local_naive(start_time), to_local_naive(end_time)
    available = engine.check_availability(facility_id, start_time, end_time, exclude_reservation_id)
    return AvailabilityResponse(
        facility_id=facility_id, start_time=start_time, end_time=end_time, available=available
    )


@router.get("/facility/{facility_id}", response_model=List[ReservationResponse])
def get_reservations_by_facility(facility_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return [ReservationResponse.from_reservation(r) for r in engine.list_by_facility(facility_id)]


@router.get("/user/{user_id}", response_model=List[ReservationResponse])
def get_reservations_by_user(user_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return [ReservationResponse.from_reservation(r) for r in engine.list_by_user(user_id)]


@router.get(
    "/status/{reservation_status}",
    response_model=List[ReservationResponse],
    summary="List upcoming reservations by status",
)
def get_reservations_by_status(
    reservation_status: str, engine: BookingEngine = Depends(get_booking_engine)
):
    """Only reservations starting after the current time are returned. The status is case-insensitive."""
    try:
        parsed = ReservationStatus(reservation_status.upper())
    except ValueError:
        logger.error(f"Unknown reservation status: {reservation_status}")
        raise HTTPException(
            status_code=422,
            detail=f"Unknown reservation status: {reservation_status}",
        ) from None
    return [ReservationResponse.from_reservation(r) for r in engine.list_by_status(parsed)]


@router.get("/{reservation_id}", response_model=ReservationResponse, summary="Get a reservation by ID")
def get_reservation(reservation_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    reservation = engine.get_reservation(reservation_id)
    logger.debug(f"Retrieved reservation: {reservation_id}")
    return ReservationResponse.from_reservation(reservation)


@router.post(
    "/",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new reservation",
    description="Request a facility for a time window. The reservation starts as PENDING. Requires authentication.",
)
def create_reservation(
    reservation: ReservationCreate,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: dict = Depends(get_current_user),
):
    """
    Create a new reservation for the authenticated user.

    - **facility_id**: ID of the facility to book.
    - **start_time**: Start of the window; must not be in the past.
    - **end_time**: End of the window; must be after start_time.
    - **purpose**: Optional purpose, at most 500 characters.
    """
    logger.debug(f"Creating reservation for user: {current_user['username']}, facility_id: {reservation.facility_id}")
    created = engine.create_reservation(
        reservation.facility_id,
        current_user["id"],
        reservation.start_time,
        reservation.end_time,
        reservation.purpose,
    )
    return ReservationResponse.from_reservation(created)


@router.patch(
    "/{reservation_id}/status",
    response_model=ReservationResponse,
    summary="Change a reservation's status",
    description="Approve, reject or cancel a reservation. Requires the ADMIN role.",
)
def update_reservation_status(
    reservation_id: int,
    new_status: ReservationStatus = Query(..., alias="status"),
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: dict = Depends(require_admin),
):
    logger.debug(f"User {current_user['username']} sets reservation {reservation_id} to {new_status.value}")
    return ReservationResponse.from_reservation(engine.update_status(reservation_id, new_status))


@router.delete(
    "/{reservation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a reservation",
)
def delete_reservation(
    reservation_id: int,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: dict = Depends(get_current_user),
):
    logger.debug(f"User {current_user['username']} deletes reservation {reservation_id}")
    engine.delete(reservation_id)
    return None
