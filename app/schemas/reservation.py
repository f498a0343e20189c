from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional
from app.models.reservation import PURPOSE_MAX_LENGTH, Reservation, ReservationStatus
from app.utils.validation_helpers import to_local_naive


class ReservationCreate(BaseModel):
    facility_id: int
    start_time: datetime
    end_time: datetime
    purpose: Optional[str] = Field(default=None, max_length=PURPOSE_MAX_LENGTH)

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time(cls, value):
        return to_local_naive(value)


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    facility_id: int
    facility_name: Optional[str] = None
    user_id: int
    username: Optional[str] = None
    start_time: datetime
    end_time: datetime
    purpose: Optional[str] = None
    status: ReservationStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_reservation(cls, reservation: Reservation) -> "ReservationResponse":
        response = cls.model_validate(reservation)
        response.facility_name = reservation.facility.name if reservation.facility else None
        response.username = reservation.user.username if reservation.user else None
        return response


class AvailabilityResponse(BaseModel):
    facility_id: int
    start_time: datetime
    end_time: datetime
    available: bool
