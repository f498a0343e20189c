"""Error kinds raised by the booking engine.

The HTTP layer maps each kind to a status code in ``app.main``; the
``context`` dict is merged into the JSON error body so a client can tell
which resource or rule was involved.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Optional


class BookingError(Exception):
    code = "booking_error"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.context}


class NotFoundError(BookingError):
    code = "not_found"

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource.capitalize()} not found: {resource_id}",
            {"resource": resource, "resource_id": resource_id},
        )


class InvalidArgumentError(BookingError):
    code = "invalid_argument"

    def __init__(self, rule: str, message: str, **context: Any):
        self.rule = rule
        super().__init__(message, {"rule": rule, **context})


class ConflictError(BookingError):
    code = "conflict"

    def __init__(
        self,
        facility_id: int,
        start_time: datetime,
        end_time: datetime,
        conflicting_ids: Iterable[int] = (),
    ):
        self.facility_id = facility_id
        self.start_time = start_time
        self.end_time = end_time
        self.conflicting_ids = list(conflicting_ids)
        super().__init__(
            "Facility is already booked for this time slot",
            {
                "rule": "slot_already_booked",
                "facility_id": facility_id,
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "conflicting_ids": self.conflicting_ids,
            },
        )
