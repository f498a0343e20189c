from typing import Optional
from sqlalchemy.orm import Session
from app.models.facility import Facility


class FacilityRepository:
    """Read-only facility lookups used by the booking engine."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, facility_id: int, for_update: bool = False) -> Optional[Facility]:
        """Get a facility by ID, optionally locking its row until the transaction ends."""
        query = self.db.query(Facility).filter(Facility.id == facility_id)
        if for_update:
            query = query.with_for_update()
        return query.first()
