import enum
from datetime import datetime
from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from app.db import Base


PURPOSE_MAX_LENGTH = 500


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    purpose = Column(String(PURPOSE_MAX_LENGTH), nullable=True)
    status = Column(
        Enum(ReservationStatus, native_enum=False, length=20),
        nullable=False,
        default=ReservationStatus.PENDING,
    )
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    facility = relationship("Facility", back_populates="reservations")
    user = relationship("User", back_populates="reservations")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="reservation_time_valid"),
        Index("ix_reservations_facility_window", "facility_id", "status", "start_time", "end_time"),
    )

    def __repr__(self):
        return (
            f"<Reservation(id={self.id}, facility={self.facility_id}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )
