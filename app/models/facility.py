from datetime import datetime
from sqlalchemy.orm import relationship
from sqlalchemy import Column, DateTime, Integer, String
from app.db import Base


class Facility(Base):
    __tablename__ = "facilities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), index=True, nullable=False)
    description = Column(String, nullable=True)
    capacity = Column(Integer, nullable=True)
    location = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    reservations = relationship(
        "Reservation", back_populates="facility", cascade="all, delete-orphan"
    )
