"""Time slot model definitions."""

import enum

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, func
from telehealth.database import Base


class SlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"


class TimeSlot(Base):
    """A single bookable interval on a calendar date."""
    __tablename__ = "time_slots"
    __table_args__ = (
        Index("uq_time_slots_provider_date_start", "provider_id", "date", "start_time", unique=True),
        Index("idx_time_slots_provider_status", "provider_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    status = Column(String(16), nullable=False, default=SlotStatus.AVAILABLE.value)
    consultation_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return (
            f"<TimeSlot id={self.id} provider={self.provider_id} "
            f"{self.date} {self.start_time}-{self.end_time} {self.status}>"
        )
