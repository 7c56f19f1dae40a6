"""Recurring availability model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, func, text
from telehealth.database import Base


class RecurringAvailability(Base):
    """A weekly window during which a provider accepts consultations."""
    __tablename__ = "recurring_availability"
    __table_args__ = (
        Index(
            "uq_recurring_availability_active_day",
            "provider_id",
            "day_of_week",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_recurring_availability_provider", "provider_id", "is_active"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return (
            f"<RecurringAvailability id={self.id} provider={self.provider_id} "
            f"day={self.day_of_week} {self.start_time}-{self.end_time} active={self.is_active}>"
        )
