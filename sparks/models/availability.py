"""Availability model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sparks.database import Base


class AvailabilitySlot(Base):
    """A single bookable session window for one therapist on one date."""
    __tablename__ = "therapist_availability"
    __table_args__ = (
        UniqueConstraint("therapist_id", "date", "start_time", name="uq_availability_therapist_date_time"),
    )

    id = Column(Integer, primary_key=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM, 24-hour
    is_booked = Column(Boolean, default=False, nullable=False)
    is_free = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
