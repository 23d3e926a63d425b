"""Therapy session model definitions."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from sparks.database import Base


class SessionStatus(str, enum.Enum):
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class MeetingType(str, enum.Enum):
    IN_PERSON = "IN_PERSON"
    ONLINE = "ONLINE"
    HYBRID = "HYBRID"

    @property
    def is_remote(self) -> bool:
        return self in (MeetingType.ONLINE, MeetingType.HYBRID)


class TherapySession(Base):
    """Represents a booked therapy session."""
    __tablename__ = "therapy_sessions"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=False, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Integer, nullable=False)
    status = Column(Enum(SessionStatus), nullable=False, default=SessionStatus.REQUESTED)
    type = Column(String, default="Individual")
    session_type = Column(Enum(MeetingType), nullable=False, default=MeetingType.IN_PERSON)
    booked_rate = Column(Numeric(10, 2), default=0)
    meeting_link = Column(String, nullable=True)
    calendar_event_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
