"""Stored OAuth credentials for calendar providers."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sparks.database import Base


class CalendarCredential(Base):
    __tablename__ = "calendar_credentials"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_calendar_credential_user_provider"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String, nullable=False, default="google")
    access_token = Column(String)
    refresh_token = Column(String)
    expires_at = Column(DateTime(timezone=True), nullable=True)
