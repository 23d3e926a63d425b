"""Therapist profile model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from sparks.database import Base
from sparks.models.user import User


class Therapist(Base):
    """Therapist profile attached to a user account."""
    __tablename__ = "therapists"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    specialization = Column(String)
    session_rate = Column(Numeric(10, 2), default=0)

    user = relationship(User)
