"""Patient and guardian model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from sparks.database import Base
from sparks.models.therapist import Therapist


class Patient(Base):
    """A patient profile. Children managed by a parent have no user of their own."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    primary_therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=True)

    primary_therapist = relationship(Therapist)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ParentGuardian(Base):
    """Links a parent/guardian user to a child patient."""
    __tablename__ = "parent_guardians"
    __table_args__ = (UniqueConstraint("user_id", "patient_id", name="uq_parent_guardian"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    relationship_type = Column(String, default="parent")
