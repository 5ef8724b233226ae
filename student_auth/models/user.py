"""User model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String
from student_auth.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A registered student account.

    ``identifier`` is stored uppercase and ``email`` lowercase; both carry
    unique constraints so the database has the final say on duplicates.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    identifier = Column(String(64), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    email = Column(String(320), unique=True, index=True, nullable=False)
    password_hash = Column(String(128), nullable=False)
    department = Column(String(255))
    cohort_year = Column(String(32))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def public_profile(self) -> dict:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "fullName": self.full_name,
            "email": self.email,
        }

    def full_profile(self) -> dict:
        profile = self.public_profile()
        profile["department"] = self.department
        profile["cohortYear"] = self.cohort_year
        return profile
