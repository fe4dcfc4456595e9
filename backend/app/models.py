"""SQLAlchemy ORM models."""
from sqlalchemy import Column, Integer, String, Boolean, Float, Text, DateTime, Date, UniqueConstraint

from .db import Base


class Commitment(Base):
    """A staked fitness commitment. Payment is captured before the row exists."""
    __tablename__ = "commitments"

    id = Column(String, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    activity = Column(String, nullable=False)
    duration = Column(String, nullable=False)
    frequency = Column(String, nullable=False)
    stake = Column(Float, nullable=False)
    bonus = Column(Float, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="active")  # active/completed/failed/paused
    payout_status = Column(String, nullable=True)  # pending/completed/failed
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)
    last_evaluated_at = Column(DateTime, nullable=True)


class WorkoutSession(Base):
    """An accepted, verified workout. Immutable once written."""
    __tablename__ = "sessions"
    __table_args__ = (
        UniqueConstraint("commitment_id", "session_day", name="uq_sessions_commitment_day"),
    )

    id = Column(String, primary_key=True, index=True)
    commitment_id = Column(String, index=True, nullable=False)
    date = Column(DateTime, nullable=False)
    session_day = Column(Date, nullable=False)  # local calendar day of `date`
    duration = Column(Integer, nullable=False)  # minutes
    distance = Column(Float, nullable=True)  # km
    heart_rate = Column(Integer, nullable=True)  # avg bpm
    verified = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False)


class VerificationLog(Base):
    """Every verdict produced for a submitted trace, accepted or not."""
    __tablename__ = "verification_log"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, index=True, nullable=False)
    commitment_id = Column(String, index=True, nullable=False)
    status = Column(String, nullable=False)  # verified/suspicious/rejected
    verification_score = Column(Float, nullable=False)
    verdict_json = Column(Text, nullable=False)  # full VerificationVerdict
    created_at = Column(DateTime, nullable=False)
