"""Storage boundary for commitments, sessions and verdicts.

The rule engine never reaches into storage itself; callers load a snapshot
through a repository, evaluate it, and write back through the same object.
"""
import json
import logging
from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Commitment, WorkoutSession, VerificationLog
from .rules import as_local
from .schemas import CommitmentResponse, SessionResponse, VerificationVerdict

logger = logging.getLogger(__name__)


class DuplicateSession(Exception):
    """The session would break one of the sessions table's uniqueness rules."""


class DuplicateSessionDay(DuplicateSession):
    """A session already exists for this commitment on that calendar day."""


class DuplicateSessionId(DuplicateSession):
    """A session with this id was already recorded."""


class CommitmentRepository(Protocol):
    def get_commitment(self, commitment_id: str) -> Optional[CommitmentResponse]: ...

    def list_commitments(self) -> List[CommitmentResponse]: ...

    def add_commitment(self, commitment: CommitmentResponse) -> CommitmentResponse: ...

    def save_commitment(self, commitment: CommitmentResponse) -> CommitmentResponse: ...

    def list_sessions(self, commitment_id: str) -> List[SessionResponse]: ...

    def append_session(self, session: SessionResponse) -> SessionResponse: ...

    def log_verification(self, commitment_id: str, verdict: VerificationVerdict) -> None: ...

    def list_verifications(self, commitment_id: str) -> List[VerificationVerdict]: ...


class SqlCommitmentRepository:
    """CommitmentRepository backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def get_commitment(self, commitment_id: str) -> Optional[CommitmentResponse]:
        row = self.db.query(Commitment).filter(Commitment.id == commitment_id).first()
        if row is None:
            return None
        return CommitmentResponse.model_validate(row)

    def list_commitments(self) -> List[CommitmentResponse]:
        rows = self.db.query(Commitment).order_by(Commitment.created_at).all()
        return [CommitmentResponse.model_validate(r) for r in rows]

    def add_commitment(self, commitment: CommitmentResponse) -> CommitmentResponse:
        now = datetime.now()
        row = Commitment(
            **commitment.model_dump(exclude={"last_evaluated_at"}),
            created_at=now,
            updated_at=now,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return CommitmentResponse.model_validate(row)

    def save_commitment(self, commitment: CommitmentResponse) -> CommitmentResponse:
        """Persist the mutable fields: status, payout status and evaluation time."""
        row = self.db.query(Commitment).filter(Commitment.id == commitment.id).one()
        row.status = commitment.status
        row.payout_status = commitment.payout_status
        row.last_evaluated_at = commitment.last_evaluated_at
        row.updated_at = datetime.now()
        self.db.commit()
        self.db.refresh(row)
        return CommitmentResponse.model_validate(row)

    def list_sessions(self, commitment_id: str) -> List[SessionResponse]:
        rows = (
            self.db.query(WorkoutSession)
            .filter(WorkoutSession.commitment_id == commitment_id)
            .order_by(WorkoutSession.date)
            .all()
        )
        return [SessionResponse.model_validate(r) for r in rows]

    def append_session(self, session: SessionResponse) -> SessionResponse:
        if self.db.get(WorkoutSession, session.id) is not None:
            raise DuplicateSessionId(f"Session {session.id} was already recorded")
        local_date = as_local(session.date)
        row = WorkoutSession(
            id=session.id,
            commitment_id=session.commitment_id,
            date=local_date,
            session_day=local_date.date(),
            duration=session.duration,
            distance=session.distance,
            heart_rate=session.heart_rate,
            verified=session.verified,
            created_at=session.created_at,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if self.db.get(WorkoutSession, session.id) is not None:
                raise DuplicateSessionId(f"Session {session.id} was already recorded") from exc
            raise DuplicateSessionDay(
                f"Commitment {session.commitment_id} already has a session on {local_date.date()}"
            ) from exc
        self.db.refresh(row)
        return SessionResponse.model_validate(row)

    def log_verification(self, commitment_id: str, verdict: VerificationVerdict) -> None:
        self.db.add(VerificationLog(
            session_id=verdict.session_id,
            commitment_id=commitment_id,
            status=verdict.status,
            verification_score=verdict.verification_score,
            verdict_json=verdict.model_dump_json(),
            created_at=datetime.now(),
        ))
        self.db.commit()

    def list_verifications(self, commitment_id: str) -> List[VerificationVerdict]:
        rows = (
            self.db.query(VerificationLog)
            .filter(VerificationLog.commitment_id == commitment_id)
            .order_by(VerificationLog.id)
            .all()
        )
        return [VerificationVerdict.model_validate(json.loads(r.verdict_json)) for r in rows]
