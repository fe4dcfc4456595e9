"""Commitment tracking: setup, session recording and status persistence.

Session recording and progress re-evaluation for one commitment run under
that commitment's lock, so two submissions never fold into the weekly view
from different snapshots of the session history.
"""
import logging
import math
import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, Optional

from .payouts import default_bonus
from .repository import CommitmentRepository, DuplicateSessionDay, DuplicateSessionId
from .rules import TERMINAL_STATUSES, as_local, can_record_session, compute_progress, in_recording_window
from .schemas import (
    CommitmentCreate,
    CommitmentProgress,
    CommitmentResponse,
    SessionResponse,
    SessionTrace,
    SubmissionResponse,
    VerificationVerdict,
)
from .verifier import VerificationUnavailable

logger = logging.getLogger(__name__)

DURATION_DAYS = {
    "1 week": 7,
    "2 weeks": 14,
    "3 weeks": 21,
}
DEFAULT_DURATION_DAYS = 30


class CommitmentNotFound(Exception):
    pass


class CommitmentLocks:
    """One lock per commitment id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def for_commitment(self, commitment_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(commitment_id)
            if lock is None:
                lock = self._locks[commitment_id] = threading.Lock()
            return lock


def duration_days(label: str) -> int:
    return DURATION_DAYS.get(label.strip().lower(), DEFAULT_DURATION_DAYS)


def create_commitment(
    repo: CommitmentRepository,
    request: CommitmentCreate,
    now: Optional[datetime] = None,
) -> CommitmentResponse:
    """Register a commitment whose stake has already been captured."""
    start = as_local(request.start_date or now or datetime.now())
    commitment = CommitmentResponse(
        id=f"commitment_{uuid.uuid4().hex[:12]}",
        title=f"{request.activity} Challenge",
        description=f"{request.activity} {request.frequency} for {request.duration}",
        activity=request.activity,
        duration=request.duration,
        frequency=request.frequency,
        stake=request.stake,
        bonus=request.bonus if request.bonus is not None else default_bonus(request.stake),
        start_date=start,
        end_date=start + timedelta(days=duration_days(request.duration)),
        status="active",
    )
    created = repo.add_commitment(commitment)
    logger.info(
        "Created commitment %s: %s, stake %.2f, bonus %.2f",
        created.id, created.description, created.stake, created.bonus,
    )
    return created


def _evaluate(repo: CommitmentRepository, commitment: CommitmentResponse, now: datetime) -> CommitmentProgress:
    """Evaluate progress and persist a forward active -> completed/failed transition."""
    progress = compute_progress(commitment, repo.list_sessions(commitment.id), now)

    if commitment.status == "active" and progress.status in TERMINAL_STATUSES:
        updated = commitment.model_copy(update={
            "status": progress.status,
            "payout_status": "pending" if progress.status == "completed" else commitment.payout_status,
            "last_evaluated_at": now,
        })
        saved = repo.save_commitment(updated)
        logger.info("Commitment %s moved active -> %s", commitment.id, progress.status)
        progress = progress.model_copy(update={"commitment": saved})

    return progress


def refresh_progress(
    repo: CommitmentRepository,
    locks: CommitmentLocks,
    commitment_id: str,
    now: Optional[datetime] = None,
) -> CommitmentProgress:
    now = as_local(now or datetime.now())
    with locks.for_commitment(commitment_id):
        commitment = repo.get_commitment(commitment_id)
        if commitment is None:
            raise CommitmentNotFound(commitment_id)
        return _evaluate(repo, commitment, now)


def session_from_verdict(trace: SessionTrace, verdict: VerificationVerdict, now: datetime) -> SessionResponse:
    analysis = verdict.analysis
    return SessionResponse(
        id=trace.session_id,
        commitment_id=trace.commitment_id,
        date=datetime.fromtimestamp(trace.start_time / 1000.0),
        duration=int(math.floor((trace.end_time - trace.start_time) / 60000.0 + 0.5)),
        distance=analysis.total_distance,
        heart_rate=int(math.floor(analysis.average_heart_rate + 0.5)) if analysis.average_heart_rate else None,
        verified=True,
        created_at=now,
    )


def _rejection_message(verdict: VerificationVerdict) -> str:
    if verdict.flags:
        return "Session verification failed: " + ", ".join(f.message for f in verdict.flags)
    return f"Session verification failed: score {verdict.verification_score:.2f}"


def submit_session(
    repo: CommitmentRepository,
    verifier,
    locks: CommitmentLocks,
    trace: SessionTrace,
    now: Optional[datetime] = None,
) -> SubmissionResponse:
    """Verify a finished trace and record it as a session when accepted."""
    now = as_local(now or datetime.now())
    if repo.get_commitment(trace.commitment_id) is None:
        raise CommitmentNotFound(trace.commitment_id)

    outcome = verifier.verify(trace)
    if isinstance(outcome, VerificationUnavailable):
        logger.warning("Verification unavailable for %s: %s", trace.session_id, outcome.reason)
        return SubmissionResponse(outcome="unavailable", message=outcome.reason)

    verdict = outcome.verdict
    repo.log_verification(trace.commitment_id, verdict)
    if not verdict.is_verified:
        logger.info("Session %s not recorded: %s", trace.session_id, verdict.status)
        return SubmissionResponse(outcome="rejected", message=_rejection_message(verdict), verdict=verdict)

    with locks.for_commitment(trace.commitment_id):
        commitment = repo.get_commitment(trace.commitment_id)
        # Settle the status as of now first so a late session cannot revive
        # a commitment whose week already closed short
        current = _evaluate(repo, commitment, now)
        if current.status != "active":
            return SubmissionResponse(
                outcome="inactive",
                message=f"Commitment is {current.status}",
                verdict=verdict,
            )
        commitment = current.commitment

        session = session_from_verdict(trace, verdict, now)
        if not in_recording_window(session.date, current.weekly_requirements, now):
            logger.info("Session %s refused: %s is outside the open week", trace.session_id, session.date)
            return SubmissionResponse(
                outcome="out_of_window",
                message="Sessions can only be recorded for the current week, up to now",
                verdict=verdict,
            )

        existing = [s.date for s in repo.list_sessions(commitment.id)]
        if not can_record_session(session.date, existing):
            logger.info("Session %s refused: already one on %s", trace.session_id, session.date.date())
            return SubmissionResponse(
                outcome="duplicate_day",
                message="A session was already recorded on this day",
                verdict=verdict,
            )

        try:
            recorded = repo.append_session(session)
        except DuplicateSessionDay as exc:
            return SubmissionResponse(outcome="duplicate_day", message=str(exc), verdict=verdict)
        except DuplicateSessionId as exc:
            return SubmissionResponse(outcome="already_recorded", message=str(exc), verdict=verdict)

        progress = _evaluate(repo, commitment, now)

    logger.info("Recorded session %s for commitment %s", recorded.id, recorded.commitment_id)
    return SubmissionResponse(
        outcome="recorded",
        message="Session verified and recorded",
        verdict=verdict,
        session=recorded,
        progress=progress,
    )
