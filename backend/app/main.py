"""FastAPI application for session verification and commitment tracking."""
import logging
import os
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from .db import ensure_schema, get_db
from . import models  # noqa: F401  registers tables on Base
from .payouts import settlement_for
from .repository import SqlCommitmentRepository
from .rules import can_record_session
from .schemas import (
    CanRecordResponse,
    CommitmentCreate,
    CommitmentProgress,
    CommitmentResponse,
    HealthResponse,
    LiveScoreResponse,
    SessionResponse,
    SessionTrace,
    Settlement,
    SubmissionResponse,
    VerificationVerdict,
    WorkoutResult,
    WorkoutSamples,
    WorkoutStart,
    WorkoutStarted,
)
from .scoring import is_live_plausible, verify_trace
from .settings import LOG_LEVEL
from .tracking import CommitmentLocks, CommitmentNotFound, create_commitment, refresh_progress, submit_session
from .verifier import get_verifier
from .workouts import WorkoutInProgress, WorkoutNotFound, WorkoutTracker

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Create or validate tables on startup
ensure_schema()

app = FastAPI(title="Stake Commitment Verification API", version="0.1.0")

# CORS configuration
_allowed_origins_env = os.getenv("ALLOWED_ORIGINS")
if _allowed_origins_env:
    allowed_origins = [origin.strip() for origin in _allowed_origins_env.split(",")]
else:
    allowed_origins = ["http://localhost:8501"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_locks = CommitmentLocks()
_workouts = WorkoutTracker()


def get_repository(db: Session = Depends(get_db)) -> SqlCommitmentRepository:
    return SqlCommitmentRepository(db)


def get_locks() -> CommitmentLocks:
    return _locks


def get_workouts() -> WorkoutTracker:
    return _workouts


def _require_commitment(repo: SqlCommitmentRepository, commitment_id: str) -> CommitmentResponse:
    commitment = repo.get_commitment(commitment_id)
    if commitment is None:
        raise HTTPException(status_code=404, detail="Commitment not found")
    return commitment


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


# Commitments

@app.post("/commitments", response_model=CommitmentResponse)
def post_commitment(body: CommitmentCreate, repo: SqlCommitmentRepository = Depends(get_repository)):
    """Register a commitment after its stake was captured."""
    return create_commitment(repo, body)


@app.get("/commitments", response_model=List[CommitmentResponse])
def list_commitments(repo: SqlCommitmentRepository = Depends(get_repository)):
    return repo.list_commitments()


@app.get("/commitments/{commitment_id}", response_model=CommitmentResponse)
def get_commitment(commitment_id: str, repo: SqlCommitmentRepository = Depends(get_repository)):
    return _require_commitment(repo, commitment_id)


@app.get("/commitments/{commitment_id}/sessions", response_model=List[SessionResponse])
def get_commitment_sessions(commitment_id: str, repo: SqlCommitmentRepository = Depends(get_repository)):
    """Accepted sessions for a commitment, ordered by date."""
    _require_commitment(repo, commitment_id)
    return repo.list_sessions(commitment_id)


@app.get("/commitments/{commitment_id}/can-record", response_model=CanRecordResponse)
def get_can_record(
    commitment_id: str,
    date: Optional[datetime] = None,
    repo: SqlCommitmentRepository = Depends(get_repository),
):
    """Whether a session on the given day (today by default) would be accepted."""
    _require_commitment(repo, commitment_id)
    existing = [s.date for s in repo.list_sessions(commitment_id)]
    return {"can_record": can_record_session(date or datetime.now(), existing)}


@app.get("/commitments/{commitment_id}/progress", response_model=CommitmentProgress)
def get_progress(
    commitment_id: str,
    repo: SqlCommitmentRepository = Depends(get_repository),
    locks: CommitmentLocks = Depends(get_locks),
):
    """Weekly progress and overall status; persists forward status transitions."""
    try:
        return refresh_progress(repo, locks, commitment_id)
    except CommitmentNotFound:
        raise HTTPException(status_code=404, detail="Commitment not found")


@app.get("/commitments/{commitment_id}/verifications", response_model=List[VerificationVerdict])
def get_verifications(commitment_id: str, repo: SqlCommitmentRepository = Depends(get_repository)):
    _require_commitment(repo, commitment_id)
    return repo.list_verifications(commitment_id)


@app.get("/commitments/{commitment_id}/settlement", response_model=Settlement)
def get_settlement(
    commitment_id: str,
    repo: SqlCommitmentRepository = Depends(get_repository),
    locks: CommitmentLocks = Depends(get_locks),
):
    """Payout or forfeiture owed for the commitment, for the payment collaborator."""
    try:
        progress = refresh_progress(repo, locks, commitment_id)
    except CommitmentNotFound:
        raise HTTPException(status_code=404, detail="Commitment not found")
    return settlement_for(progress.commitment)


# Verification

@app.post("/sessions/verify", response_model=VerificationVerdict)
def verify_session(trace: SessionTrace, repo: SqlCommitmentRepository = Depends(get_repository)):
    """Score a finished trace without recording anything but the verdict."""
    verdict = verify_trace(trace)
    repo.log_verification(trace.commitment_id, verdict)
    return verdict


@app.post("/commitments/{commitment_id}/sessions", response_model=SubmissionResponse)
def post_session(
    commitment_id: str,
    trace: SessionTrace,
    repo: SqlCommitmentRepository = Depends(get_repository),
    locks: CommitmentLocks = Depends(get_locks),
    verifier=Depends(get_verifier),
):
    """Verify a trace and record it as a session if accepted."""
    if trace.commitment_id != commitment_id:
        raise HTTPException(status_code=400, detail="Trace belongs to a different commitment")
    try:
        result = submit_session(repo, verifier, locks, trace)
    except CommitmentNotFound:
        raise HTTPException(status_code=404, detail="Commitment not found")
    if result.outcome == "unavailable":
        raise HTTPException(status_code=503, detail=f"Verification unavailable: {result.message}")
    return result


# Workouts

@app.post("/commitments/{commitment_id}/workouts", response_model=WorkoutStarted)
def start_workout(
    commitment_id: str,
    body: WorkoutStart,
    repo: SqlCommitmentRepository = Depends(get_repository),
    workouts: WorkoutTracker = Depends(get_workouts),
):
    commitment = _require_commitment(repo, commitment_id)
    if commitment.status != "active":
        raise HTTPException(status_code=409, detail=f"Commitment is {commitment.status}")
    try:
        workout = workouts.start(commitment_id, body.activity_type, body.device_info)
    except WorkoutInProgress:
        raise HTTPException(status_code=409, detail="Session already in progress")
    return WorkoutStarted(
        workout_id=workout.workout_id,
        commitment_id=workout.commitment_id,
        activity_type=workout.activity_type,
        start_time=workout.start_time,
    )


@app.post("/workouts/{workout_id}/samples", response_model=LiveScoreResponse)
def add_workout_samples(
    workout_id: str,
    body: WorkoutSamples,
    workouts: WorkoutTracker = Depends(get_workouts),
):
    try:
        workout = workouts.add_samples(workout_id, body.gps_points, body.heart_rate)
        score = workouts.live_score(workout_id)
    except WorkoutNotFound:
        raise HTTPException(status_code=404, detail="No workout in progress")
    return LiveScoreResponse(
        workout_id=workout_id,
        score=score,
        is_plausible=is_live_plausible(score),
        gps_points=len(workout.gps_points),
        heart_rate_samples=len(workout.heart_rate),
    )


@app.get("/workouts/{workout_id}/live-score", response_model=LiveScoreResponse)
def get_live_score(workout_id: str, workouts: WorkoutTracker = Depends(get_workouts)):
    try:
        workout = workouts.get(workout_id)
        score = workouts.live_score(workout_id)
    except WorkoutNotFound:
        raise HTTPException(status_code=404, detail="No workout in progress")
    return LiveScoreResponse(
        workout_id=workout_id,
        score=score,
        is_plausible=is_live_plausible(score),
        gps_points=len(workout.gps_points),
        heart_rate_samples=len(workout.heart_rate),
    )


@app.post("/workouts/{workout_id}/stop", response_model=WorkoutResult)
def stop_workout(
    workout_id: str,
    repo: SqlCommitmentRepository = Depends(get_repository),
    locks: CommitmentLocks = Depends(get_locks),
    workouts: WorkoutTracker = Depends(get_workouts),
    verifier=Depends(get_verifier),
):
    """Finish the workout, verify it and record it when accepted."""
    try:
        return workouts.stop(workout_id, lambda trace: submit_session(repo, verifier, locks, trace))
    except WorkoutNotFound:
        raise HTTPException(status_code=404, detail="No workout in progress")
    except CommitmentNotFound:
        raise HTTPException(status_code=404, detail="Commitment not found")


@app.post("/workouts/{workout_id}/cancel", response_model=WorkoutResult)
def cancel_workout(workout_id: str, workouts: WorkoutTracker = Depends(get_workouts)):
    """Abandon the workout. Nothing is recorded."""
    try:
        return workouts.cancel(workout_id)
    except WorkoutNotFound:
        raise HTTPException(status_code=404, detail="No workout in progress")
