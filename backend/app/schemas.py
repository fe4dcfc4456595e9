"""Pydantic schemas for telemetry, verdicts and commitment progress."""
from datetime import datetime
from typing import List, Optional, Literal

from pydantic import BaseModel, Field, ConfigDict


MovementPattern = Literal["consistent", "erratic", "suspicious"]
EffortLevel = Literal["low", "moderate", "high", "extreme"]
FlagType = Literal[
    "gps_inconsistency",
    "speed_anomaly",
    "heart_rate_anomaly",
    "distance_mismatch",
    "time_manipulation",
    "location_spoofing",
]
Severity = Literal["low", "medium", "high"]
VerificationStatus = Literal["verified", "suspicious", "rejected"]
CommitmentStatus = Literal["active", "completed", "failed", "paused"]
PayoutStatus = Literal["pending", "completed", "failed"]
SubmissionOutcome = Literal[
    "recorded",
    "rejected",
    "duplicate_day",
    "already_recorded",
    "out_of_window",
    "inactive",
    "unavailable",
]


# Telemetry

class GPSPoint(BaseModel):
    """A single location sample from the device."""
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    altitude: Optional[float] = None
    accuracy: Optional[float] = None  # meters
    speed: Optional[float] = None  # m/s, device reported
    timestamp: int  # epoch ms


class HealthSample(BaseModel):
    """Heart-rate readings plus optional counters collected during a session."""
    model_config = ConfigDict(frozen=True)

    heart_rate: List[float] = Field(default_factory=list)
    steps: Optional[int] = None
    distance: Optional[float] = None
    calories: Optional[float] = None
    active_energy_burned: Optional[float] = None
    workout_type: Optional[str] = None


class DeviceInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    platform: str = "unknown"
    device_id: str = "unknown"
    app_version: str = "0.0.0"


class SessionTrace(BaseModel):
    """A complete, already-terminated workout trace submitted for verification."""
    model_config = ConfigDict(frozen=True)

    session_id: str
    commitment_id: str
    activity_type: str = "running"
    start_time: int  # epoch ms
    end_time: int  # epoch ms
    gps_points: List[GPSPoint] = Field(default_factory=list)
    health: HealthSample = Field(default_factory=HealthSample)
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)


# Verification

class VerificationAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_distance: float  # km
    average_speed: float  # m/s
    max_speed: float  # m/s
    elevation_gain: float  # m
    average_heart_rate: float
    max_heart_rate: float
    calories_burned: int
    route_consistency: float
    movement_pattern: MovementPattern
    estimated_effort: EffortLevel


class VerificationFlag(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: FlagType
    severity: Severity
    message: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class VerificationVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    is_verified: bool
    verification_score: float = Field(..., ge=0.0, le=1.0)
    flags: List[VerificationFlag]
    analysis: VerificationAnalysis
    status: VerificationStatus


class LiveScoreResponse(BaseModel):
    """In-progress feedback from the weighted live scorer."""
    workout_id: str
    score: float
    is_plausible: bool
    gps_points: int
    heart_rate_samples: int


# Commitments

class CommitmentCreate(BaseModel):
    """Request to set up a commitment. Payment is captured before this call."""
    activity: str
    duration: str = "2 Weeks"
    frequency: str = "3x per week"
    stake: float = Field(..., gt=0)
    bonus: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None


class CommitmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str = ""
    description: str = ""
    activity: str
    duration: str
    frequency: str
    stake: float
    bonus: Optional[float] = None
    start_date: datetime
    end_date: datetime
    status: CommitmentStatus = "active"
    payout_status: Optional[PayoutStatus] = None
    last_evaluated_at: Optional[datetime] = None


class SessionResponse(BaseModel):
    """An accepted workout session."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    commitment_id: str
    date: datetime
    duration: int  # minutes
    distance: Optional[float] = None  # km
    heart_rate: Optional[int] = None  # avg bpm
    verified: bool = True
    created_at: datetime


class WeeklyRequirement(BaseModel):
    week_number: int
    required_sessions: int
    completed_sessions: int = 0
    week_start: datetime
    week_end: datetime
    is_completed: bool = False
    is_failed: bool = False
    remaining_days: int = 0


class CommitmentProgress(BaseModel):
    commitment: CommitmentResponse
    current_week: int  # 1-based
    total_weeks: int
    weekly_requirements: List[WeeklyRequirement]
    total_sessions_completed: int
    total_sessions_required: int
    status: CommitmentStatus
    can_still_succeed: bool
    next_deadline: datetime
    days_remaining_in_week: int
    sessions_needed_this_week: int


class SubmissionResponse(BaseModel):
    """Result of submitting a trace for a commitment."""
    outcome: SubmissionOutcome
    message: str
    verdict: Optional[VerificationVerdict] = None
    session: Optional[SessionResponse] = None
    progress: Optional[CommitmentProgress] = None


class CanRecordResponse(BaseModel):
    can_record: bool


class Settlement(BaseModel):
    """What the payment collaborator owes or keeps for a commitment."""
    commitment_id: str
    status: CommitmentStatus
    payout_status: Optional[PayoutStatus] = None
    payout_amount: Optional[float] = None
    amount_cents: Optional[int] = None
    loss_amount: Optional[float] = None


# Workouts

class WorkoutStart(BaseModel):
    activity_type: str = "running"
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)


class WorkoutStarted(BaseModel):
    workout_id: str
    commitment_id: str
    activity_type: str
    start_time: int


class WorkoutSamples(BaseModel):
    gps_points: List[GPSPoint] = Field(default_factory=list)
    heart_rate: List[float] = Field(default_factory=list)


class WorkoutResult(BaseModel):
    """Terminal outcome of an in-progress workout."""
    workout_id: str
    outcome: Literal[
        "recorded",
        "rejected",
        "duplicate_day",
        "already_recorded",
        "out_of_window",
        "inactive",
        "unavailable",
        "cancelled",
    ]
    message: str
    submission: Optional[SubmissionResponse] = None


class HealthResponse(BaseModel):
    """Response for health check."""
    status: str
