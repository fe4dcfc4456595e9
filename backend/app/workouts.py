"""In-progress workouts: collect samples, give live feedback, stop or cancel.

A cancelled workout is a terminal outcome of its own: nothing is verified,
nothing is recorded and the commitment is left untouched.
"""
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .schemas import (
    DeviceInfo,
    GPSPoint,
    HealthSample,
    SessionTrace,
    SubmissionResponse,
    WorkoutResult,
)
from .scoring import live_verification_score

logger = logging.getLogger(__name__)


class WorkoutNotFound(Exception):
    pass


class WorkoutInProgress(Exception):
    """The commitment already has a workout being recorded."""


@dataclass
class ActiveWorkout:
    workout_id: str
    commitment_id: str
    activity_type: str
    start_time: int  # epoch ms
    device_info: DeviceInfo
    gps_points: List[GPSPoint] = field(default_factory=list)
    heart_rate: List[float] = field(default_factory=list)

    def to_trace(self, end_time: int) -> SessionTrace:
        return SessionTrace(
            session_id=self.workout_id,
            commitment_id=self.commitment_id,
            activity_type=self.activity_type,
            start_time=self.start_time,
            end_time=end_time,
            gps_points=list(self.gps_points),
            health=HealthSample(heart_rate=list(self.heart_rate), workout_type=self.activity_type),
            device_info=self.device_info,
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


class WorkoutTracker:
    """Registry of workouts currently being recorded."""

    def __init__(self, clock: Callable[[], int] = _now_ms):
        self._clock = clock
        self._lock = threading.Lock()
        self._workouts: Dict[str, ActiveWorkout] = {}

    def start(
        self,
        commitment_id: str,
        activity_type: str = "running",
        device_info: Optional[DeviceInfo] = None,
    ) -> ActiveWorkout:
        with self._lock:
            if any(w.commitment_id == commitment_id for w in self._workouts.values()):
                raise WorkoutInProgress(commitment_id)
            start_time = self._clock()
            workout = ActiveWorkout(
                workout_id=f"session_{start_time}_{uuid.uuid4().hex[:6]}",
                commitment_id=commitment_id,
                activity_type=activity_type,
                start_time=start_time,
                device_info=device_info or DeviceInfo(),
            )
            self._workouts[workout.workout_id] = workout
        logger.info("Started workout %s for commitment %s", workout.workout_id, commitment_id)
        return workout

    def get(self, workout_id: str) -> ActiveWorkout:
        with self._lock:
            workout = self._workouts.get(workout_id)
        if workout is None:
            raise WorkoutNotFound(workout_id)
        return workout

    def add_samples(self, workout_id: str, gps_points=(), heart_rate=()) -> ActiveWorkout:
        with self._lock:
            workout = self._workouts.get(workout_id)
            if workout is None:
                raise WorkoutNotFound(workout_id)
            workout.gps_points.extend(gps_points)
            workout.heart_rate.extend(heart_rate)
        return workout

    def live_score(self, workout_id: str) -> float:
        workout = self.get(workout_id)
        with self._lock:
            trace = workout.to_trace(self._clock())
        return live_verification_score(trace)

    def _pop(self, workout_id: str) -> ActiveWorkout:
        with self._lock:
            workout = self._workouts.pop(workout_id, None)
        if workout is None:
            raise WorkoutNotFound(workout_id)
        return workout

    def stop(self, workout_id: str, submit: Callable[[SessionTrace], SubmissionResponse]) -> WorkoutResult:
        """End the workout and hand the finished trace to ``submit``.

        The workout leaves the registry even if ``submit`` raises.
        """
        workout = self._pop(workout_id)
        trace = workout.to_trace(self._clock())
        submission = submit(trace)
        logger.info("Workout %s stopped: %s", workout_id, submission.outcome)
        return WorkoutResult(
            workout_id=workout_id,
            outcome=submission.outcome,
            message=submission.message,
            submission=submission,
        )

    def cancel(self, workout_id: str) -> WorkoutResult:
        self._pop(workout_id)
        logger.info("Workout %s cancelled", workout_id)
        return WorkoutResult(workout_id=workout_id, outcome="cancelled", message="Workout cancelled")
