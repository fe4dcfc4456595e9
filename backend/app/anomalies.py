"""Fraud-signal detection over a telemetry trace and its analysis."""
import logging
from typing import List

from .geo import segment_speeds
from .schemas import SessionTrace, VerificationAnalysis, VerificationFlag

logger = logging.getLogger(__name__)

MAX_RUNNING_SPEED_MPS = 15.0  # ~54 km/h
MAX_REASONABLE_SPEED_MPS = 20.0  # ~72 km/h between two fixes
ACCURATE_FIX_M = 10.0
MISSING_ACCURACY_M = 100.0
MIN_ACCURATE_RATIO = 0.5
MIN_PLAUSIBLE_HR = 80.0
MAX_PLAUSIBLE_HR = 200.0


def detect_anomalies(trace: SessionTrace, analysis: VerificationAnalysis) -> List[VerificationFlag]:
    """
    Scan a trace for fraud signals.

    Checks run in a fixed order and every hit adds a flag (no dedup):
    1. max speed above 15 m/s -> speed_anomaly
    2. under half the fixes better than 10 m -> gps_inconsistency
    3. average heart rate outside [80, 200] -> heart_rate_anomaly
    4. any pair of fixes implying more than 20 m/s -> location_spoofing
    5. fewer than two fixes -> distance_mismatch
    6. backwards timestamps or a non-positive session window -> time_manipulation
    """
    flags: List[VerificationFlag] = []

    if analysis.max_speed > MAX_RUNNING_SPEED_MPS:
        flags.append(VerificationFlag(
            type="speed_anomaly",
            severity="high",
            message=f"Maximum speed of {analysis.max_speed * 3.6:.1f} km/h is unrealistic for running",
            confidence=0.95,
        ))

    if accurate_fix_ratio(trace) < MIN_ACCURATE_RATIO:
        flags.append(VerificationFlag(
            type="gps_inconsistency",
            severity="medium",
            message="Poor GPS accuracy detected - possible indoor activity or GPS spoofing",
            confidence=0.7,
        ))

    # An empty heart-rate series averages to 0 and is flagged too
    if analysis.average_heart_rate < MIN_PLAUSIBLE_HR or analysis.average_heart_rate > MAX_PLAUSIBLE_HR:
        flags.append(VerificationFlag(
            type="heart_rate_anomaly",
            severity="medium",
            message=f"Average heart rate of {analysis.average_heart_rate:.0f} BPM is unusual",
            confidence=0.6,
        ))

    if detect_teleportation(trace):
        flags.append(VerificationFlag(
            type="location_spoofing",
            severity="high",
            message="Sudden location changes detected - possible GPS manipulation",
            confidence=0.9,
        ))

    if len(trace.gps_points) < 2:
        flags.append(VerificationFlag(
            type="distance_mismatch",
            severity="high",
            message="No GPS track to verify the reported session",
            confidence=1.0,
        ))

    if has_time_inconsistency(trace):
        flags.append(VerificationFlag(
            type="time_manipulation",
            severity="high",
            message="Session timestamps are out of order",
            confidence=0.8,
        ))

    if flags:
        logger.info(
            "Session %s raised flags: %s",
            trace.session_id,
            ", ".join(f.type for f in flags),
        )
    return flags


def accurate_fix_ratio(trace: SessionTrace) -> float:
    """Share of fixes with accuracy under 10 m. Missing accuracy counts as 100 m."""
    points = trace.gps_points
    if not points:
        return 0.0
    accurate = sum(
        1 for p in points
        if (p.accuracy if p.accuracy is not None else MISSING_ACCURACY_M) < ACCURATE_FIX_M
    )
    return accurate / len(points)


def detect_teleportation(trace: SessionTrace) -> bool:
    return any(speed > MAX_REASONABLE_SPEED_MPS for speed in segment_speeds(trace.gps_points))


def has_time_inconsistency(trace: SessionTrace) -> bool:
    if trace.end_time <= trace.start_time:
        return True
    points = trace.gps_points
    return any(cur.timestamp < prev.timestamp for prev, cur in zip(points, points[1:]))
