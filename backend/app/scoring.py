"""Verification scoring: combine analysis and flags into a trust score and verdict."""
import logging
from typing import Iterable, Optional

import numpy as np

from .analyzer import analyze_trace
from .anomalies import detect_anomalies, accurate_fix_ratio
from .schemas import SessionTrace, VerificationAnalysis, VerificationFlag, VerificationVerdict

logger = logging.getLogger(__name__)

SEVERITY_DEDUCTION = {"high": 0.3, "medium": 0.2, "low": 0.1}
REJECT_BELOW = 0.3
ACCEPT_AT = 0.7


def score_verification(analysis: VerificationAnalysis, flags: Iterable[VerificationFlag]) -> float:
    """
    Trust score in [0, 1].

    Start at 1.0, subtract deduction(severity) * confidence per flag,
    +0.1 for consistent movement, -0.2 for suspicious movement,
    +0.05 when the average heart rate is strictly between 100 and 180.
    """
    score = 1.0
    for flag in flags:
        score -= SEVERITY_DEDUCTION[flag.severity] * flag.confidence

    if analysis.movement_pattern == "consistent":
        score += 0.1
    elif analysis.movement_pattern == "suspicious":
        score -= 0.2

    if 100 < analysis.average_heart_rate < 180:
        score += 0.05

    return max(0.0, min(1.0, score))


def status_for_score(score: float) -> str:
    if score < REJECT_BELOW:
        return "rejected"
    if score < ACCEPT_AT:
        return "suspicious"
    return "verified"


def verify_trace(trace: SessionTrace) -> VerificationVerdict:
    """Run analyze -> detect -> score over a complete trace."""
    analysis = analyze_trace(trace)
    flags = detect_anomalies(trace, analysis)
    score = score_verification(analysis, flags)
    status = status_for_score(score)

    logger.info("Session %s scored %.3f (%s)", trace.session_id, score, status)
    return VerificationVerdict(
        session_id=trace.session_id,
        is_verified=status == "verified",
        verification_score=score,
        flags=flags,
        analysis=analysis,
        status=status,
    )


# Live scorer. Used for feedback while a workout is still being recorded; the
# verdict above stays authoritative. Both accept at the same 0.7 bar.

LIVE_WEIGHTS = {
    "gps_accuracy": 0.30,
    "distance_time": 0.25,
    "heart_rate": 0.20,
    "movement": 0.15,
    "duration": 0.10,
}
MIN_FIXES_FOR_ACCURACY = 10
MIN_DURATION_S = 5 * 60
MAX_DURATION_S = 3 * 60 * 60


def live_verification_score(trace: SessionTrace, distance_m: Optional[float] = None) -> float:
    """
    Weighted-factor plausibility score for an in-progress trace.

    Factors that lack data (too few fixes, no heart rate, too short to judge
    pace) are left out of both numerator and denominator.
    """
    points = trace.gps_points
    duration_s = (trace.end_time - trace.start_time) / 1000.0
    if distance_m is None:
        distance_m = analyze_trace(trace).total_distance * 1000.0

    factors = {}

    if len(points) > MIN_FIXES_FOR_ACCURACY:
        factors["gps_accuracy"] = accurate_fix_ratio(trace)

    device_speeds = [p.speed for p in points if p.speed]
    if duration_s > 60 and distance_m > 0 and device_speeds:
        mean_speed = float(np.mean(device_speeds))
        expected = distance_m / duration_s
        factors["distance_time"] = max(0.0, min(1.0, 1 - abs(expected - mean_speed) / mean_speed))

    heart_rates = trace.health.heart_rate
    if heart_rates:
        avg_hr = float(np.mean(heart_rates))
        factors["heart_rate"] = 1.0 if 100 < avg_hr < 200 else 0.5

    # Regular updates: at least one fix every 10 seconds
    factors["movement"] = 1.0 if len(points) > duration_s / 10 else 0.5
    factors["duration"] = 1.0 if MIN_DURATION_S < duration_s < MAX_DURATION_S else 0.5

    weight = sum(LIVE_WEIGHTS[name] for name in factors)
    if weight <= 0:
        return 0.0
    return sum(LIVE_WEIGHTS[name] * value for name, value in factors.items()) / weight


def is_live_plausible(score: float) -> bool:
    return score >= ACCEPT_AT
