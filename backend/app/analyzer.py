"""Telemetry analysis: turn a raw session trace into aggregate metrics."""
import logging
import math
from typing import List, Sequence

import numpy as np

from .geo import distance_meters
from .schemas import GPSPoint, SessionTrace, VerificationAnalysis

logger = logging.getLogger(__name__)

# Max difference between successive segment lengths for a triplet to count as consistent
ROUTE_SEGMENT_TOLERANCE_M = 50.0
# Rough max heart rate used to place the average into a training zone
REFERENCE_MAX_HR = 180.0
BASE_CALORIES_PER_MIN = 10.0
REFERENCE_HR = 140.0


def analyze_trace(trace: SessionTrace) -> VerificationAnalysis:
    """
    Compute session-level metrics from a telemetry trace.

    - total_distance: sum of haversine segment lengths, reported in km
    - average_speed / max_speed: over segment speeds with a positive time gap (m/s)
    - elevation_gain: sum of positive altitude deltas (m)
    - average_heart_rate / max_heart_rate: over health.heart_rate (0 if no samples)
    - route_consistency, movement_pattern, estimated_effort, calories_burned

    Sparse or malformed traces degrade to zeroed metrics; this never raises.
    """
    points = trace.gps_points

    distance_m = 0.0
    elevation_gain = 0.0
    speeds: List[float] = []

    for prev, cur in zip(points, points[1:]):
        segment = distance_meters(prev, cur)
        distance_m += segment

        dt = (cur.timestamp - prev.timestamp) / 1000.0
        if dt > 0:
            speeds.append(segment / dt)

        if prev.altitude is not None and cur.altitude is not None and cur.altitude > prev.altitude:
            elevation_gain += cur.altitude - prev.altitude

    average_speed = float(np.mean(speeds)) if speeds else 0.0
    max_speed = float(np.max(speeds)) if speeds else 0.0

    heart_rates = trace.health.heart_rate
    average_heart_rate = float(np.mean(heart_rates)) if heart_rates else 0.0
    max_heart_rate = float(np.max(heart_rates)) if heart_rates else 0.0

    route_consistency = compute_route_consistency(points)
    duration_s = max(0.0, (trace.end_time - trace.start_time) / 1000.0)

    analysis = VerificationAnalysis(
        total_distance=distance_m / 1000.0,
        average_speed=average_speed,
        max_speed=max_speed,
        elevation_gain=elevation_gain,
        average_heart_rate=average_heart_rate,
        max_heart_rate=max_heart_rate,
        calories_burned=estimate_calories(duration_s, average_heart_rate, distance_m / 1000.0),
        route_consistency=route_consistency,
        movement_pattern=classify_movement(speeds, route_consistency),
        estimated_effort=estimate_effort(average_heart_rate, average_speed),
    )
    logger.debug("Analyzed trace %s: %s", trace.session_id, analysis)
    return analysis


def compute_route_consistency(points: Sequence[GPSPoint]) -> float:
    """Fraction of consecutive triplets whose two segment lengths differ by < 50 m."""
    if len(points) < 3:
        return 0.0

    consistent = 0
    for i in range(2, len(points)):
        first = distance_meters(points[i - 2], points[i - 1])
        second = distance_meters(points[i - 1], points[i])
        if abs(first - second) < ROUTE_SEGMENT_TOLERANCE_M:
            consistent += 1

    return consistent / (len(points) - 2)


def classify_movement(speeds: Sequence[float], route_consistency: float) -> str:
    if not speeds:
        return "suspicious"

    variation = float(np.std(speeds))
    if variation < 2 and route_consistency > 0.7:
        return "consistent"
    if variation > 5 or route_consistency < 0.3:
        return "suspicious"
    return "erratic"


def estimate_effort(average_heart_rate: float, average_speed: float) -> str:
    hr_zone = average_heart_rate / REFERENCE_MAX_HR
    speed_kmh = average_speed * 3.6

    if hr_zone < 0.6 and speed_kmh < 6:
        return "low"
    if hr_zone < 0.7 and speed_kmh < 10:
        return "moderate"
    if hr_zone < 0.85 and speed_kmh < 15:
        return "high"
    return "extreme"


def estimate_calories(duration_s: float, average_heart_rate: float, distance_km: float) -> int:
    """10 kcal/min scaled by heart rate relative to 140 bpm, plus 0.1 per km."""
    minutes = duration_s / 60.0
    calories = BASE_CALORIES_PER_MIN * minutes * (average_heart_rate / REFERENCE_HR) + 0.1 * distance_km
    # half-up rounding
    return int(math.floor(calories + 0.5))
