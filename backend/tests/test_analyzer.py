"""Test telemetry analysis of session traces."""
import math

import pytest

from backend.app.analyzer import (
    analyze_trace,
    classify_movement,
    compute_route_consistency,
    estimate_calories,
    estimate_effort,
)
from backend.app.schemas import GPSPoint, HealthSample, SessionTrace

METERS_PER_DEGREE = 6_371_000 * math.pi / 180
START_MS = 1_704_096_000_000


def make_trace(steps_m, interval_s=5, heart_rate=(140,), altitudes=None, accuracy=5.0, duration_s=None):
    """Helper: walk north by each step (meters), one fix every interval_s."""
    lat = 37.0
    points = [GPSPoint(
        latitude=lat, longitude=-122.0, accuracy=accuracy, timestamp=START_MS,
        altitude=altitudes[0] if altitudes else None,
    )]
    for i, step in enumerate(steps_m, start=1):
        lat += step / METERS_PER_DEGREE
        points.append(GPSPoint(
            latitude=lat,
            longitude=-122.0,
            accuracy=accuracy,
            timestamp=START_MS + i * interval_s * 1000,
            altitude=altitudes[i] if altitudes else None,
        ))
    if duration_s is None:
        duration_s = len(steps_m) * interval_s
    return SessionTrace(
        session_id="s1",
        commitment_id="c1",
        start_time=START_MS,
        end_time=START_MS + int(duration_s * 1000),
        gps_points=points,
        health=HealthSample(heart_rate=list(heart_rate)),
    )


def test_steady_run_metrics():
    """360 steps of 14 m every 5 s: a 30 minute run at 2.8 m/s."""
    trace = make_trace([14.0] * 360)
    analysis = analyze_trace(trace)

    assert analysis.total_distance == pytest.approx(5.04, rel=1e-4)
    assert analysis.average_speed == pytest.approx(2.8, rel=1e-4)
    assert analysis.max_speed == pytest.approx(2.8, rel=1e-4)
    assert analysis.route_consistency == 1.0
    assert analysis.movement_pattern == "consistent"
    assert analysis.average_heart_rate == 140
    assert analysis.max_heart_rate == 140
    # 10 kcal/min * 30 min * (140/140) + 0.1 * 5.04 km
    assert analysis.calories_burned == 301


def test_elevation_gain_counts_only_climbs():
    trace = make_trace([10.0, 10.0, 10.0, 10.0], altitudes=[10.0, 12.0, 11.0, 15.0, 15.0])
    assert analyze_trace(trace).elevation_gain == pytest.approx(6.0)


def test_missing_altitude_contributes_nothing():
    trace = make_trace([10.0, 10.0])
    assert analyze_trace(trace).elevation_gain == 0.0


def test_heart_rate_average_and_max():
    trace = make_trace([14.0] * 10, heart_rate=[120, 150, 180])
    analysis = analyze_trace(trace)
    assert analysis.average_heart_rate == pytest.approx(150)
    assert analysis.max_heart_rate == 180


def test_empty_trace_degrades_to_zero_metrics():
    trace = SessionTrace(session_id="s0", commitment_id="c1", start_time=START_MS, end_time=START_MS + 60_000)
    analysis = analyze_trace(trace)

    assert analysis.total_distance == 0.0
    assert analysis.average_speed == 0.0
    assert analysis.max_speed == 0.0
    assert analysis.average_heart_rate == 0.0
    assert analysis.route_consistency == 0.0
    assert analysis.movement_pattern == "suspicious"
    assert analysis.calories_burned == 0


def test_backwards_timestamps_do_not_raise():
    points = [
        GPSPoint(latitude=37.0, longitude=-122.0, timestamp=START_MS + 10_000),
        GPSPoint(latitude=37.0001, longitude=-122.0, timestamp=START_MS),
        GPSPoint(latitude=37.0002, longitude=-122.0, timestamp=START_MS + 5_000),
    ]
    trace = SessionTrace(
        session_id="s2", commitment_id="c1", start_time=START_MS, end_time=START_MS + 10_000, gps_points=points,
    )
    analysis = analyze_trace(trace)
    # Only the forward pair produced a speed
    assert analysis.average_speed == analysis.max_speed
    assert analysis.total_distance > 0


def test_negative_duration_gives_no_calories():
    trace = make_trace([14.0] * 5, duration_s=-60)
    assert analyze_trace(trace).calories_burned == 0


def test_route_consistency_needs_three_points():
    trace = make_trace([14.0])
    assert compute_route_consistency(trace.gps_points) == 0.0


def test_route_consistency_counts_irregular_triplets():
    # segment lengths 10, 10, 100, 10: triplets (10,10) ok, (10,100) no, (100,10) no
    trace = make_trace([10.0, 10.0, 100.0, 10.0])
    assert compute_route_consistency(trace.gps_points) == pytest.approx(1 / 3)


def test_movement_pattern_erratic():
    """Alternating 1 m/s and 7 m/s: speed spread of 3 with a regular route."""
    trace = make_trace([5.0, 35.0] * 20)
    analysis = analyze_trace(trace)
    assert analysis.route_consistency == 1.0
    assert analysis.movement_pattern == "erratic"


def test_movement_pattern_rules():
    assert classify_movement([], 1.0) == "suspicious"
    assert classify_movement([3.0, 3.0, 3.0], 0.9) == "consistent"
    assert classify_movement([3.0, 3.0, 3.0], 0.2) == "suspicious"
    assert classify_movement([0.0, 12.0], 0.9) == "suspicious"
    assert classify_movement([3.0, 3.0, 3.0], 0.5) == "erratic"


@pytest.mark.parametrize("avg_hr, avg_speed, expected", [
    (90, 1.5, "low"),
    (120, 2.5, "moderate"),
    (140, 3.5, "high"),
    (170, 3.0, "extreme"),
    (90, 5.0, "extreme"),
])
def test_effort_levels(avg_hr, avg_speed, expected):
    assert estimate_effort(avg_hr, avg_speed) == expected


def test_calorie_estimate_rounds_half_up():
    # 5.0 stays 5, 5.5 rounds up to 6
    assert estimate_calories(60, 70, 0) == 5
    assert estimate_calories(30, 140, 5.0) == 6


def test_analysis_is_deterministic():
    trace = make_trace([14.0, 15.0, 13.0] * 30, heart_rate=[130, 145, 160])
    assert analyze_trace(trace) == analyze_trace(trace)
