"""Geospatial utilities for GPS traces."""
import math

EARTH_RADIUS_M = 6_371_000.0


def distance_meters(a, b) -> float:
    """Great-circle (haversine) distance in meters between two GPS points.

    Any objects with ``latitude``/``longitude`` attributes in degrees work.
    NaN coordinates propagate to a NaN result.
    """
    phi1 = math.radians(a.latitude)
    phi2 = math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    return EARTH_RADIUS_M * 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))


def segment_speeds(points) -> list:
    """Implied speed (m/s) for each consecutive pair with a positive time gap."""
    speeds = []
    for prev, cur in zip(points, points[1:]):
        dt = (cur.timestamp - prev.timestamp) / 1000.0
        if dt > 0:
            speeds.append(distance_meters(prev, cur) / dt)
    return speeds
