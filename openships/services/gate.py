"""
Distance/time gate for the position history.

A new observation is worth keeping when the vessel moved far enough, or
enough time passed, since the last observation kept for it.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000.0
MIN_DISTANCE_METERS = 100.0
MIN_TIME_DIFF_MS = 5 * 60 * 1000


@dataclass(slots=True)
class Observation:
    lon: float | None
    lat: float | None
    ts_ms: int


def haversine_m(lon0: float, lat0: float, lon1: float, lat1: float) -> float:
    """Great-circle distance in metres."""
    phi0, phi1 = math.radians(lat0), math.radians(lat1)
    dphi = math.radians(lat1 - lat0)
    dlam = math.radians(lon1 - lon0)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi0) * math.cos(phi1) * math.sin(dlam / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def _has_position(obs: Observation) -> bool:
    return obs.lon is not None and obs.lat is not None


def should_retain(
    last: Observation | None,
    current: Observation,
    *,
    min_distance_m: float = MIN_DISTANCE_METERS,
    min_time_diff_ms: int = MIN_TIME_DIFF_MS,
) -> bool:
    if last is None:
        return _has_position(current)
    if _has_position(last) and _has_position(current):
        distance = haversine_m(last.lon, last.lat, current.lon, current.lat)
        if distance >= min_distance_m:
            return True
    return current.ts_ms - last.ts_ms >= min_time_diff_ms
