from __future__ import annotations

import math
from collections.abc import Sequence

import numpy as np

from .models import GeoPoint

EARTH_RADIUS_KM = 6371.0


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (Haversine) distance between two coordinates, in km."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    a = min(1.0, a)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: GeoPoint, b: GeoPoint) -> float:
    return calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def centroid(points: Sequence[GeoPoint]) -> GeoPoint:
    """Mean latitude and mean longitude, taken independently."""
    coords = np.array([[p.latitude, p.longitude] for p in points], dtype=float)
    lat, lon = coords.mean(axis=0)
    return GeoPoint(latitude=float(lat), longitude=float(lon))
