"""
Great-circle distance helpers for the "stores near me" search.
"""

from __future__ import annotations

import math
from typing import Iterable, TypeVar

EARTH_RADIUS_KM = 6371.0

T = TypeVar("T")


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Distance in kilometers between two (lat, lng) points in degrees.

    NaN input gives a NaN distance, which never falls inside a radius.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    if math.isnan(a):
        return math.nan
    # Rounding can push a a hair outside [0, 1] for antipodal points.
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def stores_within(
    stores: Iterable[T],
    lat: float,
    lng: float,
    radius_km: float,
) -> list[tuple[T, float]]:
    """
    Return (store, distance_km) pairs strictly inside the radius, nearest first.

    Each store must expose ``latitude`` and ``longitude`` attributes.
    """
    matches: list[tuple[T, float]] = []
    for store in stores:
        distance = haversine_km(lat, lng, store.latitude, store.longitude)
        if distance < radius_km:
            matches.append((store, distance))
    matches.sort(key=lambda pair: pair[1])
    return matches
