# SPDX-License-Identifier: Apache-2.0

"""
Great-circle distance and coverage checks.

Coordinates are (longitude, latitude) pairs in degrees, matching GeoJSON order.
"""

import math
from typing import Sequence

EARTH_RADIUS_KM = 6371.0


def distance_km(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Haversine distance between two points, rounded to 0.1 km.

    Args:
        a: (longitude, latitude) of the first point
        b: (longitude, latitude) of the second point

    Returns:
        Distance in kilometers with one decimal place
    """
    lng1, lat1 = math.radians(a[0]), math.radians(a[1])
    lng2, lat2 = math.radians(b[0]), math.radians(b[1])

    d_lat = lat2 - lat1
    d_lng = lng2 - lng1

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return round(EARTH_RADIUS_KM * c, 1)


def covers(center: Sequence[float], radius_km: float, point: Sequence[float]) -> bool:
    """Whether a coverage circle includes the point."""
    return distance_km(center, point) <= radius_km


def km_to_radians(km: float) -> float:
    """Convert a distance to radians for spherical queries."""
    return km / EARTH_RADIUS_KM
