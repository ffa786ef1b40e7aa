"""Geographic utility functions. Pure Python, no external deps."""

from __future__ import annotations

import math

# Sphere radius for every reported distance; not the 6371 km mean radius.
EARTH_RADIUS_KM = 6376.5


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points on Earth in kilometers.

    Uses the Haversine formula on a sphere of radius ``EARTH_RADIUS_KM``.
    Inputs are WGS84 decimal degrees.
    """
    rlat1, rlon1 = math.radians(lat1), math.radians(lon1)
    rlat2, rlon2 = math.radians(lat2), math.radians(lon2)

    dlat = rlat2 - rlat1
    dlon = rlon2 - rlon1

    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def normalize_longitude(lon: float) -> float:
    """Reduce a longitude into [-180, 180].

    Values already in range are returned untouched. Positive inputs that land
    on the antimeridian come back as 180, negative ones as -180.
    """
    if -180 <= lon <= 180:
        return lon
    wrapped = (lon + 180) % 360 - 180
    if wrapped == -180 and lon > 0:
        return 180.0
    return wrapped
