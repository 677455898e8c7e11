import math
from typing import Tuple

EARTH_RADIUS_KM = 6371.0088

Point = Tuple[float, float]


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two (lat, lon) points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    # clamp rounding noise for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def within_radius(origin: Point, point: Point, radius_km: float) -> Tuple[bool, float]:
    """
    Returns (inside, distance_km). The boundary counts as inside.
    """
    distance = haversine_km(origin[0], origin[1], point[0], point[1])
    return distance <= radius_km, distance
