import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def haversine(
    lat1: Optional[float],
    lng1: Optional[float],
    lat2: Optional[float],
    lng2: Optional[float],
) -> Optional[float]:
    """
    Great-circle distance in kilometers between two (lat, lng) points given in degrees.
    Returns None when any coordinate is missing.
    """
    if lat1 is None or lng1 is None or lat2 is None or lng2 is None:
        return None

    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def format_distance(km: Optional[float]) -> str:
    """Format a distance for display (meters below 1 km, one decimal below 10 km)"""
    if km is None:
        return "Distance unknown"
    if km < 1:
        return f"{round(km * 1000)} m"
    if km < 10:
        return f"{km:.1f} km"
    return f"{round(km)} km"
