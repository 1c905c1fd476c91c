"""Geofence checks on a spherical Earth."""
import math
from typing import Dict, Optional

EARTH_RADIUS_METERS = 6371000
DEFAULT_RADIUS_METERS = 30.0


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (haversine) distance between two points in meters."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def within_fence(observed_lat: float, observed_lon: float,
                 anchor_lat: float, anchor_lon: float,
                 radius_meters: Optional[float] = None,
                 default_radius: float = DEFAULT_RADIUS_METERS) -> bool:
    """True iff the observed point lies within ``radius_meters`` of the anchor."""
    radius = default_radius if radius_meters is None else radius_meters
    return distance_meters(observed_lat, observed_lon, anchor_lat, anchor_lon) <= radius


def evaluate(observed_lat: float, observed_lon: float,
             anchor_lat: float, anchor_lon: float,
             radius_meters: Optional[float] = None,
             default_radius: float = DEFAULT_RADIUS_METERS) -> Dict:
    """Distance, effective radius and verdict in one pass."""
    radius = default_radius if radius_meters is None else radius_meters
    distance = distance_meters(observed_lat, observed_lon, anchor_lat, anchor_lon)
    return {
        'is_inside': distance <= radius,
        'distance': distance,
        'radius': radius
    }
