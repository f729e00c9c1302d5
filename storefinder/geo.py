"""Geospatial helpers."""
from __future__ import annotations

import math

from .models import GeoPoint

EARTH_RADIUS_MILES = 3959.0


def to_radians(degrees: float) -> float:
    return degrees * (math.pi / 180.0)


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = to_radians(lat1)
    phi2 = to_radians(lat2)
    dphi = to_radians(lat2 - lat1)
    dlambda = to_radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def distance_miles(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in miles, rounded to one decimal place.

    NaN coordinates propagate as NaN; callers validate before relying on it.
    """
    return round(haversine_miles(a.latitude, a.longitude, b.latitude, b.longitude), 1)


def format_distance(miles: float) -> str:
    if miles < 0.1:
        return "Less than 0.1 mi"
    return f"{miles:.1f} mi"


def offset_point(origin: GeoPoint, d_lat: float, d_lon: float) -> GeoPoint:
    return GeoPoint(latitude=origin.latitude + d_lat, longitude=origin.longitude + d_lon)


def directions_url(origin: GeoPoint, destination: GeoPoint) -> str:
    return (
        "https://www.google.com/maps/dir/"
        f"{origin.latitude},{origin.longitude}/{destination.latitude},{destination.longitude}"
    )
