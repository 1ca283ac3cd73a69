from __future__ import annotations

import math
from typing import Any, Optional

from models import LatLng
from utils import finite_number, haversine_km


KM_TO_MILES = 0.621371
UNKNOWN_DISTANCE_LABEL = "-"


def normalize_coordinates(raw: Any) -> Optional[LatLng]:
    """Read ``{lat,lng}`` or ``{latitude,longitude}`` into one shape.

    Returns None for missing, non-numeric, non-finite, out-of-range and the
    ``(0, 0)`` placeholder that bad imports leave behind.
    """
    if not isinstance(raw, dict):
        return None
    lat = raw.get("lat")
    if lat is None:
        lat = raw.get("latitude")
    lng = raw.get("lng")
    if lng is None:
        lng = raw.get("longitude")
    lat_f = finite_number(lat)
    lng_f = finite_number(lng)
    if lat_f is None or lng_f is None:
        return None
    if lat_f == 0 and lng_f == 0:
        return None
    if not (-90 <= lat_f <= 90 and -180 <= lng_f <= 180):
        return None
    return LatLng(lat=lat_f, lng=lng_f)


def distance_miles(a: Optional[LatLng], b: Optional[LatLng]) -> Optional[float]:
    if a is None or b is None:
        return None
    return haversine_km(a.lat, a.lng, b.lat, b.lng) * KM_TO_MILES


def format_distance_label(miles: Optional[float]) -> str:
    if miles is None or math.isnan(miles):
        return UNKNOWN_DISTANCE_LABEL
    if miles < 0.1:
        return "<0.1 mi"
    if miles >= 10:
        # half-up, not banker's rounding: 10.5 -> "11 mi"
        return f"{math.floor(miles + 0.5)} mi"
    return f"{miles:.1f} mi"
