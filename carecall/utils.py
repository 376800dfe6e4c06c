import time
from calendar import timegm
from datetime import datetime
from math import radians, sin, cos, asin, sqrt

EARTH_RADIUS_KM = 6371.0


def haversine_km(a_lat: float, a_lon: float, b_lat: float, b_lon: float) -> float:
    """
    Great-circle distance between two lat/lon points in kilometers.

    Inputs are degrees and are not validated; non-numeric values raise or yield NaN.
    """
    dlat = radians(b_lat - a_lat)
    dlon = radians(b_lon - a_lon)

    h = sin(dlat / 2) ** 2 + cos(radians(a_lat)) * cos(radians(b_lat)) * sin(dlon / 2) ** 2
    # floating error can push h a hair past 1 for antipodal points
    return 2 * EARTH_RADIUS_KM * asin(sqrt(min(h, 1.0)))


def now_ms() -> int:
    return int(time.time() * 1000)


def to_epoch_ms(dt: datetime) -> int:
    # naive datetimes in the store are UTC
    return timegm(dt.utctimetuple()) * 1000 + dt.microsecond // 1000
