"""Geographic distance helpers."""

import math

EARTH_RADIUS_METERS = 6371000.0
METERS_PER_DEGREE_LAT = 111320.0


def calculate_distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two points using the haversine formula.

    Args:
        lat1: Latitude of the first point (degrees)
        lng1: Longitude of the first point (degrees)
        lat2: Latitude of the second point (degrees)
        lng2: Longitude of the second point (degrees)

    Returns:
        Distance in meters
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def bounding_box(lat: float, lng: float, radius_meters: float):
    """
    Rough lat/lng box that contains every point within radius_meters.

    Used as a cheap SQL prefilter before the exact haversine check.

    Returns:
        (min_lat, max_lat, min_lng, max_lng)
    """
    lat_delta = radius_meters / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        lng_delta = 180.0
    else:
        lng_delta = min(180.0, radius_meters / (METERS_PER_DEGREE_LAT * cos_lat))
    return lat - lat_delta, lat + lat_delta, lng - lng_delta, lng + lng_delta
