"""Planar distance between coordinates."""

import math


def planar_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Euclidean distance with (latitude, longitude) treated as plane coordinates.

    Result is in degree units. Not a great-circle distance: discovery radii
    are compared against this value, so it must stay exactly
    sqrt(dlat^2 + dlng^2).
    """
    return math.sqrt((lat1 - lat2) ** 2 + (lng1 - lng2) ** 2)


def within_radius(
    lat: float, lng: float, center: tuple[float, float], radius: float
) -> bool:
    """Check whether a point falls inside the planar radius around center."""
    return planar_distance(lat, lng, center[0], center[1]) <= radius
