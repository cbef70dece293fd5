"""Route geometry: haversine distance, polyline codec and Douglas-Peucker simplification."""

import math
from typing import List, Sequence, Tuple

import polyline

# Mean Earth radius in meters
EARTH_RADIUS_M = 6_371_000.0

# 5 decimal digits, the Google polyline default
POLYLINE_PRECISION = 5

Coordinate = Sequence[float]


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) * math.sin(d_lon / 2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def encode(coordinates: Sequence[Coordinate]) -> str:
    """
    Encode [lat, lon] pairs into a Google polyline string.

    Each coordinate is rounded to 1e-5 degrees and written as a delta from
    the previous one, so output is compatible with any standard decoder.
    """
    if not coordinates:
        return ""
    return polyline.encode([(c[0], c[1]) for c in coordinates], POLYLINE_PRECISION)


def decode(encoded: str) -> List[Tuple[float, float]]:
    """Decode a polyline string into (lat, lon) tuples."""
    if not encoded:
        return []
    return polyline.decode(encoded, POLYLINE_PRECISION)


def calculate_total_distance(coordinates: Sequence[Coordinate]) -> float:
    """Sum of consecutive haversine distances along the route, in kilometers."""
    if len(coordinates) < 2:
        return 0.0

    total_m = 0.0
    for prev, curr in zip(coordinates, coordinates[1:]):
        total_m += haversine_m(prev[0], prev[1], curr[0], curr[1])
    return total_m / 1000


def perpendicular_distance(point: Coordinate, line_start: Coordinate, line_end: Coordinate) -> float:
    """
    Distance in meters from point to the segment line_start..line_end.

    The projection treats lat/lon as planar (x = lon, y = lat) and clamps it
    to the segment; only the final deviation is measured on the sphere.
    A zero-length segment yields 0.
    """
    dx = line_end[1] - line_start[1]
    dy = line_end[0] - line_start[0]

    mag = math.sqrt(dx * dx + dy * dy)
    if mag == 0:
        return 0.0

    u = ((point[1] - line_start[1]) * dx + (point[0] - line_start[0]) * dy) / (mag * mag)

    if u < 0:
        closest_x, closest_y = line_start[1], line_start[0]
    elif u > 1:
        closest_x, closest_y = line_end[1], line_end[0]
    else:
        closest_x = line_start[1] + u * dx
        closest_y = line_start[0] + u * dy

    return haversine_m(point[0], point[1], closest_y, closest_x)


def simplify(coordinates: Sequence[Coordinate], tolerance: float) -> List[Coordinate]:
    """
    Douglas-Peucker simplification.

    Intermediate points of a span are dropped only when the farthest one
    deviates by no more than ``tolerance`` meters; otherwise the span is split
    at that point and both halves are processed independently. Inputs of two
    points or fewer come back unchanged.

    Args:
        coordinates: Ordered [lat, lon] pairs.
        tolerance: Maximum allowed deviation in meters.

    Returns:
        The retained coordinates, in original order.
    """
    if len(coordinates) <= 2:
        return list(coordinates)

    keep = [False] * len(coordinates)
    keep[0] = keep[-1] = True

    # Explicit stack instead of recursion: long routes would hit the recursion limit
    spans = [(0, len(coordinates) - 1)]
    while spans:
        first, last = spans.pop()
        if last - first < 2:
            continue

        max_distance = 0.0
        max_index = first
        start, end = coordinates[first], coordinates[last]
        for i in range(first + 1, last):
            distance = perpendicular_distance(coordinates[i], start, end)
            if distance > max_distance:
                max_distance = distance
                max_index = i

        if max_distance > tolerance:
            keep[max_index] = True
            spans.append((first, max_index))
            spans.append((max_index, last))

    return [c for c, kept in zip(coordinates, keep) if kept]
