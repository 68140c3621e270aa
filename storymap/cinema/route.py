"""Journey route: arcs between consecutive stops, drawn progressively during the reveal."""

import math
from typing import Sequence

from storymap.models import LocationRow

LngLat = tuple[float, float]

ARC_POINTS = 100
ARC_HEIGHT_RATIO = 0.2


def arc_points(start: LngLat, end: LngLat, points: int = ARC_POINTS) -> list[LngLat]:
    """Points along a parabolic bulge from start to end (points + 1 coordinates)."""
    start_lng, start_lat = start
    dx = end[0] - start_lng
    dy = end[1] - start_lat
    height = math.sqrt(dx * dx + dy * dy) * ARC_HEIGHT_RATIO
    coords: list[LngLat] = []
    for i in range(points + 1):
        t = i / points
        coords.append((start_lng + t * dx, start_lat + t * dy + 4 * height * t * (1 - t)))
    return coords


def route_coordinates(locations: Sequence[LocationRow], points: int = ARC_POINTS) -> list[LngLat]:
    """The whole route as one line. Empty unless there are at least two stops."""
    if len(locations) < 2:
        return []
    coords: list[LngLat] = []
    for a, b in zip(locations, locations[1:]):
        coords.extend(arc_points(a.lng_lat, b.lng_lat, points))
    return coords


def reveal_progress(zoom: float, from_zoom: float, to_zoom: float) -> float:
    """How much of the route to draw, from the camera zoom during the reveal flight."""
    if to_zoom == from_zoom:
        return 1.0
    return min(1.0, max(0.0, (zoom - from_zoom) / (to_zoom - from_zoom)))


def visible_route(coords: Sequence[LngLat], progress: float) -> list[LngLat]:
    return list(coords[: math.floor(progress * len(coords))])
