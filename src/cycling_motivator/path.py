"""Locate a rider's position along a route from kilometers ridden."""

from collections.abc import Sequence

from cycling_motivator.distance import DistanceFn, haversine_distance
from cycling_motivator.models import Point


def position_at_distance(
    path: Sequence[Point],
    distance_km: float,
    distance_fn: DistanceFn = haversine_distance,
) -> Point | None:
    """Find the point reached after traveling distance_km along a polyline.

    Walks the segments accumulating their length. Within the segment that
    contains the target distance, latitude and longitude are interpolated
    linearly, which is fine for the short segments routing services return.

    Args:
        path: Ordered polyline points
        distance_km: Distance traveled from path[0]
        distance_fn: Segment length function (km), haversine by default

    Returns:
        Interpolated point, path[0] for distances <= 0, the last point for
        distances past the end, or None for an empty path.
    """
    if not path:
        return None
    if distance_km <= 0:
        return path[0]

    covered = 0.0
    for i in range(len(path) - 1):
        start = path[i]
        end = path[i + 1]
        seg_dist = distance_fn(start, end)
        if seg_dist <= 0:
            continue

        if covered + seg_dist >= distance_km:
            ratio = (distance_km - covered) / seg_dist
            return Point(
                latitude=start.latitude + (end.latitude - start.latitude) * ratio,
                longitude=start.longitude + (end.longitude - start.longitude) * ratio,
            )

        covered += seg_dist

    return path[-1]


def interpolate_between(start: Point, end: Point, fraction: float) -> Point:
    """Straight-line position between two points, used when no polyline is available."""
    if fraction <= 0:
        return start
    if fraction >= 1:
        return end
    return Point(
        latitude=start.latitude + (end.latitude - start.latitude) * fraction,
        longitude=start.longitude + (end.longitude - start.longitude) * fraction,
    )
