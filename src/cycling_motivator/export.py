import gpxpy
import gpxpy.gpx

from cycling_motivator.models import Route


def route_to_gpx(route: Route, name: str = "Cycling Motivator route") -> str:
    """Serialize a planned route as a GPX track.

    Uses the routed path when available, otherwise the straight line from
    start to end. Returns an empty track if the route has no points.
    """
    gpx = gpxpy.gpx.GPX()
    track = gpxpy.gpx.GPXTrack(name=name)
    gpx.tracks.append(track)
    segment = gpxpy.gpx.GPXTrackSegment()
    track.segments.append(segment)

    points = route.path or [p for p in (route.start, route.end) if p is not None]
    for pt in points:
        segment.points.append(gpxpy.gpx.GPXTrackPoint(latitude=pt.latitude, longitude=pt.longitude))

    return gpx.to_xml()
