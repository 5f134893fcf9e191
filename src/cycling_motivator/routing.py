"""Bicycle routing via an OSRM-compatible routing service."""

from dataclasses import dataclass
import logging

import requests

from cycling_motivator.models import Point

logger = logging.getLogger(__name__)

OSRM_BASE_URL = "https://router.project-osrm.org"
OSRM_PROFILE = "bicycling"
REQUEST_TIMEOUT = 30  # seconds


@dataclass
class RouteResult:
    """A road-following route between two points."""
    coordinates: list[Point]
    distance_km: float


@dataclass
class RouteError:
    """A failed routing attempt; message is suitable for display."""
    message: str


def build_route_url(start: Point, end: Point, base_url: str = OSRM_BASE_URL, profile: str = OSRM_PROFILE) -> str:
    """Build the OSRM /route URL. OSRM expects lon,lat order."""
    coords = f"{start.longitude},{start.latitude};{end.longitude},{end.latitude}"
    return f"{base_url.rstrip('/')}/route/v1/{profile}/{coords}"


def fetch_route(
    start: Point,
    end: Point,
    base_url: str = OSRM_BASE_URL,
    profile: str = OSRM_PROFILE,
    timeout: float = REQUEST_TIMEOUT,
) -> RouteResult | RouteError:
    """Fetch a bicycle route between two points.

    Makes a single request; there are no retries. Any failure is returned as
    a RouteError rather than raised, so callers must check the result type.

    Returns:
        RouteResult with the full-overview geometry and distance in km, or
        RouteError describing what went wrong.
    """
    url = build_route_url(start, end, base_url, profile)
    try:
        response = requests.get(
            url,
            params={"overview": "full", "geometries": "geojson"},
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.warning("Routing request failed: %s", e)
        return RouteError(f"Routing service unreachable: {e}")

    try:
        data = response.json()
    except ValueError as e:
        logger.warning("Routing service returned invalid JSON: %s", e)
        return RouteError("Routing service returned an invalid response")

    # OSRM reports errors in the body, often alongside a 4xx status
    if not isinstance(data, dict) or data.get("code") != "Ok" or not data.get("routes"):
        message = data.get("message") if isinstance(data, dict) else None
        logger.warning(
            "No route found (status %s, code %s): %s",
            response.status_code,
            data.get("code") if isinstance(data, dict) else None,
            message,
        )
        return RouteError(message or "No route found")

    try:
        route = data["routes"][0]
        # geometry.coordinates is a list of [lon, lat] pairs
        coordinates = [
            Point(latitude=float(coord[1]), longitude=float(coord[0]))
            for coord in route["geometry"]["coordinates"]
        ]
        distance_km = float(route["distance"]) / 1000
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning("Malformed route in routing response: %s", e)
        return RouteError("Routing service returned a malformed route")

    logger.debug("Routed %d points, %.2f km", len(coordinates), distance_km)
    return RouteResult(coordinates=coordinates, distance_km=distance_km)
