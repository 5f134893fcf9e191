import argparse
import logging
import sys

from cycling_motivator.config import get_settings
from cycling_motivator.distance import haversine_distance
from cycling_motivator.export import route_to_gpx
from cycling_motivator.models import Point, Route
from cycling_motivator.routing import RouteError, fetch_route


def parse_point(value: str) -> Point:
    """Parse "LAT,LNG" into a Point (argparse type)."""
    try:
        lat_str, lng_str = value.split(",")
        lat, lng = float(lat_str), float(lng_str)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected LAT,LNG but got {value!r}")
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        raise argparse.ArgumentTypeError(f"Coordinates out of range: {value!r}")
    return Point(latitude=lat, longitude=lng)


def build_parser(settings: dict | None = None) -> argparse.ArgumentParser:
    """Build argument parser with defaults from config file."""
    if settings is None:
        settings = {}

    parser = argparse.ArgumentParser(
        description="Plan a bike route and track your progress along it."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    distance_parser = subparsers.add_parser("distance", help="Straight-line (great-circle) distance")
    distance_parser.add_argument("start", type=parse_point, help="Start as LAT,LNG")
    distance_parser.add_argument("end", type=parse_point, help="End as LAT,LNG")

    route_parser = subparsers.add_parser("route", help="Road-following bike route from the routing service")
    route_parser.add_argument("start", type=parse_point, help="Start as LAT,LNG")
    route_parser.add_argument("end", type=parse_point, help="End as LAT,LNG")
    route_parser.add_argument(
        "--base-url",
        default=settings.get("routing_base_url"),
        help=f"Routing service URL (default: {settings.get('routing_base_url')})",
    )
    route_parser.add_argument(
        "--profile",
        default=settings.get("routing_profile"),
        help=f"Routing profile (default: {settings.get('routing_profile')})",
    )
    route_parser.add_argument("--gpx", metavar="FILE", help="Also write the route to a GPX file")

    serve_parser = subparsers.add_parser("serve", help="Run the web app")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=settings.get("port"),
        help=f"Port to listen on (default: {settings.get('port')})",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    settings = get_settings()
    parser = build_parser(settings)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.command == "distance":
        km = haversine_distance(args.start, args.end)
        print(f"Straight-line distance: {km:.2f} km")
        return

    if args.command == "route":
        result = fetch_route(
            args.start,
            args.end,
            base_url=args.base_url,
            profile=args.profile,
            timeout=settings["routing_timeout"],
        )
        if isinstance(result, RouteError):
            km = haversine_distance(args.start, args.end)
            print(f"Error: routing failed: {result.message}", file=sys.stderr)
            print(f"Straight-line distance: {km:.2f} km", file=sys.stderr)
            sys.exit(1)

        print(f"Route distance: {result.distance_km:.2f} km")
        print(f"Points:         {len(result.coordinates)}")
        if args.gpx:
            route = Route(start=args.start, end=args.end, path=result.coordinates, distance_km=result.distance_km)
            with open(args.gpx, "w") as f:
                f.write(route_to_gpx(route))
            print(f"Wrote {args.gpx}")
        return

    if args.command == "serve":
        from cycling_motivator import web

        settings["port"] = args.port
        web.run(settings)
