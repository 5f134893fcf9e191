import pytest

from cycling_motivator.controller import ProgressController
from cycling_motivator.models import Point
from cycling_motivator.routing import RouteError, RouteResult

START = Point(latitude=48.2000, longitude=13.4800)
END = Point(latitude=48.2100, longitude=13.4900)


@pytest.fixture
def start_point():
    return START


@pytest.fixture
def end_point():
    return END


@pytest.fixture
def route_path():
    """A three-point road-like path from START to END, roughly 1.85 km long."""
    return [
        START,
        Point(latitude=48.2000, longitude=13.4900),
        END,
    ]


class FakeFetcher:
    """Stands in for fetch_route; records calls and returns queued results."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, start, end):
        self.calls.append((start, end))
        if self.results:
            return self.results.pop(0)
        return RouteError("No route found")


@pytest.fixture
def ok_result(route_path):
    return RouteResult(coordinates=route_path, distance_km=1.9)


@pytest.fixture
def make_controller():
    """Build a controller with a fake fetcher and a list collecting persisted bundles."""
    def _make(*results, **kwargs):
        fetcher = FakeFetcher(*results)
        saved = []
        controller = ProgressController(fetcher=fetcher, on_change=saved.append, **kwargs)
        return controller, fetcher, saved
    return _make


@pytest.fixture
def fake_fetcher():
    """The FakeFetcher class, for tests that wire their own controllers."""
    return FakeFetcher
