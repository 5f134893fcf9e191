"""Journey state machine: SETUP -> TRACKING <-> CELEBRATION, with reset from anywhere.

The controller is the only writer of a user's route and progress. Route
fetching is split into begin_route_request() and apply_route_result() so the
HTTP call can run without holding the caller's lock; each request carries a
token and only the latest one may update the route.
"""

from dataclasses import dataclass
import logging
import math
from collections.abc import Callable

from cycling_motivator.distance import haversine_distance
from cycling_motivator.models import (
    AppPhase,
    CelebrationState,
    JourneyState,
    Point,
    Progress,
    Route,
    SetupState,
    TrackingState,
    state_from_bundle,
    state_to_bundle,
)
from cycling_motivator.path import interpolate_between, position_at_distance
from cycling_motivator.routing import RouteError, RouteResult, fetch_route

logger = logging.getLogger(__name__)

MARKERS = ("start", "end")


@dataclass(frozen=True)
class RouteRequest:
    """An in-flight route fetch for a specific start/end pair."""
    token: int
    start: Point
    end: Point


@dataclass(frozen=True)
class Notice:
    """A user-facing notice about degraded behavior."""
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class ProgressController:
    def __init__(
        self,
        state: JourneyState | None = None,
        fetcher: Callable[[Point, Point], RouteResult | RouteError] = fetch_route,
        on_change: Callable[[dict], None] | None = None,
        default_start: Point | None = None,
    ):
        self.default_start = default_start
        self.state = state if state is not None else self._fresh_state()
        self._fetcher = fetcher
        self._on_change = on_change
        self._token = 0
        self._loading_token: int | None = None
        self.notice: Notice | None = None

    @classmethod
    def from_bundle(cls, bundle: dict | None, **kwargs) -> "ProgressController":
        """Restore a controller from a persisted bundle; an empty bundle starts fresh.

        Raises:
            ValueError: If the stored route or progress is malformed.
        """
        if bundle is not None and not isinstance(bundle, dict):
            raise ValueError(f"Invalid state bundle: {bundle!r}")
        if not bundle or not bundle.get("route"):
            return cls(**kwargs)
        return cls(state=state_from_bundle(bundle), **kwargs)

    def to_bundle(self) -> dict:
        return state_to_bundle(self.state)

    def _fresh_state(self) -> SetupState:
        return SetupState(route=Route(start=self.default_start))

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.to_bundle())

    @property
    def phase(self) -> AppPhase:
        return self.state.phase

    @property
    def route(self) -> Route:
        return self.state.route

    @property
    def progress(self) -> Progress:
        return getattr(self.state, "progress", None) or Progress()

    @property
    def is_loading(self) -> bool:
        return self._loading_token is not None

    @property
    def marker_position(self) -> Point | None:
        """Where the rider marker sits: along the path, or on the straight line without one."""
        if isinstance(self.state, SetupState):
            return None
        route = self.state.route
        if route.path:
            return position_at_distance(route.path, self.state.progress.current_km)
        if route.has_endpoints:
            return interpolate_between(route.start, route.end, self.state.progress.percentage)
        return None

    def available_actions(self) -> list[str]:
        if isinstance(self.state, SetupState):
            route = self.state.route
            actions = []
            if not route.has_endpoints:
                actions.append("select_point")
            if route.start is not None or route.end is not None:
                actions.append("clear_marker")
            if route.has_endpoints and not self.is_loading:
                actions.append("start_journey")
            actions.append("reset")
            return actions
        if isinstance(self.state, TrackingState):
            return ["add_distance", "reset"]
        if self.state.progress.is_complete:
            return ["reset"]
        return ["continue", "reset"]

    # -- SETUP ---------------------------------------------------------------

    def select_point(self, point: Point) -> bool:
        """Place the start marker, or the end marker once start is set."""
        if not isinstance(self.state, SetupState):
            return False
        route = self.state.route
        if route.start is None:
            route.start = point
        elif route.end is None:
            route.end = point
        else:
            return False
        self._changed()
        return True

    def clear_marker(self, marker: str) -> bool:
        """Remove a marker; any computed path is discarded with it."""
        if not isinstance(self.state, SetupState) or marker not in MARKERS:
            return False
        route = self.state.route
        if getattr(route, marker) is None:
            return False
        setattr(route, marker, None)
        route.path = []
        route.distance_km = 0.0
        self._cancel_route_request()
        self._changed()
        return True

    def begin_route_request(self) -> RouteRequest | None:
        """Start a route fetch if one is due.

        A fetch is due in SETUP when both markers are placed, no path has been
        computed yet, and no fetch is already in flight.
        """
        if not isinstance(self.state, SetupState) or self.is_loading:
            return None
        route = self.state.route
        if not route.has_endpoints or route.path:
            return None
        self._token += 1
        self._loading_token = self._token
        return RouteRequest(token=self._token, start=route.start, end=route.end)

    def apply_route_result(self, request: RouteRequest, result: RouteResult | RouteError) -> bool:
        """Apply a fetched route unless it is stale."""
        if request.token != self._token:
            logger.debug("Ignoring stale route result (token %s, current %s)", request.token, self._token)
            return False
        self._loading_token = None

        if not isinstance(self.state, SetupState):
            return False
        route = self.state.route
        if route.start != request.start or route.end != request.end or route.path:
            return False

        if isinstance(result, RouteError):
            # The straight line stays a display hint only; start_journey retries
            logger.warning("Route preview failed: %s", result.message)
            return False

        route.path = list(result.coordinates)
        route.distance_km = result.distance_km
        self._changed()
        return True

    def refresh_route(self) -> bool:
        """Fetch and apply the route preview synchronously, if one is due."""
        request = self.begin_route_request()
        if request is None:
            return False
        return self.apply_route_result(request, self._fetcher(request.start, request.end))

    def _cancel_route_request(self) -> None:
        self._token += 1
        self._loading_token = None

    def begin_journey_request(self) -> RouteRequest | None:
        """Start the final route fetch start_journey() needs, if any.

        Only due when the route has no distance yet. The result is passed
        back to start_journey(request, result).
        """
        if not isinstance(self.state, SetupState) or self.is_loading:
            return None
        route = self.state.route
        if not route.has_endpoints or route.distance_km > 0:
            return None
        self._token += 1
        self._loading_token = self._token
        return RouteRequest(token=self._token, start=route.start, end=route.end)

    def start_journey(self, request: RouteRequest | None = None, result: RouteResult | RouteError | None = None) -> bool:
        """Move to TRACKING with the route's distance as the goal.

        Uses the previewed distance when there is one. Otherwise uses the
        result of a begin_journey_request() fetch, or fetches once more
        itself; if that fails too, falls back to the straight-line distance
        and sets a "straight_line" notice. The route is only updated when
        the journey actually starts.
        """
        if request is not None:
            if request.token != self._token:
                logger.debug("Ignoring stale journey route (token %s, current %s)", request.token, self._token)
                return False
            self._loading_token = None
        if not isinstance(self.state, SetupState) or self.is_loading:
            return False
        route = self.state.route
        if not route.has_endpoints:
            return False
        if request is not None and (route.start != request.start or route.end != request.end):
            return False

        notice = None
        path = route.path
        total_km = route.distance_km
        if total_km <= 0:
            if request is None or result is None:
                self._cancel_route_request()
                result = self._fetcher(route.start, route.end)
            if isinstance(result, RouteResult):
                path = list(result.coordinates)
                total_km = result.distance_km
            else:
                path = []
                total_km = haversine_distance(route.start, route.end)
                notice = Notice(
                    code="straight_line",
                    message=(
                        f"Route calculation failed ({result.message}). "
                        f"Using the straight-line distance of {total_km:.1f} km instead."
                    ),
                )

        if not (math.isfinite(total_km) and total_km > 0):
            logger.warning("Not starting journey: route distance is %s km", total_km)
            return False
        if notice is not None:
            logger.warning("Routing failed, using straight-line distance %.2f km: %s", total_km, result.message)

        route.path = path
        route.distance_km = total_km
        self.notice = notice
        self.state = TrackingState(route=route, progress=Progress.for_total(total_km))
        self._changed()
        return True

    # -- TRACKING / CELEBRATION ---------------------------------------------

    def add_distance(self, value: str | float) -> bool:
        """Add ridden kilometers. Invalid or non-positive input is ignored."""
        if not isinstance(self.state, TrackingState):
            return False
        try:
            added = float(value)
        except (TypeError, ValueError):
            return False
        if not math.isfinite(added) or added <= 0:
            return False

        progress = self.state.progress
        self.state = CelebrationState(
            route=self.state.route,
            progress=Progress.for_total(progress.total_km, progress.current_km + added),
        )
        self._changed()
        return True

    def continue_tracking(self) -> bool:
        """Leave the celebration screen; only possible while the goal is not reached."""
        if not isinstance(self.state, CelebrationState) or self.state.progress.is_complete:
            return False
        self.state = TrackingState(route=self.state.route, progress=self.state.progress)
        self._changed()
        return True

    def reset(self) -> None:
        """Discard route and progress and go back to SETUP."""
        self._cancel_route_request()
        self.notice = None
        self.state = self._fresh_state()
        self._changed()
