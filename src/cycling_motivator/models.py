from dataclasses import dataclass, field
from enum import Enum


class AppPhase(Enum):
    """Phase of a user's journey."""
    SETUP = "SETUP"                # placing start/end markers
    TRACKING = "TRACKING"          # adding ridden kilometers
    CELEBRATION = "CELEBRATION"    # confirmation screen after each add


@dataclass(frozen=True)
class Point:
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"lat": self.latitude, "lng": self.longitude}

    @classmethod
    def from_dict(cls, data: dict) -> "Point":
        """Build a Point from a map-style {"lat", "lng"} dict.

        Raises:
            ValueError: If a coordinate is missing or not a number.
        """
        try:
            return cls(latitude=float(data["lat"]), longitude=float(data["lng"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid point: {data!r}") from e


@dataclass
class Route:
    start: Point | None = None
    end: Point | None = None
    path: list[Point] = field(default_factory=list)
    distance_km: float = 0.0  # routed length, or straight-line fallback once tracking

    @property
    def has_endpoints(self) -> bool:
        return self.start is not None and self.end is not None

    def to_dict(self) -> dict:
        return {
            "start": self.start.to_dict() if self.start else None,
            "end": self.end.to_dict() if self.end else None,
            "path": [p.to_dict() for p in self.path],
            "distance": self.distance_km,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "Route":
        """Build a Route from its wire form.

        Raises:
            ValueError: If the route, a point, the path or the distance is malformed.
        """
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"Invalid route: {data!r}")
        start = data.get("start")
        end = data.get("end")
        path = data.get("path") or []
        if not isinstance(path, list):
            raise ValueError(f"Invalid route path: {path!r}")
        try:
            distance_km = float(data.get("distance") or 0.0)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid route distance: {data.get('distance')!r}") from e
        return cls(
            start=Point.from_dict(start) if start else None,
            end=Point.from_dict(end) if end else None,
            path=[Point.from_dict(p) for p in path],
            distance_km=max(0.0, distance_km),
        )


@dataclass
class Progress:
    current_km: float = 0.0
    total_km: float = 0.0
    percentage: float = 0.0  # 0..1

    @classmethod
    def for_total(cls, total_km: float, current_km: float = 0.0) -> "Progress":
        """Build a Progress with current_km clamped to [0, total_km] and percentage derived."""
        total_km = max(0.0, total_km)
        current_km = min(max(0.0, current_km), total_km)
        percentage = current_km / total_km if total_km > 0 else 0.0
        return cls(current_km=current_km, total_km=total_km, percentage=percentage)

    @property
    def is_complete(self) -> bool:
        return self.total_km > 0 and self.current_km >= self.total_km

    @property
    def remaining_km(self) -> float:
        return max(0.0, self.total_km - self.current_km)

    def to_dict(self) -> dict:
        return {
            "currentKm": self.current_km,
            "totalKm": self.total_km,
            "percentage": self.percentage,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "Progress":
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"Invalid progress: {data!r}")
        try:
            return cls.for_total(
                float(data.get("totalKm") or 0.0),
                float(data.get("currentKm") or 0.0),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid progress: {data!r}") from e


@dataclass
class Profile:
    id: str
    name: str
    color: str
    photo: str | None = None  # data URL

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color": self.color, "photo": self.photo}

    @classmethod
    def from_dict(cls, data: dict) -> "Profile":
        try:
            return cls(
                id=str(data["id"]),
                name=str(data["name"]),
                color=str(data.get("color") or "#22d3ee"),
                photo=data.get("photo"),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid profile: {data!r}") from e


# Phase-tagged journey state. Each variant carries only what its phase needs,
# so e.g. a celebration without recorded progress cannot be represented.

@dataclass
class SetupState:
    route: Route = field(default_factory=Route)
    phase = AppPhase.SETUP


@dataclass
class TrackingState:
    route: Route
    progress: Progress
    phase = AppPhase.TRACKING


@dataclass
class CelebrationState:
    route: Route
    progress: Progress
    phase = AppPhase.CELEBRATION


JourneyState = SetupState | TrackingState | CelebrationState

DEFAULT_BUNDLE = {"route": None, "progress": None, "appState": AppPhase.SETUP.value}


def state_to_bundle(state: JourneyState) -> dict:
    """Convert a journey state to the persisted {route, progress, appState} bundle."""
    progress = getattr(state, "progress", None) or Progress()
    return {
        "route": state.route.to_dict(),
        "progress": progress.to_dict(),
        "appState": state.phase.value,
    }


def state_from_bundle(bundle: dict | None) -> JourneyState:
    """Rebuild a journey state from a persisted bundle.

    Bundles that claim TRACKING or CELEBRATION without both route endpoints
    and a positive total fall back to SETUP, keeping the stored route.

    Raises:
        ValueError: If the route or progress data is malformed.
    """
    if not bundle:
        return SetupState()
    if not isinstance(bundle, dict):
        raise ValueError(f"Invalid state bundle: {bundle!r}")
    route = Route.from_dict(bundle.get("route"))
    progress = Progress.from_dict(bundle.get("progress"))
    try:
        phase = AppPhase(bundle.get("appState") or AppPhase.SETUP.value)
    except (TypeError, ValueError):
        phase = AppPhase.SETUP

    if phase is AppPhase.SETUP or not route.has_endpoints or progress.total_km <= 0:
        return SetupState(route=route)
    if phase is AppPhase.TRACKING:
        return TrackingState(route=route, progress=progress)
    return CelebrationState(route=route, progress=progress)
