import pytest

from cycling_motivator.models import (
    DEFAULT_BUNDLE,
    AppPhase,
    CelebrationState,
    Point,
    Profile,
    Progress,
    Route,
    SetupState,
    TrackingState,
    state_from_bundle,
    state_to_bundle,
)


class TestPoint:
    def test_to_dict_uses_map_keys(self):
        assert Point(48.2, 13.48).to_dict() == {"lat": 48.2, "lng": 13.48}

    def test_from_dict(self):
        assert Point.from_dict({"lat": "48.2", "lng": 13.48}) == Point(48.2, 13.48)

    def test_from_dict_missing_key(self):
        with pytest.raises(ValueError, match="Invalid point"):
            Point.from_dict({"lat": 48.2})

    def test_from_dict_not_a_number(self):
        with pytest.raises(ValueError, match="Invalid point"):
            Point.from_dict({"lat": "north", "lng": 13.48})

    def test_is_hashable_and_immutable(self):
        pt = Point(1.0, 2.0)
        assert {pt: 1}[Point(1.0, 2.0)] == 1
        with pytest.raises(AttributeError):
            pt.latitude = 3.0


class TestRoute:
    def test_defaults(self):
        route = Route()
        assert route.start is None
        assert route.end is None
        assert route.path == []
        assert route.distance_km == 0.0
        assert not route.has_endpoints

    def test_from_dict_none(self):
        assert Route.from_dict(None) == Route()

    def test_from_dict_with_path(self):
        route = Route.from_dict({
            "start": {"lat": 1, "lng": 2},
            "end": {"lat": 3, "lng": 4},
            "path": [{"lat": 1, "lng": 2}, {"lat": 3, "lng": 4}],
            "distance": 12.5,
        })
        assert route.start == Point(1, 2)
        assert route.end == Point(3, 4)
        assert len(route.path) == 2
        assert route.distance_km == 12.5
        assert route.has_endpoints

    def test_negative_distance_reads_as_zero(self):
        assert Route.from_dict({"distance": -3}).distance_km == 0.0


class TestProgress:
    def test_for_total_clamps_current(self):
        progress = Progress.for_total(10.0, 13.0)
        assert progress.current_km == 10.0
        assert progress.percentage == 1.0
        assert progress.is_complete

    def test_for_total_percentage(self):
        progress = Progress.for_total(10.0, 2.5)
        assert progress.percentage == pytest.approx(0.25)
        assert progress.remaining_km == pytest.approx(7.5)
        assert not progress.is_complete

    def test_zero_total_has_zero_percentage(self):
        progress = Progress.for_total(0.0, 5.0)
        assert progress.current_km == 0.0
        assert progress.percentage == 0.0
        assert not progress.is_complete

    def test_round_trip_keys(self):
        assert Progress.for_total(4.0, 1.0).to_dict() == {"currentKm": 1.0, "totalKm": 4.0, "percentage": 0.25}


class TestProfile:
    def test_from_dict_default_color(self):
        profile = Profile.from_dict({"id": "user1", "name": "Anna"})
        assert profile.color == "#22d3ee"
        assert profile.photo is None

    def test_from_dict_missing_name(self):
        with pytest.raises(ValueError, match="Invalid profile"):
            Profile.from_dict({"id": "user1"})


class TestStateBundles:
    def test_empty_bundle_is_setup(self):
        assert state_from_bundle(None) == SetupState()
        assert state_from_bundle(DEFAULT_BUNDLE) == SetupState()

    def test_setup_bundle_has_zero_progress(self):
        bundle = state_to_bundle(SetupState(route=Route(start=Point(1, 2))))
        assert bundle["appState"] == "SETUP"
        assert bundle["progress"] == {"currentKm": 0.0, "totalKm": 0.0, "percentage": 0.0}
        assert bundle["route"]["start"] == {"lat": 1, "lng": 2}

    def test_tracking_bundle(self):
        route = Route(start=Point(1, 2), end=Point(3, 4), distance_km=10.0)
        state = state_from_bundle(state_to_bundle(TrackingState(route, Progress.for_total(10.0, 4.0))))
        assert isinstance(state, TrackingState)
        assert state.phase is AppPhase.TRACKING
        assert state.progress.current_km == 4.0

    def test_celebration_bundle(self):
        route = Route(start=Point(1, 2), end=Point(3, 4), distance_km=10.0)
        state = state_from_bundle(state_to_bundle(CelebrationState(route, Progress.for_total(10.0, 10.0))))
        assert isinstance(state, CelebrationState)
        assert state.progress.is_complete

    def test_celebration_without_progress_falls_back_to_setup(self):
        bundle = {
            "route": {"start": {"lat": 1, "lng": 2}, "end": {"lat": 3, "lng": 4}, "path": [], "distance": 0},
            "progress": None,
            "appState": "CELEBRATION",
        }
        state = state_from_bundle(bundle)
        assert isinstance(state, SetupState)
        assert state.route.end == Point(3, 4)

    def test_tracking_without_endpoints_falls_back_to_setup(self):
        bundle = {
            "route": {"start": None, "end": None, "path": [], "distance": 0},
            "progress": {"currentKm": 1, "totalKm": 5, "percentage": 0.2},
            "appState": "TRACKING",
        }
        assert isinstance(state_from_bundle(bundle), SetupState)

    def test_unknown_phase_is_setup(self):
        assert isinstance(state_from_bundle({"route": None, "progress": None, "appState": "PAUSED"}), SetupState)

    def test_malformed_route_raises(self):
        with pytest.raises(ValueError):
            state_from_bundle({"route": {"start": {"lat": "x"}}, "appState": "SETUP"})

    @pytest.mark.parametrize("bundle", [
        [1, 2],
        {"route": [1, 2], "appState": "SETUP"},
        {"route": "start", "appState": "SETUP"},
        {"route": {"path": {"lat": 1, "lng": 2}}},
        {"route": {"distance": [3]}},
        {"route": {"start": [48.2, 13.48]}},
        {"progress": "far", "appState": "TRACKING"},
        {"progress": {"totalKm": {"km": 3}}},
    ])
    def test_wrongly_shaped_bundle_raises_value_error(self, bundle):
        with pytest.raises(ValueError):
            state_from_bundle(bundle)

    def test_unhashable_phase_is_setup(self):
        assert isinstance(state_from_bundle({"route": None, "appState": ["TRACKING"]}), SetupState)
