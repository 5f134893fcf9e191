from unittest.mock import MagicMock, patch

import pytest
import requests

from cycling_motivator import routing
from cycling_motivator.models import Point
from cycling_motivator.routing import RouteError, RouteResult, build_route_url, fetch_route


def osrm_response(payload, status_code=200):
    return MagicMock(status_code=status_code, json=lambda: payload)


OK_PAYLOAD = {
    "code": "Ok",
    "routes": [{
        "distance": 1523.4,
        "geometry": {
            "type": "LineString",
            "coordinates": [[13.48, 48.2], [13.485, 48.203], [13.49, 48.21]],
        },
    }],
}


class TestBuildRouteUrl:
    def test_lon_lat_order(self, start_point, end_point):
        url = build_route_url(start_point, end_point)
        assert url == "https://router.project-osrm.org/route/v1/bicycling/13.48,48.2;13.49,48.21"

    def test_custom_base_and_profile(self, start_point, end_point):
        url = build_route_url(start_point, end_point, "http://localhost:5000/", "bike")
        assert url.startswith("http://localhost:5000/route/v1/bike/")


class TestFetchRoute:
    @patch.object(routing.requests, "get")
    def test_success(self, mock_get, start_point, end_point):
        mock_get.return_value = osrm_response(OK_PAYLOAD)

        result = fetch_route(start_point, end_point)

        assert isinstance(result, RouteResult)
        assert result.distance_km == pytest.approx(1.5234)
        assert result.coordinates[0] == Point(latitude=48.2, longitude=13.48)
        assert result.coordinates[-1] == Point(latitude=48.21, longitude=13.49)
        assert len(result.coordinates) == 3

    @patch.object(routing.requests, "get")
    def test_requests_full_geojson_overview(self, mock_get, start_point, end_point):
        mock_get.return_value = osrm_response(OK_PAYLOAD)

        fetch_route(start_point, end_point, timeout=5)

        args, kwargs = mock_get.call_args
        assert args[0].endswith("/route/v1/bicycling/13.48,48.2;13.49,48.21")
        assert kwargs["params"] == {"overview": "full", "geometries": "geojson"}
        assert kwargs["timeout"] == 5

    @patch.object(routing.requests, "get")
    def test_non_ok_code_is_error(self, mock_get, start_point, end_point):
        mock_get.return_value = osrm_response(
            {"code": "NoRoute", "message": "Impossible route between points"}, status_code=400
        )

        result = fetch_route(start_point, end_point)

        assert isinstance(result, RouteError)
        assert result.message == "Impossible route between points"

    @patch.object(routing.requests, "get")
    def test_empty_routes_is_error(self, mock_get, start_point, end_point):
        mock_get.return_value = osrm_response({"code": "Ok", "routes": []})

        result = fetch_route(start_point, end_point)

        assert isinstance(result, RouteError)
        assert result.message == "No route found"

    @patch.object(routing.requests, "get")
    def test_network_error_is_error(self, mock_get, start_point, end_point):
        mock_get.side_effect = requests.ConnectionError("connection refused")

        result = fetch_route(start_point, end_point)

        assert isinstance(result, RouteError)
        assert "unreachable" in result.message

    @patch.object(routing.requests, "get")
    def test_timeout_is_error(self, mock_get, start_point, end_point):
        mock_get.side_effect = requests.Timeout("timed out")

        assert isinstance(fetch_route(start_point, end_point), RouteError)

    @patch.object(routing.requests, "get")
    def test_invalid_json_is_error(self, mock_get, start_point, end_point):
        response = MagicMock(status_code=502)
        response.json.side_effect = ValueError("Expecting value")
        mock_get.return_value = response

        result = fetch_route(start_point, end_point)

        assert isinstance(result, RouteError)
        assert "invalid response" in result.message

    @patch.object(routing.requests, "get")
    def test_malformed_geometry_is_error(self, mock_get, start_point, end_point):
        mock_get.return_value = osrm_response({"code": "Ok", "routes": [{"distance": 100}]})

        result = fetch_route(start_point, end_point)

        assert isinstance(result, RouteError)
        assert "malformed" in result.message

    @pytest.mark.parametrize("routes", [{"a": 1}, "route", [None], [[1, 2]]])
    @patch.object(routing.requests, "get")
    def test_wrongly_shaped_routes_are_errors(self, mock_get, routes, start_point, end_point):
        mock_get.return_value = osrm_response({"code": "Ok", "routes": routes})

        result = fetch_route(start_point, end_point)

        assert isinstance(result, RouteError)
        assert "malformed" in result.message

    @patch.object(routing.requests, "get")
    def test_makes_single_attempt(self, mock_get, start_point, end_point):
        mock_get.side_effect = requests.ConnectionError("down")

        fetch_route(start_point, end_point)

        assert mock_get.call_count == 1
