import subprocess
import sys
from unittest.mock import patch

import gpxpy
import pytest

from cycling_motivator import cli
from cycling_motivator.models import Point
from cycling_motivator.routing import RouteError, RouteResult


def run_cli(*args):
    return subprocess.run(
        [sys.executable, "-m", "cycling_motivator", *args],
        capture_output=True,
        text=True,
    )


class TestCli:
    def test_distance(self):
        result = run_cli("distance", "48.2,13.48", "48.21,13.49")
        assert result.returncode == 0
        assert "Straight-line distance: 1.34 km" in result.stdout

    def test_distance_same_point(self):
        result = run_cli("distance", "48.2,13.48", "48.2,13.48")
        assert result.returncode == 0
        assert "0.00 km" in result.stdout

    def test_bad_point_is_usage_error(self):
        result = run_cli("distance", "north", "48.21,13.49")
        assert result.returncode == 2
        assert "Expected LAT,LNG" in result.stderr

    def test_out_of_range_point(self):
        result = run_cli("distance", "95,13.48", "48.21,13.49")
        assert result.returncode == 2
        assert "out of range" in result.stderr

    def test_missing_command(self):
        result = run_cli()
        assert result.returncode == 2

    def test_help_lists_commands(self):
        result = run_cli("--help")
        assert result.returncode == 0
        for command in ("distance", "route", "serve"):
            assert command in result.stdout


class TestRouteCommand:
    """Route tests call main() in-process so the routing service can be mocked."""

    @patch.object(cli, "fetch_route")
    def test_prints_route(self, mock_fetch, capsys):
        mock_fetch.return_value = RouteResult(
            coordinates=[Point(48.2, 13.48), Point(48.2, 13.49), Point(48.21, 13.49)],
            distance_km=1.92,
        )

        cli.main(["route", "48.2,13.48", "48.21,13.49", "--base-url", "http://localhost:5000"])

        out = capsys.readouterr().out
        assert "Route distance: 1.92 km" in out
        assert "Points:         3" in out
        _, kwargs = mock_fetch.call_args
        assert kwargs["base_url"] == "http://localhost:5000"

    @patch.object(cli, "fetch_route")
    def test_writes_gpx(self, mock_fetch, tmp_path, capsys):
        mock_fetch.return_value = RouteResult(
            coordinates=[Point(48.2, 13.48), Point(48.21, 13.49)],
            distance_km=1.5,
        )
        gpx_path = tmp_path / "route.gpx"

        cli.main(["route", "48.2,13.48", "48.21,13.49", "--gpx", str(gpx_path)])

        with open(gpx_path) as f:
            gpx = gpxpy.parse(f)
        assert len(gpx.tracks[0].segments[0].points) == 2

    @patch.object(cli, "fetch_route")
    def test_routing_failure_exits_1(self, mock_fetch, capsys):
        mock_fetch.return_value = RouteError("No route found")

        with pytest.raises(SystemExit) as exc_info:
            cli.main(["route", "48.2,13.48", "48.21,13.49"])

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "routing failed: No route found" in err
        assert "Straight-line distance: 1.34 km" in err
