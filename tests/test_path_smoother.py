import pytest
from unittest.mock import MagicMock

from environment import Airspace
from fleet.components import Agent, Waypoint
from planners.collaborative_a_star import CollaborativePathPlanner
from planners.path_smoother import PathSmoother


@pytest.fixture
def airspace():
    return Airspace(grid_size=(15, 15, 6), cell_size=10.0, seed=4)


@pytest.fixture
def planner(airspace):
    return CollaborativePathPlanner(airspace, clock=lambda: 0.0)


@pytest.fixture
def waypoints(planner):
    agent = Agent(id='D1', position=(25.0, 25.0, 25.0))
    path = planner.plan(agent, (2, 2, 2), (10, 8, 2), None)
    return planner.to_waypoints(path)


def test_short_paths_are_returned_unchanged(airspace):
    pair = [Waypoint(5.0, 5.0, 5.0, 0.0, 15.0, 0.0), Waypoint(15.0, 5.0, 5.0, 1.0, 0.0, 0.0)]
    assert PathSmoother().smooth(pair, airspace) == pair


def test_smoothed_curve_keeps_endpoints_and_flight_time(airspace, waypoints):
    smoothed = PathSmoother().smooth(waypoints, airspace)

    assert len(smoothed) == len(waypoints) * 5
    assert (smoothed[0].x, smoothed[0].y, smoothed[0].z) == (waypoints[0].x, waypoints[0].y, waypoints[0].z)
    assert (smoothed[-1].x, smoothed[-1].y, smoothed[-1].z) == (waypoints[-1].x, waypoints[-1].y, waypoints[-1].z)
    assert smoothed[0].timestamp == pytest.approx(waypoints[0].timestamp)
    assert smoothed[-1].timestamp == pytest.approx(waypoints[-1].timestamp)
    assert [w.timestamp for w in smoothed] == sorted(w.timestamp for w in smoothed)
    assert smoothed[-1].speed == 0.0


def test_collision_reverts_to_original(airspace, waypoints):
    airspace.add_static_obstacle((0, 0, 0), (14, 14, 5))
    assert PathSmoother().smooth(waypoints, airspace) == waypoints


def test_spline_failure_reverts_to_original(airspace, waypoints, monkeypatch):
    monkeypatch.setattr('planners.path_smoother.splprep', MagicMock(side_effect=ValueError("bad input")))
    assert PathSmoother().smooth(waypoints, airspace) == waypoints


def test_planner_smooths_on_request(planner):
    agent = Agent(id='D1', position=(25.0, 25.0, 25.0))
    path = planner.plan(agent, (2, 2, 2), (10, 8, 2), None)
    assert len(planner.to_waypoints(path)) == len(path)
    assert len(planner.to_waypoints(path, smooth=True)) == len(path) * 5
