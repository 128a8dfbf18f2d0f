import pytest
import numpy as np

from environment import Airspace, NoFlyZone
from utils.exceptions import ConfigError, NotFoundError, ValidationError


@pytest.fixture
def airspace():
    """Provides a small, empty airspace for each test."""
    return Airspace(grid_size=(20, 20, 5), cell_size=10.0, seed=3)


@pytest.mark.parametrize("grid_size, cell_size", [((0, 10, 10), 10.0), ((10, -1, 10), 10.0), ((10, 10, 10), 0.0)])
def test_invalid_dimensions_raise_config_error(grid_size, cell_size):
    with pytest.raises(ConfigError):
        Airspace(grid_size=grid_size, cell_size=cell_size)


def test_static_obstacle_marks_inclusive_box(airspace):
    airspace.add_static_obstacle((2, 2, 0), (3, 4, 1))
    assert airspace.is_occupied((2, 2, 0))
    assert airspace.is_occupied((3, 4, 1))
    assert not airspace.is_occupied((4, 4, 1))
    assert not airspace.is_occupied((3, 4, 2))
    assert int(airspace.occupancy.sum()) == 2 * 3 * 2


def test_out_of_bounds_cells(airspace):
    assert not airspace.in_bounds((-1, 0, 0))
    assert not airspace.in_bounds((0, 20, 0))
    assert airspace.is_occupied((0, 0, 5))


def test_cell_conversion_round_trip(airspace):
    assert airspace.to_cell((15.0, 0.0, 49.9)) == (1, 0, 4)
    assert airspace.cell_center((1, 0, 4)) == (15.0, 5.0, 45.0)


def test_zone_point_queries(airspace):
    airspace.add_no_fly_zone(NoFlyZone(id='A', center=(100.0, 100.0, 0.0), radius=20.0, height=30.0))
    assert airspace.is_point_restricted((105.0, 95.0, 10.0))
    assert not airspace.is_point_restricted((105.0, 95.0, 40.0))
    assert not airspace.is_point_restricted((130.0, 100.0, 10.0))
    assert [z.id for z in airspace.zones_at((100.0, 100.0, 5.0))] == ['A']


def test_restricted_severity_does_not_count_as_prohibited(airspace):
    airspace.add_no_fly_zone(NoFlyZone(id='R', center=(50.0, 50.0, 0.0), radius=10.0, severity='restricted'))
    assert not airspace.is_point_restricted((50.0, 50.0, 5.0))
    assert airspace.is_point_restricted((50.0, 50.0, 5.0), severities=('restricted',))


def test_duplicate_and_invalid_zones_are_rejected(airspace):
    airspace.add_no_fly_zone(NoFlyZone(id='A', center=(0.0, 0.0, 0.0), radius=5.0))
    with pytest.raises(ValidationError):
        airspace.add_no_fly_zone(NoFlyZone(id='A', center=(10.0, 0.0, 0.0), radius=5.0))
    with pytest.raises(ValidationError):
        airspace.add_no_fly_zone(NoFlyZone(id='B', center=(0.0, 0.0, 0.0), radius=5.0, severity='severe'))
    with pytest.raises(NotFoundError):
        airspace.remove_no_fly_zone('missing')


def test_segment_intersection(airspace):
    zone = airspace.add_no_fly_zone(NoFlyZone(id='A', center=(100.0, 100.0, 0.0), radius=10.0, height=50.0))
    assert airspace.segment_intersects_zone((50.0, 100.0, 20.0), (150.0, 100.0, 20.0), zone)
    assert not airspace.segment_intersects_zone((50.0, 130.0, 20.0), (150.0, 130.0, 20.0), zone)
    assert not airspace.segment_intersects_zone((50.0, 100.0, 80.0), (150.0, 100.0, 80.0), zone)
    assert airspace.path_violations([(50.0, 100.0, 20.0), (150.0, 100.0, 20.0)]) == ['A']


def test_temporary_zone_activation_and_expiry(airspace):
    airspace.add_no_fly_zone(NoFlyZone(id='T', center=(50.0, 50.0, 0.0), radius=10.0,
                                       lifecycle='temporary', start_time=10.0, end_time=20.0))
    assert not airspace.is_point_restricted((50.0, 50.0, 5.0), now=5.0)
    assert airspace.is_point_restricted((50.0, 50.0, 5.0), now=15.0)

    assert airspace.update(now=15.0) == []
    assert airspace.update(now=20.0) == ['T']
    assert 'T' not in airspace.zones
    assert list(airspace.zone_index.intersection((40, 40, 0, 60, 60, 10))) == []


def test_dynamic_zone_drifts_and_stays_indexed(airspace):
    zone = airspace.add_no_fly_zone(NoFlyZone(id='D', center=(100.0, 100.0, 0.0), radius=15.0, lifecycle='dynamic'))
    start = zone.center
    for t in range(1, 6):
        airspace.update(now=float(t), time_step=1.0)
    assert zone.center != start
    assert zone.center[2] == start[2]
    assert [z.id for z in airspace.zones_at((zone.center[0], zone.center[1], 10.0))] == ['D']


def test_moved_zone_is_reindexed(airspace):
    airspace.add_no_fly_zone(NoFlyZone(id='P', center=(50.0, 50.0, 0.0), radius=10.0))
    before = airspace.blocked_grid()
    assert before[5, 5, 0]
    airspace.zones_changed = False

    airspace.move_no_fly_zone('P', (150.0, 150.0, 0.0))

    assert airspace.zones_changed
    assert airspace.is_point_restricted((150.0, 150.0, 5.0))
    assert not airspace.is_point_restricted((50.0, 50.0, 5.0))
    after = airspace.blocked_grid()
    assert after[15, 15, 0] and not after[5, 5, 0]

    airspace.remove_no_fly_zone('P')
    assert list(airspace.zone_index.intersection((0, 0, 0, 200, 200, 50))) == []


def test_move_unknown_or_malformed_zone(airspace):
    with pytest.raises(NotFoundError):
        airspace.move_no_fly_zone('ghost', (0.0, 0.0, 0.0))
    airspace.add_no_fly_zone(NoFlyZone(id='P', center=(50.0, 50.0, 0.0), radius=10.0))
    with pytest.raises(ValidationError):
        airspace.move_no_fly_zone('P', (1.0, 2.0))
    assert airspace.zones['P'].center == (50.0, 50.0, 0.0)

def test_blocked_grid_includes_prohibited_zones_only(airspace):
    airspace.add_static_obstacle((0, 0, 0), (0, 0, 0))
    airspace.add_no_fly_zone(NoFlyZone(id='P', center=(105.0, 105.0, 0.0), radius=6.0))
    airspace.add_no_fly_zone(NoFlyZone(id='C', center=(155.0, 155.0, 0.0), radius=6.0, severity='caution'))
    blocked = airspace.blocked_grid()

    assert blocked[0, 0, 0]
    assert blocked[10, 10, 0] and blocked[10, 10, 4]
    assert not blocked[15, 15, 0]
    assert not airspace.occupancy[10, 10, 0]


def test_risk_overlay_uses_zone_severity(airspace):
    airspace.add_no_fly_zone(NoFlyZone(id='R', center=(105.0, 105.0, 0.0), radius=6.0, severity='restricted'))
    airspace.add_no_fly_zone(NoFlyZone(id='C', center=(155.0, 155.0, 0.0), radius=6.0, severity='caution'))
    risk_map = airspace.risk_overlay(base_risk=0.2)

    assert risk_map.shape == (20, 20, 5)
    assert risk_map[0, 0, 0] == pytest.approx(0.2)
    assert risk_map[10, 10, 2] == pytest.approx(0.7)
    assert risk_map[15, 15, 2] == pytest.approx(0.4)
    assert np.all((risk_map >= 0.0) & (risk_map <= 1.0))
