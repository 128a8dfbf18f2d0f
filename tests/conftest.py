import pytest


def calm_snapshot(weather=None, equipment=None, population=None, airspace=None, obstacles=None):
    """A calm, healthy baseline with every risk category scoring zero."""
    data = {
        'weather': {'wind_speed': 0.0, 'visibility': 10.0, 'precipitation': 0.0, 'temperature': 20.0},
        'obstacles': {'buildings': [], 'power_lines': [], 'temporary_obstacles': []},
        'population': {'density': 10.0, 'events': []},
        'equipment': {
            'battery_level': 90.0, 'signal_strength': 90.0, 'system_health': 95.0,
            'sensor_status': {'gps': True, 'camera': True, 'lidar': True, 'communication': True},
        },
        'airspace': {'restricted_zones': [], 'traffic_density': 0.0},
    }
    for key, overrides in (('weather', weather), ('equipment', equipment), ('population', population),
                           ('airspace', airspace), ('obstacles', obstacles)):
        if overrides:
            data[key].update(overrides)
    return data


@pytest.fixture
def make_snapshot():
    return calm_snapshot
