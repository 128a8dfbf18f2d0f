# FILE: risk/snapshot.py
"""Immutable environment snapshot fed to the risk engine for one assessment."""
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from utils.exceptions import ValidationError

Position = Tuple[float, float, float]

_MISSING = object()


def _get(data: Mapping, path: str, name: str, alias: Optional[str] = None, default: Any = _MISSING) -> Any:
    """Reads `name` (or its camelCase alias) from a mapping, failing fast when required."""
    if not isinstance(data, Mapping):
        raise ValidationError(f"Expected a mapping at '{path}', got {type(data).__name__}", field=path)
    if name in data:
        return data[name]
    if alias and alias in data:
        return data[alias]
    if default is _MISSING:
        full_name = f"{path}.{name}" if path else name
        raise ValidationError(f"Snapshot is missing required field '{full_name}'", field=full_name)
    return default


def _position(value: Any) -> Optional[Position]:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return (float(value.get('x', 0.0)), float(value.get('y', 0.0)), float(value.get('z', 0.0)))
    return tuple(float(c) for c in value)


@dataclass(frozen=True)
class WeatherConditions:
    wind_speed: float
    visibility: float
    precipitation: float
    temperature: float
    wind_direction: float = 0.0
    pressure: float = 1013.25

    @classmethod
    def from_dict(cls, data: Mapping) -> 'WeatherConditions':
        return cls(
            wind_speed=float(_get(data, 'weather', 'wind_speed', 'windSpeed')),
            visibility=float(_get(data, 'weather', 'visibility')),
            precipitation=float(_get(data, 'weather', 'precipitation')),
            temperature=float(_get(data, 'weather', 'temperature')),
            wind_direction=float(_get(data, 'weather', 'wind_direction', 'windDirection', 0.0)),
            pressure=float(_get(data, 'weather', 'pressure', default=1013.25)),
        )


@dataclass(frozen=True)
class Building:
    id: str
    height: float = 0.0
    position: Optional[Position] = None
    type: str = 'commercial'


@dataclass(frozen=True)
class PowerLine:
    id: str
    height: float = 0.0
    path: Tuple[Position, ...] = ()


@dataclass(frozen=True)
class TemporaryObstacle:
    id: str
    type: str
    radius: float = 0.0
    position: Optional[Position] = None


@dataclass(frozen=True)
class ObstacleField:
    buildings: Tuple[Building, ...] = ()
    power_lines: Tuple[PowerLine, ...] = ()
    temporary_obstacles: Tuple[TemporaryObstacle, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> 'ObstacleField':
        buildings = tuple(
            Building(
                id=str(_get(b, 'obstacles.buildings', 'id', default=f"B{i}")),
                height=float(_get(b, 'obstacles.buildings', 'height', default=0.0)),
                position=_position(_get(b, 'obstacles.buildings', 'position', default=None)),
                type=str(_get(b, 'obstacles.buildings', 'type', default='commercial')),
            )
            for i, b in enumerate(_get(data, 'obstacles', 'buildings', default=()))
        )
        power_lines = tuple(
            PowerLine(
                id=str(_get(p, 'obstacles.power_lines', 'id', default=f"P{i}")),
                height=float(_get(p, 'obstacles.power_lines', 'height', default=0.0)),
                path=tuple(_position(pt) for pt in _get(p, 'obstacles.power_lines', 'path', default=())),
            )
            for i, p in enumerate(_get(data, 'obstacles', 'power_lines', 'powerLines', ()))
        )
        temporary = tuple(
            TemporaryObstacle(
                id=str(_get(t, 'obstacles.temporary_obstacles', 'id', default=f"T{i}")),
                type=str(_get(t, 'obstacles.temporary_obstacles', 'type')),
                radius=float(_get(t, 'obstacles.temporary_obstacles', 'radius', default=0.0)),
                position=_position(_get(t, 'obstacles.temporary_obstacles', 'position', default=None)),
            )
            for i, t in enumerate(_get(data, 'obstacles', 'temporary_obstacles', 'temporaryObstacles', ()))
        )
        return cls(buildings=buildings, power_lines=power_lines, temporary_obstacles=temporary)


@dataclass(frozen=True)
class PopulationEvent:
    type: str
    location: Optional[Tuple[float, float]] = None
    intensity: float = 0.0


@dataclass(frozen=True)
class PopulationState:
    density: float
    events: Tuple[PopulationEvent, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> 'PopulationState':
        events = []
        for e in _get(data, 'population', 'events', default=()):
            location = _get(e, 'population.events', 'location', default=None)
            if isinstance(location, Mapping):
                location = (float(location.get('lat', 0.0)), float(location.get('lng', 0.0)))
            events.append(PopulationEvent(
                type=str(_get(e, 'population.events', 'type')),
                location=tuple(location) if location is not None else None,
                intensity=float(_get(e, 'population.events', 'intensity', default=0.0)),
            ))
        return cls(density=float(_get(data, 'population', 'density')), events=tuple(events))


@dataclass(frozen=True)
class SensorStatus:
    gps: bool = True
    camera: bool = True
    lidar: bool = True
    communication: bool = True

    def failures(self) -> int:
        return sum(1 for ok in (self.gps, self.camera, self.lidar, self.communication) if not ok)


@dataclass(frozen=True)
class EquipmentHealth:
    battery_level: float
    signal_strength: float
    system_health: float
    sensor_status: SensorStatus = field(default_factory=SensorStatus)
    drone_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> 'EquipmentHealth':
        sensors = _get(data, 'equipment', 'sensor_status', 'sensorStatus')
        return cls(
            battery_level=float(_get(data, 'equipment', 'battery_level', 'batteryLevel')),
            signal_strength=float(_get(data, 'equipment', 'signal_strength', 'signalStrength')),
            system_health=float(_get(data, 'equipment', 'system_health', 'systemHealth')),
            sensor_status=SensorStatus(
                gps=bool(_get(sensors, 'equipment.sensor_status', 'gps', default=True)),
                camera=bool(_get(sensors, 'equipment.sensor_status', 'camera', default=True)),
                lidar=bool(_get(sensors, 'equipment.sensor_status', 'lidar', default=True)),
                communication=bool(_get(sensors, 'equipment.sensor_status', 'communication', default=True)),
            ),
            drone_id=_get(data, 'equipment', 'drone_id', 'droneId', None),
        )


@dataclass(frozen=True)
class RestrictedZone:
    id: str
    type: str
    boundary: Tuple[Tuple[float, float], ...] = ()
    altitude_min: float = 0.0
    altitude_max: float = float('inf')


@dataclass(frozen=True)
class AirspaceState:
    traffic_density: float
    restricted_zones: Tuple[RestrictedZone, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> 'AirspaceState':
        zones = []
        for i, z in enumerate(_get(data, 'airspace', 'restricted_zones', 'restrictedZones', ())):
            altitude = _get(z, 'airspace.restricted_zones', 'altitude', default={}) or {}
            boundary = []
            for point in _get(z, 'airspace.restricted_zones', 'boundary', default=()):
                if isinstance(point, Mapping):
                    boundary.append((float(point.get('lat', 0.0)), float(point.get('lng', 0.0))))
                else:
                    boundary.append(tuple(float(c) for c in point))
            zones.append(RestrictedZone(
                id=str(_get(z, 'airspace.restricted_zones', 'id', default=f"Z{i}")),
                type=str(_get(z, 'airspace.restricted_zones', 'type')),
                boundary=tuple(boundary),
                altitude_min=float(altitude.get('min', 0.0)),
                altitude_max=float(altitude.get('max', float('inf'))),
            ))
        return cls(
            traffic_density=float(_get(data, 'airspace', 'traffic_density', 'trafficDensity')),
            restricted_zones=tuple(zones),
        )


@dataclass(frozen=True)
class EnvironmentSnapshot:
    """One immutable bundle of sensed or simulated conditions."""
    weather: WeatherConditions
    obstacles: ObstacleField
    population: PopulationState
    equipment: EquipmentHealth
    airspace: AirspaceState

    @classmethod
    def from_dict(cls, data: Mapping) -> 'EnvironmentSnapshot':
        """Builds a snapshot from plain host data, raising ValidationError on a missing field."""
        return cls(
            weather=WeatherConditions.from_dict(_get(data, '', 'weather')),
            obstacles=ObstacleField.from_dict(_get(data, '', 'obstacles')),
            population=PopulationState.from_dict(_get(data, '', 'population')),
            equipment=EquipmentHealth.from_dict(_get(data, '', 'equipment')),
            airspace=AirspaceState.from_dict(_get(data, '', 'airspace')),
        )


def ensure_snapshot(snapshot: Any) -> EnvironmentSnapshot:
    if isinstance(snapshot, EnvironmentSnapshot):
        return snapshot
    if isinstance(snapshot, Mapping):
        return EnvironmentSnapshot.from_dict(snapshot)
    raise ValidationError(f"Unsupported snapshot type {type(snapshot).__name__}", field='snapshot')
