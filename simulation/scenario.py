# FILE: simulation/scenario.py
"""Seeded synthetic inputs: environment snapshots, fleets, task queues and no-fly zones."""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from config import CELL_SIZE
from environment import Airspace, NoFlyZone
from fleet.components import Agent, Task
from risk.snapshot import (
    AirspaceState, Building, EnvironmentSnapshot, EquipmentHealth, ObstacleField, PopulationEvent,
    PopulationState, PowerLine, RestrictedZone, SensorStatus, TemporaryObstacle, WeatherConditions
)

TASK_TYPE_MIX = ('delivery', 'delivery', 'delivery', 'surveillance', 'emergency', 'maintenance')
TEMPORARY_OBSTACLE_TYPES = ('construction', 'emergency', 'event')
POPULATION_EVENT_TYPES = ('gathering', 'emergency', 'market')
RESTRICTED_ZONE_TYPES = ('military', 'airport', 'emergency', 'government')


@dataclass
class Scenario:
    airspace: Airspace
    agents: List[Agent] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    snapshot: Optional[EnvironmentSnapshot] = None


def generate_sample_snapshot(rng: np.random.Generator) -> EnvironmentSnapshot:
    """Draws one plausible city snapshot. The same generator state gives the same snapshot."""
    weather = WeatherConditions(
        wind_speed=float(rng.uniform(0, 20)),
        wind_direction=float(rng.uniform(0, 360)),
        visibility=float(rng.uniform(0.5, 10)),
        precipitation=float(rng.uniform(0, 5)),
        temperature=float(rng.uniform(-15, 45)),
        pressure=float(rng.uniform(990, 1030)),
    )
    obstacles = ObstacleField(
        buildings=tuple(
            Building(id=f"B{i}", height=float(rng.uniform(10, 200)), type='commercial')
            for i in range(int(rng.integers(0, 100)))
        ),
        power_lines=tuple(PowerLine(id=f"P{i}", height=float(rng.uniform(10, 40))) for i in range(int(rng.integers(0, 5)))),
        temporary_obstacles=tuple(
            TemporaryObstacle(id=f"T{i}", type=str(rng.choice(TEMPORARY_OBSTACLE_TYPES)), radius=float(rng.uniform(10, 100)))
            for i in range(int(rng.integers(0, 3)))
        ),
    )
    population = PopulationState(
        density=float(rng.uniform(0, 1000)),
        events=tuple(
            PopulationEvent(type=str(rng.choice(POPULATION_EVENT_TYPES)), intensity=float(rng.uniform(0, 1)))
            for _ in range(int(rng.integers(0, 3)))
        ),
    )
    equipment = EquipmentHealth(
        battery_level=float(rng.uniform(20, 100)),
        signal_strength=float(rng.uniform(30, 100)),
        system_health=float(rng.uniform(70, 100)),
        sensor_status=SensorStatus(
            gps=bool(rng.random() > 0.1),
            camera=bool(rng.random() > 0.05),
            lidar=bool(rng.random() > 0.05),
            communication=bool(rng.random() > 0.02),
        ),
    )
    airspace = AirspaceState(
        traffic_density=float(rng.uniform(0, 10)),
        restricted_zones=tuple(
            RestrictedZone(id=f"Z{i}", type=str(rng.choice(RESTRICTED_ZONE_TYPES)))
            for i in range(int(rng.integers(0, 3)))
        ),
    )
    return EnvironmentSnapshot(weather=weather, obstacles=obstacles, population=population,
                               equipment=equipment, airspace=airspace)


def build_scenario(seed: int = 42, num_agents: int = 6, num_tasks: int = 8, num_zones: int = 3,
                   grid_size: Sequence[int] = (40, 40, 10), cell_size: float = CELL_SIZE) -> Scenario:
    """A small city: a few building blocks, permanent and dynamic zones, a fleet and a task queue."""
    rng = np.random.default_rng(seed)
    airspace = Airspace(grid_size, cell_size, seed=seed)
    gx, gy, gz = airspace.grid_size

    for _ in range(max(1, (gx * gy) // 200)):
        x, y = int(rng.integers(2, gx - 4)), int(rng.integers(2, gy - 4))
        w, d, h = int(rng.integers(1, 3)), int(rng.integers(1, 3)), int(rng.integers(1, gz // 2 + 1))
        airspace.add_static_obstacle((x, y, 0), (x + w, y + d, h - 1))

    extent_x, extent_y = gx * cell_size, gy * cell_size
    for i in range(num_zones):
        lifecycle = 'dynamic' if i % 3 == 2 else 'permanent'
        severity = ('prohibited', 'restricted', 'caution')[i % 3]
        airspace.add_no_fly_zone(NoFlyZone(
            id=f"NFZ-{i}",
            center=(float(rng.uniform(0.2, 0.8) * extent_x), float(rng.uniform(0.2, 0.8) * extent_y), 0.0),
            radius=float(rng.uniform(1.5, 3.0) * cell_size),
            lifecycle=lifecycle,
            severity=severity,
        ))

    agents = []
    for i in range(num_agents):
        capabilities = {'delivery', 'surveillance'} if i % 3 else {'surveillance', 'maintenance'}
        agents.append(Agent(
            id=f"D{i + 1}",
            position=(float(rng.uniform(0, extent_x)), float(rng.uniform(0, extent_y)), float(cell_size * 2)),
            battery_level=float(rng.uniform(40, 100)),
            payload=float(rng.uniform(2.0, 5.0)),
            priority=int(rng.integers(1, 6)),
            capabilities=capabilities,
            communication_range=float(extent_x / 2),
        ))

    tasks = []
    for i in range(num_tasks):
        task_type = str(rng.choice(TASK_TYPE_MIX))
        tasks.append(Task(
            id=f"T{i + 1}",
            type=task_type,
            location=(float(rng.uniform(0, extent_x)), float(rng.uniform(0, extent_y)), float(cell_size)),
            priority=float(rng.integers(1, 10)),
            required_agents=2 if task_type == 'surveillance' else 1,
            payload=float(rng.uniform(0.5, 3.0)) if task_type == 'delivery' else 0.0,
        ))

    return Scenario(airspace=airspace, agents=agents, tasks=tasks, snapshot=generate_sample_snapshot(rng))
