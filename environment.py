# FILE: environment.py
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from opensimplex import OpenSimplex
from rtree import index

from config import (
    GRID_SIZE, CELL_SIZE, ZONE_SEVERITY_RISK,
    DYNAMIC_ZONE_DRIFT_SCALE, DYNAMIC_ZONE_MAX_DRIFT, DYNAMIC_ZONE_TIME_SCALE
)
from utils.exceptions import ConfigError, NotFoundError, ValidationError
from utils.geometry import clamp_unit, point_in_cylinder, segment_point_distance

Cell = Tuple[int, int, int]
Point = Tuple[float, float, float]

ZONE_LIFECYCLES = ('permanent', 'temporary', 'dynamic')
ZONE_SEVERITIES = ('prohibited', 'restricted', 'caution')
UNBOUNDED_CEILING = 1e9


@dataclass
class NoFlyZone:
    """Upright cylinder of restricted airspace. A height of None means no ceiling."""
    id: str
    center: Point
    radius: float
    lifecycle: str = 'permanent'
    severity: str = 'prohibited'
    height: Optional[float] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def ceiling(self) -> float:
        return self.center[2] + self.height if self.height is not None else UNBOUNDED_CEILING

    def bounds(self) -> Tuple[float, float, float, float, float, float]:
        cx, cy, cz = self.center
        return (cx - self.radius, cy - self.radius, cz, cx + self.radius, cy + self.radius, self.ceiling)

    def is_active(self, now: Optional[float] = None) -> bool:
        if now is None or self.lifecycle != 'temporary':
            return True
        if self.start_time is not None and now < self.start_time:
            return False
        return self.end_time is None or now < self.end_time

    def is_expired(self, now: float) -> bool:
        return self.lifecycle == 'temporary' and self.end_time is not None and now >= self.end_time

    def contains(self, point: Sequence[float]) -> bool:
        height = self.ceiling - self.center[2]
        return point_in_cylinder(point, self.center, self.radius, height)

    def intersects_segment(self, p1: Sequence[float], p2: Sequence[float]) -> bool:
        """Planar distance test against the zone axis plus an altitude-band overlap test."""
        low, high = min(p1[2], p2[2]), max(p1[2], p2[2])
        if high < self.center[2] or low > self.ceiling:
            return False
        return segment_point_distance(p1[:2], p2[:2], self.center[:2]) <= self.radius


class Airspace:
    """
    Discretized 3D airspace: a fixed-extent grid of uniform cells with binary
    static occupancy, plus a spatially indexed set of cylindrical no-fly zones.
    """
    def __init__(self, grid_size: Sequence[int] = GRID_SIZE, cell_size: float = CELL_SIZE, seed: Optional[int] = None):
        if len(grid_size) != 3 or any(int(d) <= 0 for d in grid_size):
            raise ConfigError(f"Grid dimensions must be three positive integers, got {tuple(grid_size)}")
        if cell_size <= 0:
            raise ConfigError(f"Cell size must be positive, got {cell_size}")
        self.grid_size: Cell = tuple(int(d) for d in grid_size)
        self.cell_size = float(cell_size)
        self.occupancy = np.zeros(self.grid_size, dtype=bool)

        p = index.Property()
        p.dimension = 3
        self.zone_index = index.Index(properties=p)
        self.zones: Dict[str, NoFlyZone] = {}
        self._index_ids: Dict[str, int] = {}
        self._index_bounds: Dict[str, Tuple[float, float, float, float, float, float]] = {}
        self._index_counter = 0

        if seed is None: seed = np.random.randint(0, 1000)
        self.noise_gen_x = OpenSimplex(seed)
        self.noise_gen_y = OpenSimplex(seed + 1)
        self.time = 0.0
        self.zones_changed = False
        self._blocked_cache = None
        logging.info(f"Airspace ready: grid {self.grid_size}, cell size {self.cell_size}.")

    # --- Grid ---
    def in_bounds(self, cell: Sequence[int]) -> bool:
        return all(0 <= c < d for c, d in zip(cell, self.grid_size))

    def is_occupied(self, cell: Sequence[int]) -> bool:
        """Static occupancy; cells outside the grid count as occupied."""
        if not self.in_bounds(cell):
            return True
        return bool(self.occupancy[tuple(cell)])

    def add_static_obstacle(self, min_cell: Sequence[int], max_cell: Sequence[int]):
        """Marks the inclusive box of cells between min_cell and max_cell as occupied."""
        lo = [max(0, min(a, b)) for a, b in zip(min_cell, max_cell)]
        hi = [min(d, max(a, b) + 1) for a, b, d in zip(min_cell, max_cell, self.grid_size)]
        self.occupancy[lo[0]:hi[0], lo[1]:hi[1], lo[2]:hi[2]] = True
        self._blocked_cache = None

    def clear_static_obstacles(self):
        self.occupancy[:] = False
        self._blocked_cache = None

    def to_cell(self, point: Sequence[float]) -> Cell:
        return tuple(int(np.floor(c / self.cell_size)) for c in point)

    def cell_center(self, cell: Sequence[int]) -> Point:
        return tuple((c + 0.5) * self.cell_size for c in cell)

    # --- No-fly zones ---
    def add_no_fly_zone(self, zone: NoFlyZone) -> NoFlyZone:
        if zone.lifecycle not in ZONE_LIFECYCLES:
            raise ValidationError(f"Unknown zone lifecycle '{zone.lifecycle}'", field='lifecycle')
        if zone.severity not in ZONE_SEVERITIES:
            raise ValidationError(f"Unknown zone severity '{zone.severity}'", field='severity')
        if zone.radius < 0 or (zone.height is not None and zone.height < 0):
            raise ValidationError(f"Zone {zone.id} has a negative radius or height", field='radius')
        if zone.id in self.zones:
            raise ValidationError(f"No-fly zone {zone.id} already exists", field='id')
        zone.center = tuple(float(c) for c in zone.center)
        self.zones[zone.id] = zone
        self._index_zone(zone)
        self._mark_changed()
        logging.info(f"Added {zone.lifecycle} no-fly zone {zone.id} ({zone.severity}) at {zone.center}, r={zone.radius}")
        return zone

    def remove_no_fly_zone(self, zone_id: str) -> NoFlyZone:
        zone = self.zones.pop(zone_id, None)
        if zone is None:
            raise NotFoundError(f"No-fly zone {zone_id} is not registered")
        self._unindex_zone(zone_id)
        self._mark_changed()
        logging.info(f"Removed no-fly zone {zone_id}")
        return zone

    def move_no_fly_zone(self, zone_id: str, center: Sequence[float]) -> NoFlyZone:
        """Moves a zone's centre and re-indexes it. Any lifecycle may be moved; dynamic zones drift through here."""
        zone = self.zones.get(zone_id)
        if zone is None:
            raise NotFoundError(f"No-fly zone {zone_id} is not registered")
        try:
            new_center = tuple(float(c) for c in center)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid centre for zone {zone_id}: {center!r}", field='center') from e
        if len(new_center) != 3:
            raise ValidationError(f"Zone {zone_id} centre must have three components", field='center')
        self._unindex_zone(zone_id)
        zone.center = new_center
        self._index_zone(zone)
        self._mark_changed()
        logging.debug(f"Moved no-fly zone {zone_id} to ({new_center[0]:.1f}, {new_center[1]:.1f}, {new_center[2]:.1f})")
        return zone

    def _index_zone(self, zone: NoFlyZone):
        index_id = self._index_counter
        self._index_counter += 1
        bounds = zone.bounds()
        self.zone_index.insert(index_id, bounds)
        self._index_ids[zone.id] = index_id
        self._index_bounds[zone.id] = bounds

    def _unindex_zone(self, zone_id: str):
        # Delete with the bounds the zone was inserted under, not its current ones.
        self.zone_index.delete(self._index_ids.pop(zone_id), self._index_bounds.pop(zone_id))

    def _mark_changed(self):
        self.zones_changed = True
        self._blocked_cache = None

    def active_zones(self, now: Optional[float] = None) -> List[NoFlyZone]:
        return [zone for zone in self.zones.values() if zone.is_active(now)]

    def zones_at(self, point: Sequence[float], now: Optional[float] = None) -> List[NoFlyZone]:
        x, y, z = point
        ids_by_index = {v: k for k, v in self._index_ids.items()}
        hits = []
        for index_id in self.zone_index.intersection((x, y, z, x, y, z)):
            zone = self.zones[ids_by_index[index_id]]
            if zone.is_active(now) and zone.contains(point):
                hits.append(zone)
        return hits

    def is_point_restricted(self, point: Sequence[float], now: Optional[float] = None,
                            severities: Sequence[str] = ('prohibited',)) -> bool:
        return any(zone.severity in severities for zone in self.zones_at(point, now))

    def segment_intersects_zone(self, p1: Sequence[float], p2: Sequence[float], zone: NoFlyZone) -> bool:
        return zone.intersects_segment(p1, p2)

    def path_violations(self, points: Sequence[Sequence[float]], now: Optional[float] = None) -> List[str]:
        """Ids of active prohibited zones crossed by consecutive path segments."""
        violated = []
        for zone in self.active_zones(now):
            if zone.severity != 'prohibited':
                continue
            if any(zone.intersects_segment(points[i], points[i + 1]) for i in range(len(points) - 1)):
                violated.append(zone.id)
            elif len(points) == 1 and zone.contains(points[0]):
                violated.append(zone.id)
        return violated

    def update(self, now: float, time_step: float = 1.0) -> List[str]:
        """Expires temporary zones and drifts dynamic zone centres. Returns the expired ids."""
        expired = [zone_id for zone_id, zone in self.zones.items() if zone.is_expired(now)]
        for zone_id in expired:
            self.remove_no_fly_zone(zone_id)
            logging.info(f"Temporary no-fly zone {zone_id} expired.")

        if time_step <= 0:
            return expired
        self.time += time_step * DYNAMIC_ZONE_TIME_SCALE
        for zone in self.zones.values():
            if zone.lifecycle != 'dynamic':
                continue
            cx, cy, cz = zone.center
            nx, ny = cx / DYNAMIC_ZONE_DRIFT_SCALE, cy / DYNAMIC_ZONE_DRIFT_SCALE
            dx = self.noise_gen_x.noise3(nx, ny, self.time) * DYNAMIC_ZONE_MAX_DRIFT
            dy = self.noise_gen_y.noise3(nx, ny, self.time) * DYNAMIC_ZONE_MAX_DRIFT
            self.move_no_fly_zone(zone.id, (cx + dx, cy + dy, cz))
        return expired

    # --- Planning layers ---
    def _zone_cells(self, zone: NoFlyZone):
        """Boolean mask of cells whose centres fall inside the zone."""
        min_x, min_y, min_z, max_x, max_y, max_z = zone.bounds()
        lo = self.to_cell((min_x, min_y, min_z))
        hi = self.to_cell((max_x, max_y, min(max_z, self.grid_size[2] * self.cell_size)))
        lo = [max(0, c) for c in lo]
        hi = [min(d, c + 1) for c, d in zip(hi, self.grid_size)]
        mask = np.zeros(self.grid_size, dtype=bool)
        if any(h <= l for l, h in zip(lo, hi)):
            return mask
        xs = (np.arange(lo[0], hi[0]) + 0.5) * self.cell_size
        ys = (np.arange(lo[1], hi[1]) + 0.5) * self.cell_size
        zs = (np.arange(lo[2], hi[2]) + 0.5) * self.cell_size
        gx, gy, gz = np.meshgrid(xs, ys, zs, indexing='ij')
        cx, cy, cz = zone.center
        inside = ((gx - cx) ** 2 + (gy - cy) ** 2 <= zone.radius ** 2) & (gz >= cz) & (gz <= zone.ceiling)
        mask[lo[0]:hi[0], lo[1]:hi[1], lo[2]:hi[2]] = inside
        return mask

    def blocked_grid(self, now: Optional[float] = None) -> np.ndarray:
        """Static occupancy plus every cell inside an active prohibited zone."""
        active_ids = tuple(sorted(z.id for z in self.active_zones(now) if z.severity == 'prohibited'))
        if self._blocked_cache is not None and self._blocked_cache[0] == active_ids:
            return self._blocked_cache[1]
        grid = self.occupancy.copy()
        for zone_id in active_ids:
            grid |= self._zone_cells(self.zones[zone_id])
        self._blocked_cache = (active_ids, grid)
        return grid

    def risk_overlay(self, base_risk: float = 0.0, now: Optional[float] = None) -> np.ndarray:
        """Per-cell risk map: the base score everywhere, raised inside active zones by severity."""
        risk_map = np.full(self.grid_size, clamp_unit(base_risk), dtype=float)
        for zone in self.active_zones(now):
            level = ZONE_SEVERITY_RISK[zone.severity]
            mask = self._zone_cells(zone)
            risk_map[mask] = np.maximum(risk_map[mask], level)
        return risk_map
