# FILE: planners/path_smoother.py
import logging
from typing import List, Optional, Sequence

import numpy as np
from scipy.interpolate import splev, splprep

from config import SMOOTHING_FACTOR, SMOOTHING_OVERSAMPLE
from environment import Airspace
from fleet.components import Waypoint
from utils.geometry import calculate_distance_3d, calculate_heading


class PathSmoother:
    """Post-processes grid waypoints into a B-spline curve, keeping the original when the curve clips a blocked cell."""

    def __init__(self, smoothing: float = SMOOTHING_FACTOR, oversample: int = SMOOTHING_OVERSAMPLE):
        self.smoothing = smoothing
        self.oversample = oversample

    def smooth(self, waypoints: Sequence[Waypoint], airspace: Airspace, now: Optional[float] = None) -> List[Waypoint]:
        num_points = len(waypoints)
        if num_points < 3:
            return list(waypoints)

        # The spline degree must be lower than the number of points.
        spline_degree = min(num_points - 1, 3)
        points = np.array([(w.x, w.y, w.z) for w in waypoints], dtype=float).T
        try:
            tck, u = splprep(points, s=self.smoothing, k=spline_degree)
        except ValueError as e:
            logging.error(f"Failed to smooth path: {e}. Returning original path.")
            return list(waypoints)

        u_new = np.linspace(u.min(), u.max(), num_points * self.oversample)
        x_new, y_new, z_new = splev(u_new, tck, der=0)
        positions = [(float(x), float(y), float(z)) for x, y, z in zip(x_new, y_new, z_new)]
        # Endpoints stay exactly where the planner put them.
        positions[0] = (waypoints[0].x, waypoints[0].y, waypoints[0].z)
        positions[-1] = (waypoints[-1].x, waypoints[-1].y, waypoints[-1].z)

        if self._collides(positions, airspace, now):
            logging.warning("Path smoothing created a collision. Reverting to original path.")
            return list(waypoints)
        return self._retime(positions, waypoints[0].timestamp, waypoints[-1].timestamp)

    @staticmethod
    def _collides(positions, airspace: Airspace, now: Optional[float]) -> bool:
        blocked = airspace.blocked_grid(now)
        for point in positions:
            cell = airspace.to_cell(point)
            if not airspace.in_bounds(cell) or blocked[cell]:
                return True
        return bool(airspace.path_violations(positions, now))

    @staticmethod
    def _retime(positions, t_start: float, t_end: float) -> List[Waypoint]:
        """Spreads the original flight time over the curve by arc length."""
        seg_lengths = [calculate_distance_3d(a, b) for a, b in zip(positions, positions[1:])]
        total = sum(seg_lengths)
        times = [t_start]
        for length in seg_lengths:
            share = length / total if total > 0 else 1.0 / len(seg_lengths)
            times.append(times[-1] + share * (t_end - t_start))

        waypoints = []
        heading = 0.0
        for i, here in enumerate(positions):
            speed = 0.0
            if i + 1 < len(positions):
                there = positions[i + 1]
                dt = times[i + 1] - times[i]
                speed = seg_lengths[i] / dt if dt > 0 else 0.0
                if here[:2] != there[:2]:
                    heading = calculate_heading(here, there)
            waypoints.append(Waypoint(x=here[0], y=here[1], z=here[2], timestamp=times[i], speed=speed, heading=heading))
        return waypoints
