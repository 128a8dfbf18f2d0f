# FILE: planners/collaborative_a_star.py
import heapq
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from config import (
    RISK_COST_WEIGHT, DYNAMIC_OBSTACLE_PENALTY, PLANNER_MAX_EXPANSIONS, DRONE_CRUISE_SPEED,
    CELL_SIZE, AVERAGE_SPEED_FACTOR, ENERGY_PCT_PER_KM
)
from environment import Airspace
from fleet.components import Agent, PathNode, Waypoint
from planners.cost_terms import (
    CollaborationBonus, CongestionModel, EnergyModel, NoCollaborationBonus, NoCongestion,
    NoPathPrediction, PathPredictor, PlanningContext, UnitEnergy
)
from planners.path_smoother import PathSmoother
from utils.geometry import calculate_distance_3d, calculate_heading

GridPos = Tuple[int, int, int]
RiskMap = Union[np.ndarray, Mapping[GridPos, float], None]

# 6 axis-aligned moves plus the 4 planar diagonals. No 3D diagonals.
MOVES: Tuple[GridPos, ...] = (
    (1, 0, 0), (-1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, 1), (0, 0, -1),
    (1, 1, 0), (1, -1, 0), (-1, 1, 0), (-1, -1, 0),
)


@dataclass(frozen=True)
class PathMetrics:
    distance: float  # world units
    time: float  # seconds at the average route speed
    energy: float  # battery percent, capped at 100
    risk: float  # mean risk of every node after the start


class CollaborativePathPlanner:
    """Risk-aware, collaboration-aware A* for a single agent on the airspace grid."""

    def __init__(self, airspace: Airspace,
                 congestion: Optional[CongestionModel] = None,
                 energy: Optional[EnergyModel] = None,
                 collaboration: Optional[CollaborationBonus] = None,
                 predictor: Optional[PathPredictor] = None,
                 max_expansions: int = PLANNER_MAX_EXPANSIONS,
                 cruise_speed: float = DRONE_CRUISE_SPEED,
                 smoother: Optional[PathSmoother] = None,
                 clock: Callable[[], float] = time.time):
        self.airspace = airspace
        self.congestion = congestion or NoCongestion()
        self.energy = energy or UnitEnergy()
        self.collaboration = collaboration or NoCollaborationBonus()
        self.predictor = predictor or NoPathPrediction()
        self.max_expansions = max_expansions
        self.cruise_speed = cruise_speed
        self.smoother = smoother or PathSmoother()
        self.clock = clock
        self.last_expansions = 0

    def plan(self, agent: Agent, start: Sequence[float], goal: Sequence[float], risk_map: RiskMap = None,
             dynamic_obstacles: Optional[Iterable[GridPos]] = None,
             context: Optional[PlanningContext] = None) -> List[PathNode]:
        """
        Returns the cheapest route from `start` to within one cell of `goal`, or []
        when the endpoints are invalid, the open set empties or the expansion budget runs out.
        """
        start_cell = tuple(int(round(c)) for c in start)
        goal_point = tuple(float(c) for c in goal)
        goal_cell = tuple(int(round(c)) for c in goal)
        if context is None:
            context = PlanningContext(cell_size=self.airspace.cell_size, grid_size=self.airspace.grid_size, now=self.clock())

        blocked = self.airspace.blocked_grid(context.now)
        if not self._is_valid(start_cell, blocked):
            logging.warning(f"Planner: start {start_cell} for agent {agent.id} is out of bounds or blocked.")
            return []
        if not self._is_valid(goal_cell, blocked):
            logging.info(f"Planner: goal {goal_cell} for agent {agent.id} is out of bounds or blocked. No path.")
            return []

        dynamic: Set[GridPos] = {tuple(c) for c in dynamic_obstacles} if dynamic_obstacles else set()
        dynamic |= self.predictor.predict(agent, context)

        counter = itertools.count()
        h_start = self._heuristic(start_cell, goal_point)
        # Ties on f go to the lower h, then to the earlier insertion.
        open_set = [(h_start, h_start, next(counter), start_cell)]
        came_from: Dict[GridPos, Optional[GridPos]] = {start_cell: None}
        g_score: Dict[GridPos, float] = {start_cell: 0.0}
        closed: Set[GridPos] = set()
        expansions = 0

        while open_set:
            _, _, _, current = heapq.heappop(open_set)
            if current in closed:
                continue
            if self._reached(current, goal_point):
                self.last_expansions = expansions
                return self._reconstruct_path(came_from, g_score, current, risk_map, context.now)
            closed.add(current)
            expansions += 1
            if expansions > self.max_expansions:
                logging.warning(f"Planner: expansion budget ({self.max_expansions}) exhausted for agent {agent.id}.")
                self.last_expansions = expansions
                return []

            for dx, dy, dz in MOVES:
                neighbor = (current[0] + dx, current[1] + dy, current[2] + dz)
                if neighbor in closed or not self._is_valid(neighbor, blocked):
                    continue
                tentative_g = g_score[current] + self.edge_cost(neighbor, agent, risk_map, dynamic, context)
                if tentative_g < g_score.get(neighbor, float('inf')):
                    came_from[neighbor] = current
                    g_score[neighbor] = tentative_g
                    h = self._heuristic(neighbor, goal_point)
                    heapq.heappush(open_set, (tentative_g + h, h, next(counter), neighbor))

        self.last_expansions = expansions
        logging.info(f"Planner: no path for agent {agent.id} from {start_cell} to {goal_cell}.")
        return []

    def edge_cost(self, cell: GridPos, agent: Agent, risk_map: RiskMap,
                  dynamic: Set[GridPos], context: PlanningContext) -> float:
        cost = 1.0
        cost += RISK_COST_WEIGHT * risk_at(risk_map, cell)
        if cell in dynamic:
            cost += DYNAMIC_OBSTACLE_PENALTY
        cost += self.congestion.cost(cell, agent, context)
        cost += self.energy.cost(cell, agent, context)
        cost -= self.collaboration.bonus(cell, agent, context)
        return max(0.0, cost)

    def _is_valid(self, cell: GridPos, blocked: np.ndarray) -> bool:
        return self.airspace.in_bounds(cell) and not blocked[cell]

    @staticmethod
    def _reached(cell: GridPos, goal: Tuple[float, float, float]) -> bool:
        return all(abs(c - g) < 1 for c, g in zip(cell, goal))

    @staticmethod
    def _heuristic(cell: GridPos, goal: Tuple[float, float, float]) -> float:
        return calculate_distance_3d(cell, goal)

    def _reconstruct_path(self, came_from, g_score, current, risk_map, t0) -> List[PathNode]:
        cells = []
        while current is not None:
            cells.append(current)
            current = came_from[current]
        cells.reverse()
        step_time = self.airspace.cell_size / self.cruise_speed
        return [
            PathNode(x=c[0], y=c[1], z=c[2], cost=g_score[c], risk=risk_at(risk_map, c), timestamp=t0 + i * step_time)
            for i, c in enumerate(cells)
        ]

    def to_waypoints(self, path: Sequence[PathNode], smooth: bool = False) -> List[Waypoint]:
        """Converts a planned cell path into world-space waypoints with speed and heading, optionally B-spline smoothed."""
        waypoints = []
        heading = 0.0
        for i, node in enumerate(path):
            here = self.airspace.cell_center(node.cell)
            speed = 0.0
            if i + 1 < len(path):
                nxt = path[i + 1]
                there = self.airspace.cell_center(nxt.cell)
                dt = nxt.timestamp - node.timestamp
                speed = calculate_distance_3d(here, there) / dt if dt > 0 else 0.0
                if here[:2] != there[:2]:
                    heading = calculate_heading(here, there)
            waypoints.append(Waypoint(x=here[0], y=here[1], z=here[2], timestamp=node.timestamp, speed=speed, heading=heading))
        if smooth and waypoints:
            return self.smoother.smooth(waypoints, self.airspace, now=path[0].timestamp)
        return waypoints

    def metrics(self, path: Sequence[PathNode]) -> PathMetrics:
        return path_metrics(path, self.airspace.cell_size, self.cruise_speed)


def risk_at(risk_map: RiskMap, cell: GridPos) -> float:
    """Risk for a cell; missing maps and out-of-bounds reads are 0."""
    if risk_map is None:
        return 0.0
    if isinstance(risk_map, np.ndarray):
        if len(cell) != risk_map.ndim or any(c < 0 or c >= d for c, d in zip(cell, risk_map.shape)):
            return 0.0
        return float(risk_map[cell])
    return float(risk_map.get(tuple(cell), 0.0))


def path_metrics(path: Sequence[PathNode], cell_size: float = CELL_SIZE,
                 cruise_speed: float = DRONE_CRUISE_SPEED) -> PathMetrics:
    """Distance, flight time, battery use and mean risk of a planned route."""
    distance = sum(calculate_distance_3d(a.cell, b.cell) for a, b in zip(path, path[1:])) * cell_size
    total_risk = sum(node.risk for node in path[1:])
    return PathMetrics(
        distance=distance,
        time=distance / (cruise_speed * AVERAGE_SPEED_FACTOR),
        energy=min(100.0, distance / 1000.0 * ENERGY_PCT_PER_KM),
        risk=total_risk / max(1, len(path) - 1),
    )
