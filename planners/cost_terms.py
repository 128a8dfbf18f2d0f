# ==============================================================================
# File: planners/cost_terms.py
# ==============================================================================
"""
Pluggable scoring terms for the collaborative planner. Every strategy is a
deterministic function of (cell, agent, PlanningContext); the neutral defaults
reproduce plain risk-aware A*.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from config import CELL_SIZE, GRID_SIZE
from fleet.components import Agent, AgentID, PathNode

GridCoord = Tuple[int, int, int]


@dataclass
class PlanningContext:
    """Read-only view of the fleet handed to every scoring term during one search."""
    agents: Dict[AgentID, Agent] = field(default_factory=dict)
    planned_paths: Dict[AgentID, List[PathNode]] = field(default_factory=dict)
    teammates: Set[AgentID] = field(default_factory=set)
    cell_size: float = CELL_SIZE
    grid_size: GridCoord = GRID_SIZE
    now: float = 0.0

    def agent_cell(self, agent: Agent) -> GridCoord:
        return tuple(int(c // self.cell_size) for c in agent.position)


class CongestionModel(ABC):
    @abstractmethod
    def cost(self, cell: GridCoord, agent: Agent, context: PlanningContext) -> float:
        pass


class NoCongestion(CongestionModel):
    def cost(self, cell, agent, context) -> float:
        return 0.0


class AgentDensityCongestion(CongestionModel):
    """Charges `weight` per other agent whose current cell is within `radius` cells (Chebyshev)."""
    def __init__(self, radius: int = 2, weight: float = 1.0):
        self.radius = radius
        self.weight = weight

    def cost(self, cell, agent, context) -> float:
        crowd = 0
        for other in context.agents.values():
            if other.id == agent.id:
                continue
            other_cell = context.agent_cell(other)
            if max(abs(a - b) for a, b in zip(cell, other_cell)) <= self.radius:
                crowd += 1
        return crowd * self.weight


class EnergyModel(ABC):
    @abstractmethod
    def cost(self, cell: GridCoord, agent: Agent, context: PlanningContext) -> float:
        pass


class UnitEnergy(EnergyModel):
    def cost(self, cell, agent, context) -> float:
        return 1.0


class AltitudeEnergy(EnergyModel):
    """Unit energy plus a surcharge that grows linearly with altitude and scales with low battery."""
    def __init__(self, altitude_weight: float = 0.5, battery_weight: float = 0.5):
        self.altitude_weight = altitude_weight
        self.battery_weight = battery_weight

    def cost(self, cell, agent, context) -> float:
        ceiling = max(1, context.grid_size[2] - 1)
        altitude_share = cell[2] / ceiling
        battery_pressure = 1.0 + self.battery_weight * (1.0 - max(0.0, min(agent.battery_level, 100.0)) / 100.0)
        return 1.0 + self.altitude_weight * altitude_share * battery_pressure


class CollaborationBonus(ABC):
    @abstractmethod
    def bonus(self, cell: GridCoord, agent: Agent, context: PlanningContext) -> float:
        pass


class NoCollaborationBonus(CollaborationBonus):
    def bonus(self, cell, agent, context) -> float:
        return 0.0


class TeammateCorridorBonus(CollaborationBonus):
    """Rewards cells on a teammate's planned path so a team flies a shared corridor."""
    def __init__(self, bonus: float = 0.5):
        self.amount = bonus

    def bonus(self, cell, agent, context) -> float:
        for teammate_id in context.teammates:
            if teammate_id == agent.id:
                continue
            if any(node.cell == tuple(cell) for node in context.planned_paths.get(teammate_id, ())):
                return self.amount
        return 0.0


class PathPredictor(ABC):
    @abstractmethod
    def predict(self, agent: Agent, context: PlanningContext) -> Set[GridCoord]:
        """Cells other agents are expected to occupy while `agent` flies."""
        pass


class NoPathPrediction(PathPredictor):
    def predict(self, agent, context) -> Set[GridCoord]:
        return set()


class PlannedPathPredictor(PathPredictor):
    """Treats the not-yet-flown part of every other agent's planned path as occupied."""
    def __init__(self, lookahead_s: Optional[float] = None):
        self.lookahead_s = lookahead_s

    def predict(self, agent, context) -> Set[GridCoord]:
        predicted = set()
        for other_id, path in context.planned_paths.items():
            if other_id == agent.id:
                continue
            for node in path:
                if node.timestamp < context.now:
                    continue
                if self.lookahead_s is not None and node.timestamp > context.now + self.lookahead_s:
                    break
                predicted.add(node.cell)
        return predicted
