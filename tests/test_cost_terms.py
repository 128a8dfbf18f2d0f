import pytest

from environment import Airspace
from fleet.components import Agent, PathNode
from planners.collaborative_a_star import CollaborativePathPlanner
from planners.cost_terms import (
    AgentDensityCongestion, AltitudeEnergy, NoCollaborationBonus, NoCongestion, NoPathPrediction,
    PlannedPathPredictor, PlanningContext, TeammateCorridorBonus, UnitEnergy
)


def straight_path(y, t0=0.0, length=10):
    return [PathNode(x=i, y=y, z=1, cost=float(i), risk=0.0, timestamp=t0 + i) for i in range(length)]


@pytest.fixture
def agents():
    return {
        'A': Agent(id='A', position=(15.0, 15.0, 15.0)),
        'B': Agent(id='B', position=(25.0, 15.0, 15.0)),
        'C': Agent(id='C', position=(95.0, 95.0, 15.0)),
    }


@pytest.fixture
def context(agents):
    return PlanningContext(agents=agents, cell_size=10.0, grid_size=(10, 10, 5), now=0.0)


def test_neutral_defaults(agents, context):
    agent = agents['A']
    assert NoCongestion().cost((1, 1, 1), agent, context) == 0.0
    assert UnitEnergy().cost((1, 1, 1), agent, context) == 1.0
    assert NoCollaborationBonus().bonus((1, 1, 1), agent, context) == 0.0
    assert NoPathPrediction().predict(agent, context) == set()


def test_agent_density_counts_nearby_others(agents, context):
    congestion = AgentDensityCongestion(radius=1, weight=2.0)
    assert congestion.cost((1, 1, 1), agents['A'], context) == pytest.approx(2.0)
    assert congestion.cost((1, 1, 1), agents['C'], context) == pytest.approx(4.0)
    assert congestion.cost((5, 5, 1), agents['A'], context) == 0.0


def test_altitude_energy_grows_with_height_and_low_battery(agents, context):
    energy = AltitudeEnergy()
    agent = agents['A']
    assert energy.cost((0, 0, 0), agent, context) == pytest.approx(1.0)
    assert energy.cost((0, 0, 4), agent, context) > energy.cost((0, 0, 2), agent, context)
    tired = Agent(id='T', position=(0.0, 0.0, 0.0), battery_level=10.0)
    assert energy.cost((0, 0, 4), tired, context) > energy.cost((0, 0, 4), agent, context)


def test_teammate_corridor_bonus(agents, context):
    context.planned_paths = {'B': straight_path(y=3)}
    context.teammates = {'B'}
    bonus = TeammateCorridorBonus(bonus=0.5)
    assert bonus.bonus((4, 3, 1), agents['A'], context) == pytest.approx(0.5)
    assert bonus.bonus((4, 4, 1), agents['A'], context) == 0.0
    context.teammates = set()
    assert bonus.bonus((4, 3, 1), agents['A'], context) == 0.0


def test_planned_path_predictor_skips_own_and_flown_cells(agents, context):
    context.planned_paths = {'A': straight_path(y=0), 'B': straight_path(y=3)}
    context.now = 5.0
    predicted = PlannedPathPredictor().predict(agents['A'], context)
    assert predicted == {(i, 3, 1) for i in range(5, 10)}
    assert PlannedPathPredictor(lookahead_s=2.0).predict(agents['A'], context) == {(5, 3, 1), (6, 3, 1), (7, 3, 1)}


def test_predicted_cells_are_penalised_by_planner(agents, context):
    airspace = Airspace(grid_size=(10, 10, 5), cell_size=10.0, seed=0)
    planner = CollaborativePathPlanner(airspace, predictor=PlannedPathPredictor(), clock=lambda: 0.0)
    reserved = [(x, 2, 1) for x in range(10)] + [(4, y, 1) for y in range(10) if y != 2]
    context.planned_paths = {'B': [PathNode(x=c[0], y=c[1], z=c[2], cost=0.0, risk=0.0, timestamp=0.0) for c in reserved]}
    path = planner.plan(agents['A'], (0, 2, 1), (9, 2, 1), None, context=context)
    assert path
    assert all(n.cell not in set(reserved) for n in path[1:-1])


def test_collaboration_bonus_cannot_make_edges_negative(agents, context):
    airspace = Airspace(grid_size=(10, 10, 5), cell_size=10.0, seed=0)
    planner = CollaborativePathPlanner(airspace, collaboration=TeammateCorridorBonus(bonus=100.0), clock=lambda: 0.0)
    context.planned_paths = {'B': straight_path(y=3)}
    context.teammates = {'B'}
    assert planner.edge_cost((4, 3, 1), agents['A'], None, set(), context) == 0.0
