# main.py
import logging

import numpy as np

from config import DRONE_CRUISE_SPEED
from fleet.coordinator import Coordinator
from risk.engine import RiskEngine
from simulation.event_injector import EventInjector
from simulation.scenario import build_scenario

TICK_SECONDS = 1.0


class SimulationClock:
    """Manually advanced clock so a demo run is reproducible."""
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def fly_agents(coordinator: Coordinator, seconds: float):
    """Host-side stand-in for flight control: straight-line moves toward each destination."""
    for agent in coordinator.agents.values():
        if agent.status not in ('flying', 'delivering') or agent.destination is None:
            continue
        position, target = np.array(agent.position), np.array(agent.destination)
        offset = target - position
        distance = float(np.linalg.norm(offset))
        step = DRONE_CRUISE_SPEED * seconds
        new_position = target if distance <= step else position + offset / distance * step
        coordinator.update_agent_state(
            agent.id,
            position=tuple(float(c) for c in new_position),
            battery_level=max(0.0, agent.battery_level - 0.05 * seconds),
        )


def advance_tasks(coordinator: Coordinator):
    for task in list(coordinator.tasks.values()):
        if task.status == 'assigned':
            coordinator.start_task(task.id)
            for agent_id in task.assigned_agents:
                agent = coordinator.agents[agent_id]
                start = coordinator.airspace.to_cell(agent.position)
                goal = coordinator.airspace.to_cell(task.location)
                if not coordinator.plan_path(agent_id, start, goal):
                    logging.info(f"No route for {agent_id} to task {task.id}; flying direct.")
        elif task.status == 'executing':
            arrived = all(
                np.allclose(coordinator.agents[a].position, coordinator.agents[a].destination)
                for a in task.assigned_agents if a in coordinator.agents
            )
            if arrived:
                coordinator.complete_task(task.id)


def run_demo(ticks: int = 120, seed: int = 42) -> dict:
    scenario = build_scenario(seed=seed)
    clock = SimulationClock()
    coordinator = Coordinator(airspace=scenario.airspace, risk_engine=RiskEngine(seed=seed, clock=clock), clock=clock)
    injector = EventInjector(coordinator, seed=seed)

    for agent in scenario.agents:
        coordinator.register_agent(agent)
    for task in scenario.tasks:
        coordinator.enqueue_task(task)
    coordinator.set_environment(scenario.snapshot)

    forecast = coordinator.risk_engine.forecast(scenario.snapshot)
    logging.info(f"Risk forecast: {[round(p.risk, 3) for p in forecast]}")

    for _ in range(ticks):
        clock.advance(TICK_SECONDS)
        injector.maybe_inject()
        coordinator.tick()
        advance_tasks(coordinator)
        fly_agents(coordinator, TICK_SECONDS)
        coordinator.drain_messages()

    status = coordinator.get_status()
    logging.info(f"Final status after {ticks} ticks: {status}")
    return status


def main():
    """Runs the demo scenario and prints a short summary."""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    print("--- SkyBrain Fleet Decision Core: demo run ---")
    status = run_demo()
    for key, value in status.items():
        print(f"  {key}: {value}")
    print("\n--- Demo Finished ---")


if __name__ == "__main__":
    main()
