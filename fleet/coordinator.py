# FILE: fleet/coordinator.py
import copy
import dataclasses
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

import numpy as np

from config import (
    BROADCAST, SYSTEM_SENDER_ID, COORDINATION_MESSAGE_PRIORITY, WARNING_MESSAGE_PRIORITY,
    RISK_WARNING_THRESHOLD
)
from dispatch.task_assigner import TaskAssigner
from environment import Airspace
from fleet.components import (
    AGENT_STATUSES, OPEN_TASK_STATUSES, TASK_TYPES, Agent, AgentID, GridPosition, Message, PathNode, Task
)
from planners.collaborative_a_star import CollaborativePathPlanner, PathMetrics
from planners.cost_terms import PlanningContext
from risk.engine import RiskAssessment, RiskEngine
from risk.snapshot import EnvironmentSnapshot, ensure_snapshot
from simulation.deconfliction import ConflictResolver
from utils.exceptions import NotFoundError, ValidationError

AGENT_FIELDS = {f.name for f in dataclasses.fields(Agent)} - {'id'}
NUMERIC_AGENT_FIELDS = {'battery_level', 'payload', 'priority', 'communication_range', 'last_update'}
VECTOR_AGENT_FIELDS = {'position', 'velocity', 'destination'}


def _coerce_agent_field(name: str, value: Any) -> Any:
    """Converts one incoming agent field to its stored type, raising ValidationError on bad input."""
    try:
        if name in VECTOR_AGENT_FIELDS:
            if value is None and name == 'destination':
                return None
            vector = tuple(float(c) for c in value)
            if len(vector) != 3:
                raise ValidationError(f"Agent {name} must have three components", field=name)
            return vector
        if name in NUMERIC_AGENT_FIELDS:
            return float(value)
        if name == 'capabilities':
            return {str(c) for c in value}
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid value for agent {name}: {value!r}", field=name) from e
    return value


class Coordinator:
    """
    Facade that owns the agent, task and message registries and runs one
    discrete tick: refresh -> deconflict -> assign -> reassess risk.
    Not thread-safe; hosts must serialize calls.
    """
    def __init__(self, airspace: Optional[Airspace] = None,
                 risk_engine: Optional[RiskEngine] = None,
                 planner: Optional[CollaborativePathPlanner] = None,
                 resolver: Optional[ConflictResolver] = None,
                 assigner: Optional[TaskAssigner] = None,
                 clock: Callable[[], float] = time.time,
                 enforce_deadlines: bool = False):
        self.clock = clock
        self.airspace = airspace or Airspace()
        self.risk_engine = risk_engine or RiskEngine(clock=clock)
        self.planner = planner or CollaborativePathPlanner(self.airspace, clock=clock)
        self.resolver = resolver or ConflictResolver(replanner=self._replan, clock=clock)
        self.assigner = assigner or TaskAssigner()
        self.enforce_deadlines = enforce_deadlines

        self.agents: Dict[AgentID, Agent] = {}
        self.tasks: Dict[str, Task] = {}
        self.messages: List[Message] = []
        self.planned_paths: Dict[AgentID, List[PathNode]] = {}
        self.goals: Dict[AgentID, GridPosition] = {}
        self.route_metrics: Dict[AgentID, PathMetrics] = {}

        self.environment: Optional[EnvironmentSnapshot] = None
        self.last_assessment: Optional[RiskAssessment] = None
        self.risk_map: Optional[np.ndarray] = None
        self.tick_count = 0
        self.last_tick_time: Optional[float] = None
        self.last_update = clock()

    # --- Agent registry ---
    def register_agent(self, agent: Agent) -> Agent:
        if agent.id in self.agents:
            raise ValidationError(f"Agent {agent.id} is already registered", field='id')
        if agent.status not in AGENT_STATUSES:
            raise ValidationError(f"Unknown agent status '{agent.status}'", field='status')
        agent.capabilities = set(agent.capabilities)
        agent.last_update = self.clock()
        self.agents[agent.id] = agent
        logging.info(f"Registered agent {agent.id} at {agent.position}.")
        return agent

    def unregister_agent(self, agent_id: AgentID) -> Agent:
        agent = self.get_agent(agent_id)
        for task in self.tasks.values():
            if task.status in OPEN_TASK_STATUSES and agent_id in task.assigned_agents:
                logging.warning(f"Agent {agent_id} left while on task {task.id}; failing the task.")
                self.fail_task(task.id, reason=f"agent {agent_id} unregistered")
        del self.agents[agent_id]
        self.planned_paths.pop(agent_id, None)
        self.goals.pop(agent_id, None)
        self.route_metrics.pop(agent_id, None)
        logging.info(f"Unregistered agent {agent_id}.")
        return agent

    def get_agent(self, agent_id: AgentID) -> Agent:
        if agent_id not in self.agents:
            raise NotFoundError(f"Agent {agent_id} is not registered")
        return self.agents[agent_id]

    def update_agent_state(self, agent_id: AgentID, **fields: Any) -> Agent:
        """Applies a partial update; every field is validated and converted before any is written."""
        agent = self.get_agent(agent_id)
        unknown = set(fields) - AGENT_FIELDS
        if unknown:
            raise ValidationError(f"Unknown agent field(s): {sorted(unknown)}", field=sorted(unknown)[0])

        converted = {name: _coerce_agent_field(name, value) for name, value in fields.items()}
        if 'status' in converted and converted['status'] not in AGENT_STATUSES:
            raise ValidationError(f"Unknown agent status '{converted['status']}'", field='status')
        if 'battery_level' in converted and not 0 <= converted['battery_level'] <= 100:
            raise ValidationError(f"Battery level must be within [0, 100], got {converted['battery_level']}",
                                  field='battery_level')

        for name, value in converted.items():
            setattr(agent, name, value)
        if 'last_update' not in converted:
            agent.last_update = self.clock()
        return agent

    # --- Task registry ---
    def enqueue_task(self, task: Task) -> Task:
        if task.id in self.tasks:
            raise ValidationError(f"Task {task.id} is already queued", field='id')
        if task.type not in TASK_TYPES:
            raise ValidationError(f"Unknown task type '{task.type}'", field='type')
        if task.required_agents < 1:
            raise ValidationError(f"Task {task.id} must require at least one agent", field='required_agents')
        if task.status != 'pending':
            raise ValidationError(f"New task {task.id} must be pending, got '{task.status}'", field='status')
        task.created_at = self.clock()
        self.tasks[task.id] = task
        logging.info(f"Queued {task.type} task {task.id} (priority {task.priority}, needs {task.required_agents}).")
        return task

    def get_task(self, task_id: str) -> Task:
        if task_id not in self.tasks:
            raise NotFoundError(f"Task {task_id} is not queued")
        return self.tasks[task_id]

    def start_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task.status != 'assigned':
            raise ValidationError(f"Task {task_id} cannot start from '{task.status}'", field='status')
        task.status = 'executing'
        for agent_id in task.assigned_agents:
            if agent_id in self.agents:
                self.agents[agent_id].status = 'delivering'
        return task

    def complete_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task.status not in OPEN_TASK_STATUSES:
            raise ValidationError(f"Task {task_id} cannot complete from '{task.status}'", field='status')
        task.status = 'completed'
        self._release_agents(task)
        logging.info(f"Task {task_id} completed.")
        return task

    def fail_task(self, task_id: str, reason: Optional[str] = None) -> Task:
        task = self.get_task(task_id)
        if task.status in ('completed', 'failed'):
            raise ValidationError(f"Task {task_id} is already {task.status}", field='status')
        task.status = 'failed'
        self._release_agents(task)
        logging.warning(f"Task {task_id} failed{': ' + reason if reason else ''}.")
        return task

    def _release_agents(self, task: Task):
        for agent_id in task.assigned_agents:
            agent = self.agents.get(agent_id)
            if agent is None:
                continue
            agent.status = 'idle'
            agent.destination = None
            self.planned_paths.pop(agent_id, None)
            self.goals.pop(agent_id, None)
            self.route_metrics.pop(agent_id, None)

    # --- Planning ---
    def set_environment(self, snapshot) -> EnvironmentSnapshot:
        self.environment = ensure_snapshot(snapshot)
        return self.environment

    def current_risk_map(self) -> np.ndarray:
        if self.risk_map is None:
            self.risk_map = self.airspace.risk_overlay(0.0, self.clock())
        return self.risk_map

    def planning_context(self, agent: Agent) -> PlanningContext:
        teammates: Set[AgentID] = set()
        for task in self.tasks.values():
            if task.status in OPEN_TASK_STATUSES and agent.id in task.assigned_agents:
                teammates.update(a for a in task.assigned_agents if a != agent.id)
        return PlanningContext(
            agents=self.agents, planned_paths=self.planned_paths, teammates=teammates,
            cell_size=self.airspace.cell_size, grid_size=self.airspace.grid_size, now=self.clock(),
        )

    def plan_path(self, agent_id: AgentID, start: Sequence[float], goal: Sequence[float],
                  risk_map=None, dynamic_obstacles=None) -> List[PathNode]:
        """Plans in grid cells and remembers the result for deconfliction and prediction."""
        agent = self.get_agent(agent_id)
        if risk_map is None:
            risk_map = self.current_risk_map()
        path = self.planner.plan(agent, start, goal, risk_map, dynamic_obstacles, self.planning_context(agent))
        self.goals[agent_id] = tuple(int(round(c)) for c in goal)
        if path:
            self.planned_paths[agent_id] = path
            metrics = self.planner.metrics(path)
            self.route_metrics[agent_id] = metrics
            logging.info(f"Route for {agent_id}: {metrics.distance:.0f} m, {metrics.time:.0f} s, "
                         f"{metrics.energy:.1f}% battery, mean risk {metrics.risk:.2f}.")
        else:
            self.planned_paths.pop(agent_id, None)
            self.route_metrics.pop(agent_id, None)
        return path

    def _replan(self, agent: Agent, reserved: Set[GridPosition]) -> List[PathNode]:
        goal = self.goals.get(agent.id)
        if goal is None:
            return []
        start = self.airspace.to_cell(agent.position)
        return self.plan_path(agent.id, start, goal, dynamic_obstacles=reserved)

    # --- Tick ---
    def tick(self):
        now = self.clock()
        time_step = now - self.last_tick_time if self.last_tick_time is not None else 0.0

        self._refresh(now, time_step)

        for conflict in self.resolver.detect(list(self.agents.values()), self.planned_paths, now):
            self.messages.extend(self.resolver.resolve(conflict, self.agents, self.planned_paths, now))

        for task, selected in self.assigner.assign(list(self.tasks.values()), list(self.agents.values())):
            for agent in selected:
                agent.last_update = now
                self._send(agent.id, 'coordination', {
                    'type': 'task_assignment', 'task_id': task.id, 'task_type': task.type,
                    'location': tuple(task.location),
                    'teammates': [a for a in task.assigned_agents if a != agent.id],
                }, now, COORDINATION_MESSAGE_PRIORITY)

        if self.environment is not None:
            self._reassess(now)

        self.tick_count += 1
        self.last_tick_time = now
        self.last_update = now

    def _refresh(self, now: float, time_step: float):
        self.airspace.update(now, time_step)
        if self.enforce_deadlines:
            for task in self.tasks.values():
                if task.status == 'pending' and task.deadline is not None and now > task.deadline:
                    self.fail_task(task.id, reason='deadline passed while pending')

        if self.airspace.zones_changed:
            self.airspace.zones_changed = False
            self.risk_map = None
            for agent_id, path in list(self.planned_paths.items()):
                remaining = [self.airspace.cell_center(n.cell) for n in path if n.timestamp >= now] or \
                            [self.airspace.cell_center(path[-1].cell)]
                violated = self.airspace.path_violations(remaining, now)
                if violated:
                    logging.warning(f"Planned path of {agent_id} crosses no-fly zone(s) {violated}; plan dropped.")
                    del self.planned_paths[agent_id]
                    self.route_metrics.pop(agent_id, None)
                    self._send(agent_id, 'warning', {'type': 'path_invalidated', 'zone_ids': violated},
                               now, WARNING_MESSAGE_PRIORITY)

    def _reassess(self, now: float):
        assessment = self.risk_engine.assess(self.environment)
        self.last_assessment = assessment
        self.risk_map = self.airspace.risk_overlay(assessment.overall, now)
        if assessment.overall > RISK_WARNING_THRESHOLD:
            logging.warning(f"Overall risk {assessment.overall:.3f} exceeds {RISK_WARNING_THRESHOLD}.")
            self._send(BROADCAST, 'warning', {
                'type': 'risk_warning', 'overall': assessment.overall,
                'recommendations': list(assessment.recommendations),
            }, now, WARNING_MESSAGE_PRIORITY)

    def _send(self, recipient: str, kind: str, payload: Dict[str, Any], now: float, priority: int):
        self.messages.append(Message(sender=SYSTEM_SENDER_ID, recipient=recipient, kind=kind,
                                     payload=payload, timestamp=now, priority=priority))

    # --- Outputs ---
    def drain_messages(self) -> List[Message]:
        """Hands every queued message to the transport, highest priority first."""
        drained = sorted(self.messages, key=lambda m: m.priority, reverse=True)
        self.messages = []
        return drained

    def get_status(self) -> Dict[str, Any]:
        now = self.clock()
        total = len(self.agents)
        active_agents = sum(1 for a in self.agents.values() if a.status != 'idle')
        return {
            'total_agents': total,
            'active_agents': active_agents,
            'active_tasks': sum(1 for t in self.tasks.values() if t.status == 'executing'),
            'pending_messages': len(self.messages),
            'recent_conflicts': len(self.resolver.recent_conflicts(now)),
            'system_load': (active_agents / total) * 100 if total else 0.0,
            'last_update': self.last_update,
        }

    def snapshot(self) -> Dict[str, Any]:
        """Deep-copied plain view of all registries for a renderer."""
        return copy.deepcopy({
            'agents': {agent_id: agent.to_dict() for agent_id, agent in self.agents.items()},
            'tasks': {task_id: task.to_dict() for task_id, task in self.tasks.items()},
            'planned_paths': {agent_id: [dataclasses.asdict(n) for n in path] for agent_id, path in self.planned_paths.items()},
            'route_metrics': {agent_id: dataclasses.asdict(m) for agent_id, m in self.route_metrics.items()},
            'messages': [dataclasses.asdict(m) for m in self.messages],
            'no_fly_zones': {zone_id: dataclasses.asdict(zone) for zone_id, zone in self.airspace.zones.items()},
            'risk': self.last_assessment.to_dict() if self.last_assessment else None,
            'tick': self.tick_count,
        })
