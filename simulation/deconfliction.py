# FILE: simulation/deconfliction.py
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Set

import numpy as np

from config import (
    SAFETY_RADIUS, SEVERITY_REFERENCE_DISTANCE, AVOIDANCE_MIN_DURATION_MS, AVOIDANCE_DISTANCE,
    PATH_CONFLICT_WINDOW_S, RECENT_CONFLICT_WINDOW_S, SYSTEM_SENDER_ID, COORDINATION_MESSAGE_PRIORITY
)
from fleet.components import Agent, AgentID, Conflict, ConflictRecord, GridPosition, Message, PathNode
from utils.exceptions import NotFoundError, ValidationError
from utils.geometry import calculate_distance_3d

Replanner = Callable[[Agent, Set[GridPosition]], List[PathNode]]


class PathConflictPredicate(ABC):
    @abstractmethod
    def severity(self, a: Agent, b: Agent, planned_paths: Mapping[AgentID, List[PathNode]]) -> Optional[float]:
        """Severity of a path conflict between a and b, or None when their plans are compatible."""
        pass


class NeverPathConflict(PathConflictPredicate):
    def severity(self, a, b, planned_paths) -> Optional[float]:
        return None


class TimeWindowPathConflict(PathConflictPredicate):
    """Flags two plans that put both agents in the same cell less than `window_s` apart."""
    def __init__(self, window_s: float = PATH_CONFLICT_WINDOW_S):
        self.window_s = window_s

    def severity(self, a, b, planned_paths) -> Optional[float]:
        path_a, path_b = planned_paths.get(a.id), planned_paths.get(b.id)
        if not path_a or not path_b:
            return None
        visits: Dict[GridPosition, List[float]] = {}
        for node in path_b:
            visits.setdefault(node.cell, []).append(node.timestamp)
        closest = None
        for node in path_a:
            for t in visits.get(node.cell, ()):
                gap = abs(node.timestamp - t)
                if gap <= self.window_s and (closest is None or gap < closest):
                    closest = gap
        if closest is None:
            return None
        if self.window_s <= 0:
            return SEVERITY_REFERENCE_DISTANCE
        return SEVERITY_REFERENCE_DISTANCE * (1.0 - closest / (self.window_s * 2))


class ConflictResolver:
    """
    Pairwise conflict detection and resolution. Resolutions are returned as
    coordination messages and archived in an append-only history.
    """
    def __init__(self, path_conflict: Optional[PathConflictPredicate] = None,
                 replanner: Optional[Replanner] = None,
                 safety_radius: float = SAFETY_RADIUS,
                 clock: Callable[[], float] = time.time):
        self.path_conflict = path_conflict or NeverPathConflict()
        self.replanner = replanner
        self.safety_radius = safety_radius
        self.clock = clock
        self.history: List[ConflictRecord] = []

    def detect(self, agents: Sequence[Agent], planned_paths: Optional[Mapping[AgentID, List[PathNode]]] = None,
               now: Optional[float] = None) -> List[Conflict]:
        """Checks every unordered pair once, in the given order. A pair may yield both a position and a path conflict."""
        now = self.clock() if now is None else now
        planned_paths = planned_paths or {}
        agents = list(agents)
        conflicts = []
        for i in range(len(agents)):
            for j in range(i + 1, len(agents)):
                a, b = agents[i], agents[j]
                dist = calculate_distance_3d(a.position, b.position)
                if dist < self.safety_radius:
                    conflicts.append(Conflict('position', (a.id, b.id), max(0.0, SEVERITY_REFERENCE_DISTANCE - dist), now))
                severity = self.path_conflict.severity(a, b, planned_paths)
                if severity is not None:
                    conflicts.append(Conflict('path', (a.id, b.id), max(0.0, severity), now))
        if conflicts:
            logging.info(f"Deconfliction: {len(conflicts)} conflict(s) detected among {len(agents)} agents.")
        return conflicts

    def resolve(self, conflict: Conflict, agents: Mapping[AgentID, Agent],
                planned_paths: Optional[Mapping[AgentID, List[PathNode]]] = None,
                now: Optional[float] = None) -> List[Message]:
        now = self.clock() if now is None else now
        involved = []
        for agent_id in conflict.agent_ids:
            if agent_id not in agents:
                raise NotFoundError(f"Conflict references unregistered agent {agent_id}")
            involved.append(agents[agent_id])

        if conflict.kind == 'position':
            messages = [self._avoidance(conflict, involved, now)]
        elif conflict.kind == 'path':
            messages = self._reroute(conflict, involved, dict(planned_paths or {}), now)
        else:
            raise ValidationError(f"Unknown conflict kind '{conflict.kind}'", field='kind')

        self.history.append(ConflictRecord(conflict=conflict, resolution_time=now))
        return messages

    def _avoidance(self, conflict: Conflict, involved: List[Agent], now: float) -> Message:
        # Stable: equal priorities keep detection order, so the second agent yields.
        keeper, yielder = sorted(involved, key=lambda a: a.priority, reverse=True)
        away = np.array(yielder.position, dtype=float) - np.array(keeper.position, dtype=float)
        norm = np.linalg.norm(away)
        if norm < 1e-9:
            vector = (0.0, 0.0, float(AVOIDANCE_DISTANCE))
        else:
            vector = tuple(float(c) for c in away / norm * AVOIDANCE_DISTANCE)
        duration_ms = max(AVOIDANCE_MIN_DURATION_MS, conflict.severity * 1000)
        logging.info(f"Deconfliction: {yielder.id} yields to {keeper.id} (severity {conflict.severity:.2f}).")
        return Message(
            sender=SYSTEM_SENDER_ID,
            recipient=yielder.id,
            kind='coordination',
            payload={'type': 'avoidance_maneuver', 'conflict_with': keeper.id,
                     'vector': vector, 'duration_ms': duration_ms},
            timestamp=now,
            priority=COORDINATION_MESSAGE_PRIORITY,
        )

    def _reroute(self, conflict: Conflict, involved: List[Agent],
                 planned_paths: Dict[AgentID, List[PathNode]], now: float) -> List[Message]:
        messages = []
        for agent in involved:
            others = [a.id for a in involved if a.id != agent.id]
            reserved = {node.cell for other_id in others for node in planned_paths.get(other_id, ())}
            payload = {'type': 'path_update', 'conflict_with': others}
            if self.replanner is None:
                logging.warning(f"Deconfliction: no replanner configured, {agent.id} must reroute around reserved cells itself.")
                payload['path'] = None
                payload['reserved_cells'] = sorted(reserved)
            else:
                new_path = self.replanner(agent, reserved)
                planned_paths[agent.id] = new_path
                payload['path'] = [(n.x, n.y, n.z, n.timestamp) for n in new_path]
                if not new_path:
                    logging.warning(f"Deconfliction: replanning failed for {agent.id}; it should hold position.")
            messages.append(Message(
                sender=SYSTEM_SENDER_ID, recipient=agent.id, kind='coordination',
                payload=payload, timestamp=now, priority=COORDINATION_MESSAGE_PRIORITY,
            ))
        return messages

    def recent_conflicts(self, now: Optional[float] = None,
                         window: float = RECENT_CONFLICT_WINDOW_S) -> List[ConflictRecord]:
        now = self.clock() if now is None else now
        return [record for record in self.history if now - record.conflict.timestamp < window]
