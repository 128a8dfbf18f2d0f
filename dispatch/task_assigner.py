# FILE: dispatch/task_assigner.py
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from config import (
    MIN_ASSIGNMENT_BATTERY, UTILITY_DISTANCE_WEIGHT, UTILITY_BATTERY_WEIGHT,
    UTILITY_COLLABORATION_WEIGHT, UTILITY_DISTANCE_SCALE, STARVATION_TICKS, AGING_BOOST_PER_TICK
)
from fleet.components import OPEN_TASK_STATUSES, Agent, Task
from utils.geometry import calculate_distance_3d


class CollaborationModel(ABC):
    @abstractmethod
    def factor(self, candidate: Agent, selected: Sequence[Agent], task: Task) -> float:
        """Synergy in [0, 1] between a candidate and the agents already picked for the task."""
        pass


class ConstantCollaboration(CollaborationModel):
    def __init__(self, value: float = 1.0):
        self.value = value

    def factor(self, candidate, selected, task) -> float:
        return self.value


class CommunicationRangeCollaboration(CollaborationModel):
    """Share of already-selected teammates the candidate can talk to directly."""
    def factor(self, candidate, selected, task) -> float:
        if not selected:
            return 1.0
        reachable = 0
        for teammate in selected:
            link_range = min(candidate.communication_range, teammate.communication_range)
            if calculate_distance_3d(candidate.position, teammate.position) <= link_range:
                reachable += 1
        return reachable / len(selected)


def effective_priority(task: Task) -> float:
    """Stored priority plus an aging boost for each pass beyond the starvation threshold."""
    overdue = max(0, task.pending_ticks - STARVATION_TICKS)
    return task.priority + overdue * AGING_BOOST_PER_TICK


class TaskAssigner:
    """Greedy, utility-maximizing matcher of pending tasks to idle agents."""

    def __init__(self, collaboration: Optional[CollaborationModel] = None):
        self.collaboration = collaboration or ConstantCollaboration()

    def is_eligible(self, agent: Agent, task: Task) -> bool:
        if agent.status != 'idle' or agent.battery_level < MIN_ASSIGNMENT_BATTERY:
            return False
        if agent.payload < task.payload:
            return False
        if task.type == 'delivery' and 'delivery' not in agent.capabilities:
            return False
        return True

    def utility(self, agent: Agent, task: Task, selected: Sequence[Agent]) -> float:
        distance = calculate_distance_3d(agent.position, task.location)
        distance_factor = 1.0 / (1.0 + distance / UTILITY_DISTANCE_SCALE)
        battery_factor = agent.battery_level / 100.0
        collaboration_factor = self.collaboration.factor(agent, selected, task)
        return (UTILITY_DISTANCE_WEIGHT * distance_factor
                + UTILITY_BATTERY_WEIGHT * battery_factor
                + UTILITY_COLLABORATION_WEIGHT * collaboration_factor)

    def assign(self, tasks: Sequence[Task], agents: Sequence[Agent]) -> List[Tuple[Task, List[Agent]]]:
        """
        One assignment pass. Pending tasks are served in descending effective
        priority (ties keep queue order); a task is assigned only when enough
        eligible agents exist, otherwise it stays pending and ages.
        """
        busy = {agent_id for task in tasks if task.status in OPEN_TASK_STATUSES for agent_id in task.assigned_agents}
        pending = sorted((t for t in tasks if t.status == 'pending'), key=effective_priority, reverse=True)
        assignments = []

        for task in pending:
            eligible = [a for a in agents if a.id not in busy and self.is_eligible(a, task)]
            if len(eligible) < task.required_agents:
                task.pending_ticks += 1
                logging.info(f"Task {task.id}: {len(eligible)} eligible agent(s), needs {task.required_agents}. Stays pending.")
                continue

            selected: List[Agent] = []
            while len(selected) < task.required_agents:
                best = max(eligible, key=lambda a: self.utility(a, task, selected))
                selected.append(best)
                eligible.remove(best)

            task.assigned_agents = [a.id for a in selected]
            task.status = 'assigned'
            for agent in selected:
                agent.status = 'flying'
                agent.destination = tuple(task.location)
                busy.add(agent.id)
            assignments.append((task, selected))
            logging.info(f"Task {task.id} ({task.type}, priority {task.priority}) assigned to {task.assigned_agents}.")
        return assignments
