# FILE: fleet/components.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

# Type aliases for clarity
GridPosition = Tuple[int, int, int]
WorldPosition = Tuple[float, float, float]
AgentID = str

AGENT_STATUSES = frozenset({'idle', 'flying', 'delivering', 'returning', 'emergency'})
BUSY_AGENT_STATUSES = frozenset({'flying', 'delivering', 'returning'})
TASK_TYPES = frozenset({'delivery', 'surveillance', 'emergency', 'maintenance'})
TASK_STATUSES = frozenset({'pending', 'assigned', 'executing', 'completed', 'failed'})
OPEN_TASK_STATUSES = frozenset({'assigned', 'executing'})
MESSAGE_KINDS = frozenset({'position', 'intention', 'warning', 'coordination', 'emergency'})
CONFLICT_KINDS = frozenset({'position', 'path'})


@dataclass
class Agent:
    """A registered drone. Mutated only through the Coordinator."""
    id: AgentID
    position: WorldPosition
    velocity: WorldPosition = (0.0, 0.0, 0.0)
    destination: Optional[WorldPosition] = None
    battery_level: float = 100.0
    payload: float = 0.0  # carrying capacity
    priority: int = 1
    status: str = 'idle'
    capabilities: Set[str] = field(default_factory=set)
    communication_range: float = 100.0
    last_update: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'position': tuple(self.position),
            'velocity': tuple(self.velocity),
            'destination': tuple(self.destination) if self.destination is not None else None,
            'battery_level': self.battery_level,
            'payload': self.payload,
            'priority': self.priority,
            'status': self.status,
            'capabilities': sorted(self.capabilities),
            'communication_range': self.communication_range,
            'last_update': self.last_update,
        }


@dataclass
class Task:
    id: str
    type: str
    location: WorldPosition
    priority: float = 1.0
    required_agents: int = 1
    assigned_agents: List[AgentID] = field(default_factory=list)
    deadline: Optional[float] = None
    payload: float = 0.0  # weight to carry
    status: str = 'pending'
    created_at: float = 0.0
    pending_ticks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'priority': self.priority,
            'required_agents': self.required_agents,
            'assigned_agents': list(self.assigned_agents),
            'deadline': self.deadline,
            'location': tuple(self.location),
            'payload': self.payload,
            'status': self.status,
        }


@dataclass
class Message:
    sender: str
    recipient: str
    kind: str
    payload: Dict[str, Any]
    timestamp: float
    priority: int = 1


@dataclass(frozen=True, eq=True)
class Conflict:
    """An unsafe proximity or path overlap between two agents, found in one detection pass."""
    kind: str
    agent_ids: Tuple[AgentID, AgentID]
    severity: float
    timestamp: float


@dataclass(frozen=True)
class ConflictRecord:
    conflict: Conflict
    resolution_time: float
    resolved: bool = True

    @property
    def key(self) -> Tuple[float, Tuple[AgentID, AgentID]]:
        return (self.conflict.timestamp, self.conflict.agent_ids)


@dataclass(frozen=True)
class PathNode:
    x: int
    y: int
    z: int
    cost: float
    risk: float
    timestamp: float

    @property
    def cell(self) -> GridPosition:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class Waypoint:
    x: float
    y: float
    z: float
    timestamp: float
    speed: float
    heading: float
