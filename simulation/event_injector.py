# FILE: simulation/event_injector.py
import logging
from typing import Optional

import numpy as np

from environment import NoFlyZone
from fleet.components import BUSY_AGENT_STATUSES

EVENT_PROBABILITY = 0.005
BATTERY_FAULT_PCT = 25.0
SUDDEN_NFZ_RADIUS_CELLS = 2.0
SUDDEN_NFZ_DURATION_S = 600.0


class EventInjector:
    """
    With a small probability per tick, injects a battery fault on an en-route agent
    or a sudden temporary no-fly zone. Seeded so runs are reproducible.
    """
    def __init__(self, coordinator, seed: Optional[int] = None, probability: float = EVENT_PROBABILITY):
        self.coordinator = coordinator
        self.rng = np.random.default_rng(seed)
        self.probability = probability
        self.event_count = 0

    def maybe_inject(self) -> Optional[str]:
        """Returns the injected event type, or None when nothing happened this tick."""
        if self.rng.random() >= self.probability:
            return None
        en_route = [a for a in self.coordinator.agents.values() if a.status in BUSY_AGENT_STATUSES]
        # Only trigger an event if there's a drone to affect
        if not en_route:
            return None

        event_type = str(self.rng.choice(['BATTERY_FAULT', 'SUDDEN_NFZ']))
        if event_type == 'BATTERY_FAULT':
            agent = en_route[int(self.rng.integers(len(en_route)))]
            level = max(0.0, agent.battery_level - BATTERY_FAULT_PCT)
            self.coordinator.update_agent_state(agent.id, battery_level=level)
            logging.warning(f"EVENT: Battery fault on {agent.id}. Lost {BATTERY_FAULT_PCT:.0f}%, now {level:.1f}%.")
        else:
            self._sudden_zone()
        self.event_count += 1
        return event_type

    def _sudden_zone(self):
        airspace = self.coordinator.airspace
        now = self.coordinator.clock()
        gx, gy, _ = airspace.grid_size
        margin = SUDDEN_NFZ_RADIUS_CELLS * airspace.cell_size
        center = (
            float(self.rng.uniform(margin, gx * airspace.cell_size - margin)),
            float(self.rng.uniform(margin, gy * airspace.cell_size - margin)),
            0.0,
        )
        zone = NoFlyZone(
            id=f"EVT-NFZ-{self.event_count}",
            center=center,
            radius=SUDDEN_NFZ_RADIUS_CELLS * airspace.cell_size,
            lifecycle='temporary',
            start_time=now,
            end_time=now + SUDDEN_NFZ_DURATION_S,
        )
        airspace.add_no_fly_zone(zone)
        logging.warning(f"EVENT: New temporary no-fly zone {zone.id} near ({center[0]:.0f}, {center[1]:.0f}).")
        return zone
