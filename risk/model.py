# FILE: risk/model.py
"""Static risk domain knowledge: node definitions, weights, thresholds and CPTs."""
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

CATEGORIES = ('weather', 'obstacle', 'population', 'equipment', 'airspace')

CATEGORY_WEIGHTS = {
    'weather': 0.25,
    'obstacle': 0.2,
    'population': 0.15,
    'equipment': 0.3,
    'airspace': 0.1,
}

# (name, default value, default confidence)
NODE_DEFAULTS = {
    'weather': ('Weather risk', 0.1, 0.9),
    'obstacle': ('Obstacle risk', 0.15, 0.85),
    'population': ('Crowd density risk', 0.2, 0.8),
    'equipment': ('Equipment health risk', 0.05, 0.95),
    'airspace': ('Airspace control risk', 0.1, 0.9),
}

# Fixed lookup tables kept for inspection/audit; scoring does not read them.
CONDITIONAL_PROBABILITIES = {
    'weather_risk': {
        'wind_high': 0.8,
        'wind_medium': 0.4,
        'wind_low': 0.1,
        'rain_heavy': 0.9,
        'rain_light': 0.3,
        'visibility_poor': 0.7,
    },
    'obstacle_risk': {
        'building_dense': 0.6,
        'building_sparse': 0.2,
        'powerline_present': 0.8,
        'construction_active': 0.9,
    },
    'population_risk': {
        'density_high': 0.7,
        'density_medium': 0.4,
        'density_low': 0.1,
        'event_large': 0.9,
    },
    'equipment_risk': {
        'battery_low': 0.8,
        'battery_medium': 0.3,
        'signal_weak': 0.6,
        'sensor_failure': 0.95,
    },
    'airspace_risk': {
        'restricted_zone': 0.95,
        'high_traffic': 0.6,
        'emergency_active': 0.9,
    },
}

# --- Additive threshold models: (threshold, contribution), checked in order ---
WIND_SPEED_STEPS = ((15, 0.4), (10, 0.2), (5, 0.1))              # above
PRECIPITATION_STEPS = ((2, 0.3), (0.5, 0.15))                    # above
VISIBILITY_STEPS = ((1, 0.4), (3, 0.2), (5, 0.1))                # below
EXTREME_TEMPERATURE = ((-10, 40, 0.2), (0, 35, 0.1))             # outside (low, high)

BUILDING_DENSITY_SCALE = 100
BUILDING_DENSITY_CAP = 0.3
POWER_LINE_RISK = 0.1
TEMPORARY_OBSTACLE_RISK = {'emergency': 0.4, 'construction': 0.2}
TEMPORARY_OBSTACLE_DEFAULT_RISK = 0.1

POPULATION_DENSITY_STEPS = ((500, 0.4), (200, 0.2), (50, 0.1))   # above
POPULATION_EVENT_RISK = {'emergency': 0.5, 'gathering': 0.3}
POPULATION_EVENT_DEFAULT_RISK = 0.1

BATTERY_STEPS = ((20, 0.5), (40, 0.3), (60, 0.1))                # below
SIGNAL_STEPS = ((30, 0.4), (60, 0.2), (80, 0.1))                 # below
SYSTEM_HEALTH_STEPS = ((50, 0.4), (80, 0.2))                     # below
SENSOR_FAILURE_RISK = 0.15

RESTRICTED_ZONE_RISK = {'military': 0.6, 'airport': 0.6, 'emergency': 0.8}
RESTRICTED_ZONE_DEFAULT_RISK = 0.3
TRAFFIC_DENSITY_STEPS = ((8, 0.4), (5, 0.2), (2, 0.1))           # above

RECOMMENDATION_THRESHOLDS = {
    'weather': 0.5,
    'equipment': 0.4,
    'airspace': 0.3,
    'population': 0.4,
}
RECOMMENDATIONS = {
    'weather': 'Postpone the mission until weather conditions improve.',
    'equipment': 'Inspect the drone before flight, especially battery and sensors.',
    'airspace': 'Observe airspace control and route around restricted zones.',
    'population': 'Avoid crowded areas and choose an alternative route.',
}

# --- Confidence model ---
BASE_CONFIDENCE = 0.8
MIN_CONFIDENCE = 0.1
WEAK_SIGNAL_THRESHOLD = 50
WEAK_SIGNAL_PENALTY = 0.2
GPS_DOWN_PENALTY = 0.3
CAMERA_DOWN_PENALTY = 0.1


@dataclass
class RiskNode:
    """A tracked risk category with its latest probability-like value."""
    id: str
    name: str
    category: str
    value: float
    confidence: float
    timestamp: float
    location: Optional[Tuple[float, float, float]] = None


def create_default_nodes(timestamp: float) -> Dict[str, RiskNode]:
    """Seeds one node per category at its low default value."""
    nodes = {}
    for category in CATEGORIES:
        name, value, confidence = NODE_DEFAULTS[category]
        node_id = f"{category}_risk"
        nodes[node_id] = RiskNode(
            id=node_id, name=name, category=category,
            value=value, confidence=confidence, timestamp=timestamp
        )
    return nodes
