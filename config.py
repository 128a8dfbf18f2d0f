# FILE: config.py
"""Central configuration file for the SkyBrain decision core."""

# --- Airspace Grid ---
GRID_SIZE = (100, 100, 20)
CELL_SIZE = 10.0

# --- Risk Engine ---
RISK_PRIOR = 0.1
FORECAST_HORIZON_S = 3600
FORECAST_STEPS = 10
FORECAST_WIND_JITTER_MPS = 1.0
FORECAST_PRECIPITATION_SPREAD = 0.1
FORECAST_BATTERY_DRAIN_PCT = 20.0
RISK_WARNING_THRESHOLD = 0.3

# --- No-Fly Zones ---
ZONE_SEVERITY_RISK = {
    'prohibited': 1.0,
    'restricted': 0.7,
    'caution': 0.4,
}
DYNAMIC_ZONE_DRIFT_SCALE = 50.0
DYNAMIC_ZONE_MAX_DRIFT = 5.0
DYNAMIC_ZONE_TIME_SCALE = 0.1  # noise time advanced per simulated second

# --- Path Planning ---
RISK_COST_WEIGHT = 10.0
DYNAMIC_OBSTACLE_PENALTY = 50.0
PLANNER_MAX_EXPANSIONS = 250000
DRONE_CRUISE_SPEED = 15.0  # distance units per second
AVERAGE_SPEED_FACTOR = 0.7  # share of cruise speed held over a whole route
ENERGY_PCT_PER_KM = 15.0
SMOOTHING_FACTOR = 2.0  # splprep s
SMOOTHING_OVERSAMPLE = 5

# --- Deconfliction ---
SAFETY_RADIUS = 5.0
SEVERITY_REFERENCE_DISTANCE = 10.0
AVOIDANCE_MIN_DURATION_MS = 3000
AVOIDANCE_DISTANCE = 5.0
PATH_CONFLICT_WINDOW_S = 2.0
RECENT_CONFLICT_WINDOW_S = 300

# --- Task Assignment ---
MIN_ASSIGNMENT_BATTERY = 30.0
UTILITY_DISTANCE_WEIGHT = 0.4
UTILITY_BATTERY_WEIGHT = 0.3
UTILITY_COLLABORATION_WEIGHT = 0.3
UTILITY_DISTANCE_SCALE = 100.0
STARVATION_TICKS = 10
AGING_BOOST_PER_TICK = 0.5

# --- Messaging ---
SYSTEM_SENDER_ID = 'system'
BROADCAST = 'broadcast'
COORDINATION_MESSAGE_PRIORITY = 5
WARNING_MESSAGE_PRIORITY = 8
