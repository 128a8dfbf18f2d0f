# FILE: risk/engine.py
import copy
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from config import (
    RISK_PRIOR, FORECAST_HORIZON_S, FORECAST_STEPS, FORECAST_WIND_JITTER_MPS,
    FORECAST_PRECIPITATION_SPREAD, FORECAST_BATTERY_DRAIN_PCT
)
from risk import model
from risk.model import RiskNode, create_default_nodes
from risk.snapshot import (
    AirspaceState, EnvironmentSnapshot, EquipmentHealth, ObstacleField,
    PopulationState, WeatherConditions, ensure_snapshot
)
from utils.exceptions import ValidationError
from utils.geometry import clamp_unit


@dataclass
class RiskAssessment:
    overall: float
    by_category: Dict[str, float]
    recommendations: List[str]
    confidence: float
    likelihood: float = 0.0
    timestamp: float = 0.0

    def to_dict(self) -> Dict:
        return {
            'overall': self.overall,
            'by_category': dict(self.by_category),
            'recommendations': list(self.recommendations),
            'confidence': self.confidence,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class ForecastPoint:
    timestamp: float
    risk: float


def _above(value: float, steps) -> float:
    for threshold, contribution in steps:
        if value > threshold:
            return contribution
    return 0.0


def _below(value: float, steps) -> float:
    for threshold, contribution in steps:
        if value < threshold:
            return contribution
    return 0.0


def weather_risk(weather: WeatherConditions) -> float:
    risk = _above(weather.wind_speed, model.WIND_SPEED_STEPS)
    risk += _above(weather.precipitation, model.PRECIPITATION_STEPS)
    risk += _below(weather.visibility, model.VISIBILITY_STEPS)
    for low, high, contribution in model.EXTREME_TEMPERATURE:
        if weather.temperature < low or weather.temperature > high:
            risk += contribution
            break
    return clamp_unit(risk)


def obstacle_risk(obstacles: ObstacleField) -> float:
    density = len(obstacles.buildings) / model.BUILDING_DENSITY_SCALE
    risk = min(density * model.BUILDING_DENSITY_CAP, model.BUILDING_DENSITY_CAP)
    risk += len(obstacles.power_lines) * model.POWER_LINE_RISK
    for obstacle in obstacles.temporary_obstacles:
        risk += model.TEMPORARY_OBSTACLE_RISK.get(obstacle.type, model.TEMPORARY_OBSTACLE_DEFAULT_RISK)
    return clamp_unit(risk)


def population_risk(population: PopulationState) -> float:
    risk = _above(population.density, model.POPULATION_DENSITY_STEPS)
    for event in population.events:
        risk += model.POPULATION_EVENT_RISK.get(event.type, model.POPULATION_EVENT_DEFAULT_RISK)
    return clamp_unit(risk)


def equipment_risk(equipment: EquipmentHealth) -> float:
    risk = _below(equipment.battery_level, model.BATTERY_STEPS)
    risk += _below(equipment.signal_strength, model.SIGNAL_STEPS)
    risk += _below(equipment.system_health, model.SYSTEM_HEALTH_STEPS)
    risk += equipment.sensor_status.failures() * model.SENSOR_FAILURE_RISK
    return clamp_unit(risk)


def airspace_risk(airspace: AirspaceState) -> float:
    risk = 0.0
    for zone in airspace.restricted_zones:
        risk += model.RESTRICTED_ZONE_RISK.get(zone.type, model.RESTRICTED_ZONE_DEFAULT_RISK)
    risk += _above(airspace.traffic_density, model.TRAFFIC_DENSITY_STEPS)
    return clamp_unit(risk)


def bayesian_posterior(likelihood: float, prior: float = RISK_PRIOR) -> float:
    """Posterior risk of the weighted likelihood against a fixed prior."""
    numerator = likelihood * prior
    denominator = numerator + (1 - likelihood) * (1 - prior)
    return clamp_unit(numerator / denominator) if denominator > 0 else 0.0


class RiskEngine:
    """
    Fuses an environment snapshot into per-category and overall risk scores,
    recommendations, confidence and a short-horizon stochastic forecast.
    """
    def __init__(self, seed: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.seed = seed
        self.clock = clock
        self.rng = np.random.default_rng(seed)
        self.risk_nodes: Dict[str, RiskNode] = create_default_nodes(clock())
        self.conditional_probabilities = copy.deepcopy(model.CONDITIONAL_PROBABILITIES)
        logging.info(f"Risk engine initialized with {len(self.risk_nodes)} risk nodes (seed={seed}).")

    def score_categories(self, snapshot: EnvironmentSnapshot) -> Dict[str, float]:
        return {
            'weather': weather_risk(snapshot.weather),
            'obstacle': obstacle_risk(snapshot.obstacles),
            'population': population_risk(snapshot.population),
            'equipment': equipment_risk(snapshot.equipment),
            'airspace': airspace_risk(snapshot.airspace),
        }

    def assess(self, snapshot, location: Optional[Tuple[float, float, float]] = None) -> RiskAssessment:
        snapshot = ensure_snapshot(snapshot)
        by_category = self.score_categories(snapshot)

        weighted_sum = sum(by_category[c] * w for c, w in model.CATEGORY_WEIGHTS.items())
        total_weight = sum(model.CATEGORY_WEIGHTS.values())
        likelihood = clamp_unit(weighted_sum / total_weight)
        overall = bayesian_posterior(likelihood)

        recommendations = [
            model.RECOMMENDATIONS[category]
            for category, threshold in model.RECOMMENDATION_THRESHOLDS.items()
            if by_category[category] > threshold
        ]

        now = self.clock()
        self._update_nodes(by_category, now, location)
        return RiskAssessment(
            overall=overall,
            by_category=by_category,
            recommendations=recommendations,
            confidence=self.calculate_confidence(snapshot),
            likelihood=likelihood,
            timestamp=now,
        )

    def calculate_confidence(self, snapshot: EnvironmentSnapshot) -> float:
        equipment = snapshot.equipment
        confidence = model.BASE_CONFIDENCE
        if equipment.signal_strength < model.WEAK_SIGNAL_THRESHOLD:
            confidence -= model.WEAK_SIGNAL_PENALTY
        if not equipment.sensor_status.gps:
            confidence -= model.GPS_DOWN_PENALTY
        if not equipment.sensor_status.camera:
            confidence -= model.CAMERA_DOWN_PENALTY
        return float(min(1.0, max(confidence, model.MIN_CONFIDENCE)))

    def forecast(self, snapshot, horizon_seconds: float = FORECAST_HORIZON_S,
                 steps: int = FORECAST_STEPS) -> List[ForecastPoint]:
        """
        Single-sample Monte-Carlo forecast: each of the steps+1 points re-assesses
        a perturbed copy of the snapshot. Average several calls for a stable trend.
        """
        snapshot = ensure_snapshot(snapshot)
        steps = int(steps)
        if steps < 0:
            raise ValidationError(f"Forecast steps must be non-negative, got {steps}", field='steps')
        start_time = self.clock()
        if steps == 0:
            return [ForecastPoint(timestamp=start_time, risk=self.assess(snapshot).overall)]
        predictions = []
        for i in range(steps + 1):
            future = self._perturb(snapshot, i / steps)
            assessment = self.assess(future)
            predictions.append(ForecastPoint(
                timestamp=start_time + (horizon_seconds / steps) * i,
                risk=assessment.overall,
            ))
        logging.info(f"Risk forecast over {horizon_seconds}s: {predictions[0].risk:.3f} -> {predictions[-1].risk:.3f}")
        return predictions

    def _perturb(self, snapshot: EnvironmentSnapshot, progress: float) -> EnvironmentSnapshot:
        weather = snapshot.weather
        wind_jitter = self.rng.uniform(-FORECAST_WIND_JITTER_MPS, FORECAST_WIND_JITTER_MPS)
        rain_factor = self.rng.uniform(1 - FORECAST_PRECIPITATION_SPREAD, 1 + FORECAST_PRECIPITATION_SPREAD)
        future_weather = replace(
            weather,
            wind_speed=weather.wind_speed + float(wind_jitter),
            precipitation=weather.precipitation * float(rain_factor),
        )
        future_equipment = replace(
            snapshot.equipment,
            battery_level=snapshot.equipment.battery_level - progress * FORECAST_BATTERY_DRAIN_PCT,
        )
        return replace(snapshot, weather=future_weather, equipment=future_equipment)

    def _update_nodes(self, by_category: Dict[str, float], now: float, location=None):
        for category, value in by_category.items():
            node = self.risk_nodes.get(f"{category}_risk")
            if node:
                node.value = value
                node.timestamp = now
                if location is not None:
                    node.location = tuple(location)

    def get_risk_nodes(self) -> Dict[str, RiskNode]:
        return {node_id: replace(node) for node_id, node in self.risk_nodes.items()}
