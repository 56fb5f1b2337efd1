"""
Base classes and interfaces for dispatch policies.
Defines the observation/decision contract shared by rule-based policies and
learned approximators, plus the plugin interface used for rule fallbacks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, Any, Optional
import logging
import math
from enum import Enum

from ..models import BatteryState, SECONDS_PER_HOUR, SECONDS_PER_DAY


class DispatchReason(str, Enum):
    """Qualitative reason attached to a dispatch decision."""
    DISCHARGE_BATTERY = "discharge_battery"
    IMPORT_GRID = "import_grid"
    IMPORT_GRID_FORCED = "import_grid_forced"
    CHARGE_BATTERY = "charge_battery"
    CHARGE_AND_EXPORT = "charge_and_export"
    EXPORT_GRID = "export_grid"
    EXPORT_GRID_FORCED = "export_grid_forced"
    HOLD = "hold"


def calendar_features(timestamp: float, days_per_month: float = 30.0) -> Dict[str, float]:
    """Hour of day, day of week (1 = Monday) and month progress for ``timestamp`` seconds."""
    day_index = math.floor(timestamp / SECONDS_PER_DAY) + 1
    return {
        "hour_of_day": (timestamp % SECONDS_PER_DAY) / SECONDS_PER_HOUR,
        "day_of_week": (day_index - 1) % 7 + 1,
        "day_progress": day_index / days_per_month
    }


@dataclass(frozen=True)
class Observation:
    """Everything a policy may look at for one timestep."""
    timestamp: float  # seconds since simulation start
    solar_generation: float  # kW
    load_demand: float  # kW
    grid_price: float  # currency/kWh, 0 when the grid is unavailable
    grid_available: bool
    battery_soc: float  # 0-1
    battery_capacity_kwh: float
    battery_efficiency: float
    step_seconds: float  # duration the decision will be held
    hour_of_day: float = 0.0
    day_of_week: int = 1
    day_progress: float = 0.0
    
    @property
    def net_demand(self) -> float:
        """Load not covered by solar (negative when there is a surplus)."""
        return self.load_demand - self.solar_generation
    
    @property
    def step_hours(self) -> float:
        return self.step_seconds / SECONDS_PER_HOUR
    
    @property
    def is_weekend(self) -> bool:
        return self.day_of_week >= 6
    
    @classmethod
    def build(
        cls,
        timestamp: float,
        solar_generation: float,
        load_demand: float,
        grid_price: float,
        grid_available: bool,
        battery: BatteryState,
        step_seconds: float,
        days_per_month: float = 30.0
    ) -> 'Observation':
        """Assemble an observation from signal values and a battery snapshot."""
        return cls(
            timestamp=float(timestamp),
            solar_generation=float(solar_generation),
            load_demand=float(load_demand),
            grid_price=float(grid_price) if grid_available else 0.0,
            grid_available=bool(grid_available),
            battery_soc=battery.soc,
            battery_capacity_kwh=battery.capacity_kwh,
            battery_efficiency=battery.efficiency,
            step_seconds=float(step_seconds),
            **calendar_features(timestamp, days_per_month)
        )


@dataclass(frozen=True)
class DispatchDecision:
    """Battery and grid powers chosen for one timestep."""
    battery_action: float  # kW, positive = charge
    grid_action: float  # kW, positive = import
    reason: DispatchReason
    explanation: str = ""
    load_shift: float = 1.0  # advisory load multiplier
    grid_usage: float = 1.0  # advisory grid usage multiplier
    policy: str = ""
    fallback_used: bool = False
    fallback_error: Optional[str] = None
    
    def with_fallback(self, error: str) -> 'DispatchDecision':
        """Mark a rule decision as substituted for a failed primary policy."""
        return replace(self, fallback_used=True, fallback_error=error)


def power_balance_residual(observation: Observation, decision: DispatchDecision) -> float:
    """solar + grid - battery - load, zero for a balanced decision."""
    return (
        observation.solar_generation
        + decision.grid_action
        - decision.battery_action
        - observation.load_demand
    )


class DispatchPolicy(ABC):
    """Base class for all dispatch policies.

    ``decide`` must be a pure function of the observation and the policy's
    configuration.
    """
    
    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"pvbess.dispatch.{name}")
    
    @abstractmethod
    def decide(self, observation: Observation) -> DispatchDecision:
        """Map an observation to a dispatch decision."""
        pass
    
    def __call__(self, observation: Observation) -> DispatchDecision:
        return self.decide(observation)
    
    def get_metadata(self) -> Dict[str, Any]:
        """Return policy metadata."""
        return {
            "name": self.name,
            "type": "rule_based",
            "always_available": True
        }


class PolicyPlugin(DispatchPolicy):
    """Base class for learned policies that may fail and need a rule fallback."""
    
    def __init__(self, name: str, version: str = "1.0"):
        super().__init__(name)
        self.version = version
        self._evaluation_count = 0
        self._success_count = 0
    
    @abstractmethod
    def is_available(self) -> bool:
        """Check if the model is ready to use."""
        pass
    
    @abstractmethod
    def validate_observation(self, observation: Observation) -> bool:
        """Check that the observation lies in the domain the model was trained on."""
        pass
    
    def get_metadata(self) -> Dict[str, Any]:
        """Return model information for logging/debugging."""
        return {
            "name": self.name,
            "version": self.version,
            "type": "learned",
            "is_available": self.is_available(),
            "evaluation_count": self._evaluation_count,
            "success_rate": self._success_count / max(1, self._evaluation_count)
        }
    
    def record_attempt(self, success: bool) -> None:
        """Record the outcome of one evaluation made on behalf of this plugin."""
        self._evaluation_count += 1
        if success:
            self._success_count += 1
