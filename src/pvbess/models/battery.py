"""
Battery state simulator for the PV + battery dispatch system.
Integrates state of charge through time subject to rate limits, SOC bounds,
conversion losses and calendar degradation.
"""

import math
from dataclasses import dataclass, replace
from typing import Any, Optional
import logging
from abc import ABC, abstractmethod

from ..config import BatteryConfig, DegradationConfig
from ..exceptions import DispatchError, InputValidationError
from .degradation import DegradationModel, CalendarDegradationModel


SECONDS_PER_HOUR = 3600.0
SECONDS_PER_DAY = 86400.0
VOLTAGE_EPSILON = 1e-9


def charge_limit_kw(
    soc: float,
    max_soc: float,
    capacity_kwh: float,
    efficiency: float,
    max_rate_kw: float,
    dt_hours: float
) -> float:
    """Largest charge power (drawn at the terminals) that keeps SOC <= max_soc."""
    headroom_kwh = max(0.0, (max_soc - soc) * capacity_kwh)
    if headroom_kwh <= 0.0 or max_rate_kw <= 0.0:
        return 0.0
    return min(max_rate_kw, headroom_kwh / (efficiency * dt_hours))


def discharge_limit_kw(
    soc: float,
    min_soc: float,
    capacity_kwh: float,
    efficiency: float,
    max_rate_kw: float,
    dt_hours: float
) -> float:
    """Largest discharge power (delivered at the terminals) that keeps SOC >= min_soc."""
    available_kwh = max(0.0, (soc - min_soc) * capacity_kwh)
    if available_kwh <= 0.0 or max_rate_kw <= 0.0:
        return 0.0
    return min(max_rate_kw, available_kwh * efficiency / dt_hours)


@dataclass
class BatteryState:
    """Snapshot of the battery after a step."""
    soc: float  # State of charge (0-1)
    capacity_kwh: float  # Usable capacity after degradation
    efficiency: float  # One-way conversion efficiency after degradation
    voltage: float  # Terminal voltage in V
    current: float  # Current in A (positive = charging)
    power: float  # Realized power in kW (positive = charging)
    elapsed_days: float  # Simulated calendar age
    requested_power: float = 0.0  # kW requested by the dispatch decision
    limit: Optional[str] = None  # "rate", "headroom" or "deadband" when the request was cut back
    cycle_count: float = 0.0  # Equivalent full cycles
    throughput_kwh: float = 0.0  # Energy moved through the terminals
    
    @property
    def truncated(self) -> bool:
        """Whether a rate or headroom limit cut the requested power."""
        return self.limit in ("rate", "headroom")
    
    @property
    def shortfall(self) -> float:
        """Requested minus realized power in kW."""
        return self.requested_power - self.power


@dataclass
class BatteryParameters:
    """Physical and electrical parameters of the battery."""
    nominal_capacity_kwh: float
    nominal_voltage: float  # V
    max_charge_rate_kw: float
    max_discharge_rate_kw: float
    efficiency: float
    min_soc: float = 0.1
    max_soc: float = 0.95
    action_deadband_kw: float = 1e-3
    
    @classmethod
    def from_config(cls, config: BatteryConfig) -> 'BatteryParameters':
        """Build parameters from a battery configuration section."""
        return cls(
            nominal_capacity_kwh=config.capacity_kwh,
            nominal_voltage=config.nominal_voltage,
            max_charge_rate_kw=config.max_charge_rate_kw,
            max_discharge_rate_kw=config.max_discharge_rate_kw,
            efficiency=config.efficiency,
            min_soc=config.min_soc,
            max_soc=config.max_soc,
            action_deadband_kw=config.action_deadband_kw
        )


class BatteryModel(ABC):
    """Abstract base class for battery models.

    The model exclusively owns its ``BatteryState``; callers only ever get
    copies back from ``step``/``snapshot``.
    """
    
    def __init__(
        self,
        parameters: BatteryParameters,
        degradation: DegradationModel,
        initial_soc: float = 0.5
    ):
        if not parameters.min_soc <= initial_soc <= parameters.max_soc:
            raise InputValidationError(
                f"initial_soc {initial_soc} outside [{parameters.min_soc}, {parameters.max_soc}]"
            )
        
        self.parameters = parameters
        self.degradation = degradation
        self.logger = logging.getLogger(f"pvbess.battery.{self.__class__.__name__}")
        
        self._state = BatteryState(
            soc=initial_soc,
            capacity_kwh=parameters.nominal_capacity_kwh * degradation.capacity_factor(0.0),
            efficiency=degradation.efficiency(0.0),
            voltage=self._terminal_voltage(initial_soc, 0.0),
            current=0.0,
            power=0.0,
            elapsed_days=0.0
        )
    
    @abstractmethod
    def update(self, power_setpoint: float, dt: float) -> BatteryState:
        """Update battery state given power setpoint (kW) and time step (s)."""
        pass
    
    def step(self, decision: Any, dt: float) -> BatteryState:
        """Apply a dispatch decision's battery action over ``dt`` seconds."""
        return self.update(decision.battery_action, dt)
    
    def snapshot(self) -> BatteryState:
        """Copy of the current state."""
        return replace(self._state)
    
    @property
    def soc(self) -> float:
        return self._state.soc
    
    def get_max_charge_power(self, dt: float) -> float:
        """Get maximum charging power at current state over ``dt`` seconds."""
        return charge_limit_kw(
            self._state.soc, self.parameters.max_soc, self._state.capacity_kwh,
            self._state.efficiency, self.parameters.max_charge_rate_kw, dt / SECONDS_PER_HOUR
        )
    
    def get_max_discharge_power(self, dt: float) -> float:
        """Get maximum discharging power at current state over ``dt`` seconds."""
        return discharge_limit_kw(
            self._state.soc, self.parameters.min_soc, self._state.capacity_kwh,
            self._state.efficiency, self.parameters.max_discharge_rate_kw, dt / SECONDS_PER_HOUR
        )
    
    def get_available_energy(self) -> float:
        """Get energy stored above the SOC floor in kWh."""
        return max(0.0, (self._state.soc - self.parameters.min_soc) * self._state.capacity_kwh)
    
    def get_storage_capacity(self) -> float:
        """Get remaining storage headroom below the SOC ceiling in kWh."""
        return max(0.0, (self.parameters.max_soc - self._state.soc) * self._state.capacity_kwh)
    
    def _terminal_voltage(self, soc: float, elapsed_days: float) -> float:
        """Voltage rises linearly with SOC between 0.9 and 1.1 of nominal."""
        return (
            self.parameters.nominal_voltage
            * (0.9 + 0.2 * soc)
            * self.degradation.voltage_factor(elapsed_days)
        )
    
    @staticmethod
    def _validate_dt(dt: float) -> None:
        if not math.isfinite(dt) or dt <= 0:
            raise InputValidationError(f"dt must be a positive finite number of seconds, got {dt}")


class SimpleBatteryModel(BatteryModel):
    """Bucket model with one-way efficiency losses and calendar ageing."""
    
    def update(self, power_setpoint: float, dt: float) -> BatteryState:
        """Advance SOC by one step, truncating infeasible requests."""
        self._validate_dt(dt)
        requested = float(power_setpoint)
        if not math.isfinite(requested):
            raise DispatchError(f"Battery action must be finite, got {requested}")
        
        params = self.parameters
        state = self._state
        dt_hours = dt / SECONDS_PER_HOUR
        capacity = state.capacity_kwh
        efficiency = state.efficiency
        soc = state.soc
        limit = None
        
        if abs(requested) < params.action_deadband_kw:
            # Hold
            power = 0.0
            if requested != 0.0:
                limit = "deadband"
        
        elif requested > 0:
            # Charge: less energy is stored than drawn
            max_power = self.get_max_charge_power(dt)
            power = min(requested, max_power)
            if power < requested:
                limit = "rate" if max_power >= params.max_charge_rate_kw else "headroom"
            stored_kwh = power * dt_hours * efficiency
            soc = min(params.max_soc, soc + stored_kwh / capacity)
        
        else:
            # Discharge: more energy leaves storage than is delivered
            max_power = self.get_max_discharge_power(dt)
            delivered = min(-requested, max_power)
            if delivered < -requested:
                limit = "rate" if max_power >= params.max_discharge_rate_kw else "headroom"
            drawn_kwh = delivered * dt_hours / efficiency
            soc = max(params.min_soc, soc - drawn_kwh / capacity)
            power = -delivered
        
        soc = min(params.max_soc, max(params.min_soc, soc))
        
        if limit in ("rate", "headroom"):
            self.logger.debug(
                f"Battery request {requested:.3f} kW truncated to {power:.3f} kW ({limit} limit)"
            )
        
        elapsed_days = state.elapsed_days + dt / SECONDS_PER_DAY
        voltage = self._terminal_voltage(soc, elapsed_days)
        
        self._state = BatteryState(
            soc=soc,
            capacity_kwh=params.nominal_capacity_kwh * self.degradation.capacity_factor(elapsed_days),
            efficiency=self.degradation.efficiency(elapsed_days),
            voltage=voltage,
            current=power * 1000.0 / max(voltage, VOLTAGE_EPSILON),
            power=power,
            elapsed_days=elapsed_days,
            requested_power=requested,
            limit=limit,
            cycle_count=state.cycle_count + abs(soc - state.soc) / 2.0,
            throughput_kwh=state.throughput_kwh + abs(power) * dt_hours
        )
        
        return self.snapshot()


def create_battery_model(
    model_type: str,
    battery_config: BatteryConfig,
    degradation_config: DegradationConfig,
    initial_soc: Optional[float] = None
) -> BatteryModel:
    """Factory function to create battery models."""
    models = {
        "simple": SimpleBatteryModel
    }
    
    if model_type not in models:
        raise ValueError(f"Unknown battery model type: {model_type}")
    
    parameters = BatteryParameters.from_config(battery_config)
    degradation = CalendarDegradationModel(degradation_config, battery_config.efficiency)
    soc = battery_config.initial_soc if initial_soc is None else initial_soc
    return models[model_type](parameters, degradation, initial_soc=soc)
