"""Simulation driver: the per-timestep dispatch and battery integration loop."""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple, Callable, Iterator, Sequence
import logging
import time

import numpy as np

from .config import SystemConfig
from .dispatch import (
    DispatchPolicy, DispatchReason, Observation, create_policy
)
from .events import EventType, StepEvent, TruncationEvent, FallbackEvent
from .exceptions import InputValidationError, SimulationCancelledError
from .models import BatteryState, create_battery_model, SECONDS_PER_HOUR
from .validation import SignalValidator


@dataclass
class SignalSet:
    """Time-aligned input signals on a shared grid (seconds)."""
    time: np.ndarray
    solar_generation: np.ndarray  # kW
    load_demand: np.ndarray  # kW
    grid_price: np.ndarray  # currency/kWh, NaN allowed where unavailable
    grid_available: np.ndarray  # bool
    
    def __post_init__(self):
        self.time = np.asarray(self.time, dtype=float)
        self.solar_generation = np.asarray(self.solar_generation, dtype=float)
        self.load_demand = np.asarray(self.load_demand, dtype=float)
        self.grid_price = np.asarray(self.grid_price, dtype=float)
        self.grid_available = np.asarray(self.grid_available)
    
    def __len__(self) -> int:
        return len(self.time)
    
    def validate(self) -> None:
        """Raise ``InputValidationError`` on any malformed sample."""
        SignalValidator.validate_lengths(
            time=self.time,
            solar_generation=self.solar_generation,
            load_demand=self.load_demand,
            grid_price=self.grid_price,
            grid_available=self.grid_available
        )
        SignalValidator.validate_time_grid(self.time)
        SignalValidator.validate_series("solar_generation", self.solar_generation, min_value=0.0)
        SignalValidator.validate_series("load_demand", self.load_demand, min_value=0.0)
        
        try:
            availability = self.grid_available.astype(float)
        except (TypeError, ValueError):
            raise InputValidationError("grid_available must be boolean")
        SignalValidator.validate_series("grid_available", availability, min_value=0.0)
        if not np.isin(availability, (0.0, 1.0)).all():
            raise InputValidationError("grid_available must contain only 0/1 or booleans")
        
        SignalValidator.validate_series(
            "grid_price", self.grid_price, min_value=0.0, allow_nan=~availability.astype(bool)
        )
    
    @property
    def availability(self) -> np.ndarray:
        return self.grid_available.astype(float).astype(bool)
    
    def effective_price(self) -> np.ndarray:
        """Price actually paid: zero wherever the grid is unavailable."""
        return np.where(self.availability, np.nan_to_num(self.grid_price, nan=0.0), 0.0)
    
    def default_dt_schedule(self) -> np.ndarray:
        """Forward interval per sample; the last sample reuses the previous interval."""
        if len(self.time) < 2:
            raise InputValidationError(
                "A single-sample signal set needs an explicit dt schedule"
            )
        dt = np.diff(self.time)
        return np.append(dt, dt[-1])


@dataclass(frozen=True)
class StepRecord:
    """Everything that happened at one timestep."""
    index: int
    timestamp: float
    hour_of_day: float
    day_of_week: int
    day_progress: float
    dt: float
    
    # Observation
    solar_generation: float
    load_demand: float
    grid_price: float
    grid_available: bool
    net_demand: float
    
    # Decision
    policy: str
    reason: DispatchReason
    explanation: str
    requested_battery_kw: float
    requested_grid_kw: float
    load_shift: float
    grid_usage: float
    fallback_used: bool
    
    # Realized flows
    battery_power_kw: float
    grid_power_kw: float
    grid_import_kw: float
    grid_export_kw: float
    battery_shortfall_kw: float
    truncated: bool
    
    # Battery
    soc_start: float
    soc: float
    capacity_kwh: float
    efficiency: float
    voltage: float
    current: float
    
    # Money
    instant_cost: float  # currency/h
    export_income: float  # currency/h
    
    # Running integrals
    cumulative_generated_kwh: float
    cumulative_consumed_kwh: float
    cumulative_charged_kwh: float
    cumulative_discharged_kwh: float
    cumulative_imported_kwh: float
    cumulative_exported_kwh: float
    cumulative_cost: float
    cumulative_export_income: float
    
    events: Tuple[StepEvent, ...] = ()


@dataclass(frozen=True)
class EnergyTotals:
    """Integrals over the whole run."""
    generated_kwh: float = 0.0
    consumed_kwh: float = 0.0
    charged_kwh: float = 0.0
    discharged_kwh: float = 0.0
    imported_kwh: float = 0.0
    exported_kwh: float = 0.0
    cost: float = 0.0
    export_income: float = 0.0
    
    @property
    def net_cost(self) -> float:
        """Import cost minus feed-in income."""
        return self.cost - self.export_income


@dataclass(frozen=True)
class SimulationTrajectory:
    """Immutable record of a completed run."""
    records: Tuple[StepRecord, ...]
    totals: EnergyTotals
    initial_state: BatteryState
    final_state: BatteryState
    policy_name: str
    integration: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    
    def __len__(self) -> int:
        return len(self.records)
    
    def __iter__(self) -> Iterator[StepRecord]:
        return iter(self.records)
    
    def __getitem__(self, index: int) -> StepRecord:
        return self.records[index]
    
    def column(self, name: str) -> np.ndarray:
        """Values of one ``StepRecord`` field across the run."""
        return np.array([getattr(record, name) for record in self.records])


# Rates integrated into the cumulative_* fields
_INTEGRATED = (
    "generated_kwh", "consumed_kwh", "charged_kwh", "discharged_kwh",
    "imported_kwh", "exported_kwh", "cost", "export_income",
)


class _RunningIntegrals:
    """Cumulative integrals of instantaneous rates (per hour) over time in seconds."""
    
    def __init__(self, method: str):
        self.method = method
        self.totals = {name: 0.0 for name in _INTEGRATED}
        self._previous: Optional[Dict[str, float]] = None
        self._previous_time: Optional[float] = None
    
    def add(self, rates: Dict[str, float], timestamp: float, dt: float) -> Dict[str, float]:
        if self.method == "rectangular":
            for name in _INTEGRATED:
                self.totals[name] += rates[name] * dt / SECONDS_PER_HOUR
        elif self._previous is not None:
            width = (timestamp - self._previous_time) / SECONDS_PER_HOUR
            for name in _INTEGRATED:
                self.totals[name] += 0.5 * (rates[name] + self._previous[name]) * width
        
        self._previous = rates
        self._previous_time = timestamp
        return dict(self.totals)


class Simulator:
    """Main simulation controller."""
    
    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        policy: Optional[DispatchPolicy] = None,
        battery_model: str = "simple"
    ):
        """Initialize simulator with configuration; raises ``ConfigurationError`` on bad config."""
        self.config = config or SystemConfig()
        self.config.validate_or_raise()
        self.policy = policy or create_policy(
            self.config.dispatch,
            self.config.battery,
            balance_tolerance=self.config.simulation.balance_tolerance
        )
        self.battery_model = battery_model
        self.logger = logging.getLogger("pvbess.simulation")
    
    def run(
        self,
        signals: SignalSet,
        dt_schedule: Optional[Sequence[float]] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
        initial_soc: Optional[float] = None
    ) -> SimulationTrajectory:
        """Run the dispatch loop over every sample and return the full trajectory.

        An explicit ``dt_schedule`` must follow the time grid and only sets the
        final held interval. Inputs are validated before the first step; any
        error aborts the run without returning a partial trajectory.
        """
        signals.validate()
        n_steps = len(signals)
        if dt_schedule is None:
            dt = signals.default_dt_schedule()
        else:
            dt = np.asarray(dt_schedule, dtype=float)
        SignalValidator.validate_dt_schedule(dt, n_steps, signals.time)
        
        sim = self.config.simulation
        days_per_month = self.config.degradation.days_per_month
        fraction = self.config.dispatch.export_income_fraction if sim.model_feed_in else 0.0
        
        battery = create_battery_model(
            self.battery_model, self.config.battery, self.config.degradation, initial_soc
        )
        initial_state = battery.snapshot()
        price = signals.effective_price()
        available = signals.availability
        # A lone sample is integrated over its held interval
        integration = sim.integration if n_steps > 1 else "rectangular"
        integrals = _RunningIntegrals(integration)
        records: List[StepRecord] = []
        
        self.logger.info(
            f"Starting {n_steps}-step simulation with policy '{self.policy.name}' "
            f"({(signals.time[-1] - signals.time[0] + dt[-1]) / 86400:.2f} days)"
        )
        start = time.time()
        
        for i in range(n_steps):
            if cancel_check is not None and cancel_check():
                raise SimulationCancelledError(f"Simulation cancelled before step {i}")
            
            timestamp = float(signals.time[i])
            before = battery.snapshot()
            observation = Observation.build(
                timestamp,
                signals.solar_generation[i],
                signals.load_demand[i],
                price[i],
                available[i],
                before,
                dt[i],
                days_per_month
            )
            
            decision = self.policy.decide(observation)
            state = battery.step(decision, dt[i])
            
            # Grid closes the balance against what the battery actually did
            grid_power = observation.net_demand + state.power
            grid_import = max(0.0, grid_power)
            grid_export = max(0.0, -grid_power)
            instant_cost = max(0.0, grid_import * observation.grid_price)
            export_income = grid_export * observation.grid_price * fraction
            
            totals = integrals.add({
                "generated_kwh": observation.solar_generation,
                "consumed_kwh": observation.load_demand,
                "charged_kwh": max(0.0, state.power),
                "discharged_kwh": max(0.0, -state.power),
                "imported_kwh": grid_import,
                "exported_kwh": grid_export,
                "cost": instant_cost,
                "export_income": export_income
            }, timestamp, dt[i])
            
            self.logger.debug(
                f"step {i}: net {observation.net_demand:.3f} kW, {decision.reason.value}, "
                f"battery {state.power:.3f} kW, grid {grid_power:.3f} kW, SOC {state.soc:.3f}"
            )
            events = self._collect_events(observation, decision, state) if sim.record_events else ()
            
            records.append(StepRecord(
                index=i,
                timestamp=timestamp,
                hour_of_day=observation.hour_of_day,
                day_of_week=observation.day_of_week,
                day_progress=observation.day_progress,
                dt=float(dt[i]),
                solar_generation=observation.solar_generation,
                load_demand=observation.load_demand,
                grid_price=observation.grid_price,
                grid_available=observation.grid_available,
                net_demand=observation.net_demand,
                policy=decision.policy or self.policy.name,
                reason=decision.reason,
                explanation=decision.explanation,
                requested_battery_kw=decision.battery_action,
                requested_grid_kw=decision.grid_action,
                load_shift=decision.load_shift,
                grid_usage=decision.grid_usage,
                fallback_used=decision.fallback_used,
                battery_power_kw=state.power,
                grid_power_kw=grid_power,
                grid_import_kw=grid_import,
                grid_export_kw=grid_export,
                battery_shortfall_kw=state.shortfall,
                truncated=state.truncated,
                soc_start=before.soc,
                soc=state.soc,
                capacity_kwh=state.capacity_kwh,
                efficiency=state.efficiency,
                voltage=state.voltage,
                current=state.current,
                instant_cost=instant_cost,
                export_income=export_income,
                cumulative_generated_kwh=totals["generated_kwh"],
                cumulative_consumed_kwh=totals["consumed_kwh"],
                cumulative_charged_kwh=totals["charged_kwh"],
                cumulative_discharged_kwh=totals["discharged_kwh"],
                cumulative_imported_kwh=totals["imported_kwh"],
                cumulative_exported_kwh=totals["exported_kwh"],
                cumulative_cost=totals["cost"],
                cumulative_export_income=totals["export_income"],
                events=events
            ))
        
        final_totals = EnergyTotals(**integrals.totals)
        elapsed = time.time() - start
        self.logger.info(
            f"Simulation finished in {elapsed:.2f}s: cost {final_totals.cost:.2f}, "
            f"export income {final_totals.export_income:.2f}, final SOC {battery.soc:.3f}"
        )
        
        return SimulationTrajectory(
            records=tuple(records),
            totals=final_totals,
            initial_state=initial_state,
            final_state=battery.snapshot(),
            policy_name=self.policy.name,
            integration=integration,
            metadata={
                "policy": self.policy.get_metadata(),
                "steps": n_steps,
                "wall_time_s": elapsed
            }
        )
    
    @staticmethod
    def _collect_events(observation, decision, state) -> Tuple[StepEvent, ...]:
        events: List[StepEvent] = []
        if state.truncated:
            events.append(TruncationEvent(
                type=EventType.CHARGE_TRUNCATED if state.requested_power > 0 else EventType.DISCHARGE_TRUNCATED,
                timestamp=observation.timestamp,
                requested_kw=state.requested_power,
                realized_kw=state.power,
                limit=state.limit
            ))
        if decision.fallback_used:
            events.append(FallbackEvent(
                type=EventType.POLICY_FALLBACK,
                timestamp=observation.timestamp,
                policy=decision.policy,
                error=decision.fallback_error or ""
            ))
        if not observation.grid_available:
            events.append(StepEvent(type=EventType.GRID_UNAVAILABLE, timestamp=observation.timestamp))
        return tuple(events)


def run_simulation(
    signals: SignalSet,
    config: Optional[SystemConfig] = None,
    policy: Optional[DispatchPolicy] = None,
    **run_options: Any
) -> SimulationTrajectory:
    """Convenience wrapper around ``Simulator(config, policy).run(signals)``."""
    return Simulator(config, policy).run(signals, **run_options)


def training_observations(signals: SignalSet, config: Optional[SystemConfig] = None) -> List[Observation]:
    """Observations at the initial battery state, for fitting learned policies offline."""
    config = config or SystemConfig()
    signals.validate()
    dt = signals.default_dt_schedule()
    battery = create_battery_model("simple", config.battery, config.degradation).snapshot()
    price = signals.effective_price()
    available = signals.availability
    return [
        Observation.build(
            signals.time[i], signals.solar_generation[i], signals.load_demand[i],
            price[i], available[i], battery, dt[i], config.degradation.days_per_month
        )
        for i in range(len(signals))
    ]
