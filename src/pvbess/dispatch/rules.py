"""
Rule-based dispatch policies.

Two formulations share the ``DispatchPolicy`` contract:
- ``EnergyBalancePolicy``: demand/surplus rules driven by price thresholds.
- ``CalendarAwarePolicy``: three decoupled signals (load shift, battery, grid)
  that also depend on hour of day, weekend and month progress.

Every decision is power balanced: ``grid_action = net_demand + battery_action``.
"""

from dataclasses import dataclass
from typing import Dict, Any, Optional

from .base import DispatchPolicy, DispatchDecision, DispatchReason, Observation
from ..config import BatteryConfig, DispatchConfig
from ..models import charge_limit_kw, discharge_limit_kw


class RuleBasedPolicy(DispatchPolicy):
    """Shared plumbing for rule policies."""
    
    def __init__(self, name: str, dispatch_config: DispatchConfig, battery_config: BatteryConfig):
        super().__init__(name)
        self.config = dispatch_config
        self.battery = battery_config
    
    def _charge_limit(self, observation: Observation) -> float:
        return charge_limit_kw(
            observation.battery_soc, self.battery.max_soc, observation.battery_capacity_kwh,
            observation.battery_efficiency, self.battery.max_charge_rate_kw, observation.step_hours
        )
    
    def _discharge_limit(self, observation: Observation) -> float:
        return discharge_limit_kw(
            observation.battery_soc, self.battery.min_soc, observation.battery_capacity_kwh,
            observation.battery_efficiency, self.battery.max_discharge_rate_kw, observation.step_hours
        )
    
    def _decision(
        self,
        observation: Observation,
        battery_action: float,
        reason: DispatchReason,
        explanation: str,
        **extra: Any
    ) -> DispatchDecision:
        """Build a decision whose grid action closes the power balance."""
        return DispatchDecision(
            battery_action=battery_action,
            grid_action=observation.net_demand + battery_action,
            reason=reason,
            explanation=explanation,
            policy=self.name,
            **extra
        )
    
    def _export_reason(self, observation: Observation) -> DispatchReason:
        if observation.grid_price >= self.config.export_threshold:
            return DispatchReason.EXPORT_GRID
        return DispatchReason.EXPORT_GRID_FORCED
    
    def get_metadata(self) -> Dict[str, Any]:
        metadata = super().get_metadata()
        metadata.update({
            "high_price_threshold": self.config.high_price_threshold,
            "low_price_threshold": self.config.low_price_threshold,
            "export_threshold": self.config.export_threshold
        })
        return metadata


class EnergyBalancePolicy(RuleBasedPolicy):
    """Cover deficits from the battery when power is expensive, store surplus when it is cheap."""
    
    def __init__(self, dispatch_config: DispatchConfig, battery_config: BatteryConfig):
        super().__init__("energy_balance", dispatch_config, battery_config)
    
    def decide(self, observation: Observation) -> DispatchDecision:
        net_demand = observation.net_demand
        price = observation.grid_price
        soc = observation.battery_soc
        islanded = not observation.grid_available and self.config.prefer_battery_when_islanded
        
        if net_demand > 0:
            price_high = price > self.config.high_price_threshold
            
            if (price_high or islanded) and soc > self.battery.min_soc:
                discharge = min(net_demand, self._discharge_limit(observation))
                if discharge > 0:
                    if islanded:
                        explanation = "Grid unavailable - using battery"
                    else:
                        explanation = f"High price ({price:.2f}/kWh) - using battery"
                    return self._decision(
                        observation, -discharge, DispatchReason.DISCHARGE_BATTERY, explanation
                    )
            
            if price_high or islanded:
                return self._decision(
                    observation, 0.0, DispatchReason.IMPORT_GRID_FORCED,
                    f"Battery unavailable (SOC: {soc * 100:.1f}%) - importing deficit"
                )
            return self._decision(
                observation, 0.0, DispatchReason.IMPORT_GRID,
                f"Acceptable price ({price:.2f}/kWh) - using grid"
            )
        
        excess = -net_demand
        if excess == 0:
            return self._decision(observation, 0.0, DispatchReason.HOLD, "Solar matches demand")
        
        price_low = price < self.config.low_price_threshold
        if (price_low or islanded) and soc < self.battery.max_soc:
            charge = min(excess, self._charge_limit(observation))
            if charge > 0:
                if charge < excess:
                    return self._decision(
                        observation, charge, DispatchReason.CHARGE_AND_EXPORT,
                        f"Low price ({price:.2f}/kWh) - charge battery then export"
                    )
                return self._decision(
                    observation, charge, DispatchReason.CHARGE_BATTERY,
                    f"Low price ({price:.2f}/kWh) - charge battery"
                )
        
        reason = self._export_reason(observation)
        if reason == DispatchReason.EXPORT_GRID:
            explanation = f"Good export price ({price:.2f}/kWh)"
        else:
            explanation = f"Battery not charging (SOC: {soc * 100:.1f}%) - forced export"
        return self._decision(observation, 0.0, reason, explanation)


@dataclass(frozen=True)
class CalendarSignals:
    """Decoupled decision signals on a roughly [-1, 1] scale."""
    load_shift: float
    battery: float
    grid: float


class CalendarAwarePolicy(RuleBasedPolicy):
    """Time-of-day, weekend and month-progress aware dispatch."""
    
    def __init__(
        self,
        dispatch_config: DispatchConfig,
        battery_config: BatteryConfig,
        name: str = "calendar"
    ):
        super().__init__(name, dispatch_config, battery_config)
    
    def signals(self, observation: Observation) -> CalendarSignals:
        """Expert signals; learned approximators are trained to imitate these."""
        hour = observation.hour_of_day
        progress = observation.day_progress
        weekend = 1.0 if observation.is_weekend else 0.0
        pv_available = observation.solar_generation > 0
        price_high = observation.grid_price > self.config.high_price_threshold
        price_low = observation.grid_price < self.config.low_price_threshold
        
        # Load shifting: move load into PV hours, away from the evening peak
        if 6 <= hour <= 12 and pv_available:
            load_shift = 1.0 + 0.3 * progress
        elif hour >= 18:
            load_shift = -1.0 - 0.2 * weekend
        else:
            load_shift = 0.0
        
        # Battery: charge on cheap or midday PV, discharge on expensive power
        if pv_available and (price_low or 10 <= hour <= 16):
            battery = 1.0 - 0.1 * progress
        elif price_high:
            battery = -1.0 + 0.05 * progress
        else:
            battery = 0.0
        
        # Grid usage: avoid when expensive, lean on it when cheap and dark
        if price_high:
            grid = -1.0 - 0.2 * progress
        elif price_low and not pv_available:
            grid = 1.0 - 0.1 * weekend
        else:
            grid = 0.0
        
        if not observation.grid_available and self.config.prefer_battery_when_islanded:
            grid = -1.0
            if observation.net_demand > 0:
                battery = -1.0
        
        return CalendarSignals(load_shift=load_shift, battery=battery, grid=grid)
    
    def decide(self, observation: Observation) -> DispatchDecision:
        return self.resolve(observation, self.signals(observation))
    
    def resolve(self, observation: Observation, signals: CalendarSignals) -> DispatchDecision:
        """Turn decoupled signals into a feasible, power-balanced decision."""
        band = self.config.neutral_band
        progress = observation.day_progress
        net_demand = observation.net_demand
        soc = observation.battery_soc
        
        if signals.load_shift > band:
            load_shift = 1.2 + 0.1 * progress
        elif signals.load_shift < -band:
            load_shift = 0.6 - 0.1 * progress
        else:
            load_shift = 1.0
        
        if signals.grid > band:
            grid_usage = 1.2 - 0.1 * progress
        elif signals.grid < -band:
            grid_usage = 0.3 + 0.1 * progress
        else:
            grid_usage = 1.0
        
        command = signals.battery * (1.0 - self.config.aggressiveness_fade * progress)
        intent: Optional[str] = None
        battery_action = 0.0
        
        if command > band:
            intent = "charge"
            if soc < self.battery.max_soc:
                wanted = min(1.0, command) * self.battery.max_charge_rate_kw
                may_import = observation.grid_available and signals.grid >= -band
                available = wanted if may_import else max(0.0, -net_demand)
                battery_action = min(wanted, available, self._charge_limit(observation))
        
        elif command < -band:
            intent = "discharge"
            if soc > self.battery.min_soc:
                wanted = min(1.0, -command) * self.battery.max_discharge_rate_kw
                battery_action = -min(wanted, max(0.0, net_demand), self._discharge_limit(observation))
        
        grid_action = net_demand + battery_action
        
        if battery_action > 0:
            reason = DispatchReason.CHARGE_AND_EXPORT if grid_action < 0 else DispatchReason.CHARGE_BATTERY
        elif battery_action < 0:
            reason = DispatchReason.DISCHARGE_BATTERY
        elif grid_action > 0:
            reason = DispatchReason.IMPORT_GRID_FORCED if intent == "discharge" else DispatchReason.IMPORT_GRID
        elif grid_action < 0:
            reason = DispatchReason.EXPORT_GRID_FORCED if intent == "charge" else self._export_reason(observation)
        else:
            reason = DispatchReason.HOLD
        
        explanation = (
            f"signals load={signals.load_shift:+.2f} battery={signals.battery:+.2f} "
            f"grid={signals.grid:+.2f} at hour {observation.hour_of_day:.1f}"
        )
        return self._decision(
            observation, battery_action, reason, explanation,
            load_shift=load_shift, grid_usage=grid_usage
        )


class GridOnlyPolicy(RuleBasedPolicy):
    """Baseline without storage: the grid absorbs every deficit and surplus."""
    
    def __init__(self, dispatch_config: DispatchConfig, battery_config: BatteryConfig):
        super().__init__("grid_only", dispatch_config, battery_config)
    
    def decide(self, observation: Observation) -> DispatchDecision:
        net_demand = observation.net_demand
        if net_demand > 0:
            return self._decision(observation, 0.0, DispatchReason.IMPORT_GRID, "No storage - importing")
        if net_demand < 0:
            return self._decision(
                observation, 0.0, self._export_reason(observation), "No storage - exporting"
            )
        return self._decision(observation, 0.0, DispatchReason.HOLD, "Solar matches demand")
