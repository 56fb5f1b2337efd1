"""
Dispatch policies for the PV + battery simulator.

This package provides:
- The observation/decision contract shared by every policy
- Rule-based policies (energy balance, calendar aware, grid-only baseline)
- A fuzzy approximator trained against the calendar rules
- A fallback wrapper that re-invokes the rules when the approximator fails
"""

from typing import Optional

from .base import (
    DispatchReason,
    Observation,
    DispatchDecision,
    DispatchPolicy,
    PolicyPlugin,
    calendar_features,
    power_balance_residual
)

from .rules import (
    RuleBasedPolicy,
    EnergyBalancePolicy,
    CalendarAwarePolicy,
    CalendarSignals,
    GridOnlyPolicy
)

from .fuzzy import (
    FEATURE_NAMES,
    SIGNAL_NAMES,
    FuzzyInferenceSystem,
    ApproximatorPolicy,
    feature_vector,
    build_training_set,
    train_approximator
)

from .fallback import FallbackDispatchPolicy

from ..config import BatteryConfig, DispatchConfig
from ..exceptions import ConfigurationError


def create_policy(
    dispatch_config: DispatchConfig,
    battery_config: BatteryConfig,
    approximator: Optional[ApproximatorPolicy] = None,
    balance_tolerance: float = 1e-6
) -> DispatchPolicy:
    """Factory function to create the configured dispatch policy."""
    policies = {
        "energy_balance": EnergyBalancePolicy,
        "calendar": CalendarAwarePolicy,
        "grid_only": GridOnlyPolicy
    }
    
    if dispatch_config.policy in policies:
        return policies[dispatch_config.policy](dispatch_config, battery_config)
    
    if dispatch_config.policy == "fuzzy":
        if approximator is None:
            raise ConfigurationError("The fuzzy policy needs a trained approximator")
        return FallbackDispatchPolicy(
            approximator,
            CalendarAwarePolicy(dispatch_config, battery_config),
            balance_tolerance=balance_tolerance
        )
    
    raise ConfigurationError(f"Unknown dispatch policy: {dispatch_config.policy}")


__all__ = [
    # Contract
    "DispatchReason",
    "Observation",
    "DispatchDecision",
    "DispatchPolicy",
    "PolicyPlugin",
    "calendar_features",
    "power_balance_residual",
    
    # Rule policies
    "RuleBasedPolicy",
    "EnergyBalancePolicy",
    "CalendarAwarePolicy",
    "CalendarSignals",
    "GridOnlyPolicy",
    
    # Learned policy
    "FEATURE_NAMES",
    "SIGNAL_NAMES",
    "FuzzyInferenceSystem",
    "ApproximatorPolicy",
    "feature_vector",
    "build_training_set",
    "train_approximator",
    
    # Fallback
    "FallbackDispatchPolicy",
    
    # Factory
    "create_policy"
]
