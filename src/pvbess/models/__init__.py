"""
Battery models for the PV + battery dispatch simulator.

This package provides:
- A bucket battery model with rate limits, SOC bounds and conversion losses
- Calendar degradation of capacity, efficiency and terminal voltage
- Feasibility helpers shared by dispatch policies and the simulator
"""

from .battery import (
    BatteryState,
    BatteryParameters,
    BatteryModel,
    SimpleBatteryModel,
    create_battery_model,
    charge_limit_kw,
    discharge_limit_kw,
    SECONDS_PER_HOUR,
    SECONDS_PER_DAY
)

from .degradation import (
    DegradationModel,
    CalendarDegradationModel
)

__all__ = [
    # Battery models
    "BatteryState",
    "BatteryParameters",
    "BatteryModel",
    "SimpleBatteryModel",
    "create_battery_model",
    "charge_limit_kw",
    "discharge_limit_kw",
    "SECONDS_PER_HOUR",
    "SECONDS_PER_DAY",
    
    # Degradation
    "DegradationModel",
    "CalendarDegradationModel",
]
