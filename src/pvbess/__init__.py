"""PV + battery energy dispatch simulator."""

from .config import SystemConfig
from .exceptions import PVBessError
from .simulation import (
    SignalSet,
    StepRecord,
    EnergyTotals,
    SimulationTrajectory,
    Simulator,
    run_simulation
)
from .dispatch import create_policy

# Import peripheral modules
from . import dispatch
from . import models
from . import signals
from . import analysis
from . import benchmark

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "SystemConfig",
    "PVBessError",
    "SignalSet",
    "StepRecord",
    "EnergyTotals",
    "SimulationTrajectory",
    "Simulator",
    "run_simulation",
    "create_policy",
    "dispatch",
    "models",
    "signals",
    "analysis",
    "benchmark"
]
