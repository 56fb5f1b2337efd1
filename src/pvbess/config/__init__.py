"""
Configuration package for the PV + battery dispatch simulator.
Provides hierarchical, validatable configuration management.
"""

from .base import (
    BaseConfig,
    ConfigFormat,
    ValidationLevel,
    ConfigValidationResult
)

from .system_config import (
    BatteryConfig,
    DegradationConfig,
    DispatchConfig,
    SimulationConfig,
    MonitoringConfig,
    SystemConfig,
    POLICY_TYPES,
    INTEGRATION_METHODS
)

__all__ = [
    # Base configuration classes
    "BaseConfig",
    "ConfigFormat",
    "ValidationLevel",
    "ConfigValidationResult",
    
    # Configuration sections
    "BatteryConfig",
    "DegradationConfig",
    "DispatchConfig",
    "SimulationConfig",
    "MonitoringConfig",
    
    # Main configuration class
    "SystemConfig",
    "POLICY_TYPES",
    "INTEGRATION_METHODS"
]
