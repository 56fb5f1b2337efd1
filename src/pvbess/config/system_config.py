"""
Main simulator configuration class that integrates all configuration sections.
"""

from dataclasses import dataclass, field, fields, asdict
from typing import Dict, Any, Optional, Type
import logging
import math

from .base import BaseConfig, ConfigValidationResult, ValidationLevel
from ..exceptions import ConfigurationError


POLICY_TYPES = ("energy_balance", "calendar", "fuzzy", "grid_only")
INTEGRATION_METHODS = ("trapezoidal", "rectangular")


def _section_from_dict(section_cls: Type, data: Optional[Dict[str, Any]], section_name: str):
    """Build a section dataclass, rejecting keys it does not define."""
    data = dict(data or {})
    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown {section_name} option(s): {', '.join(sorted(unknown))}"
        )
    return section_cls(**data)


def _check_finite(section: Any, result: ConfigValidationResult) -> None:
    """Flag NaN or infinite numeric fields, which slip through range comparisons."""
    for f in fields(section):
        value = getattr(section, f.name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value):
            result.add_error(f"{f.name} must be finite, got {value}")


@dataclass
class BatteryConfig:
    """Physical battery limits and initial state."""
    capacity_kwh: float = 10.0
    initial_soc: float = 0.5
    min_soc: float = 0.1
    max_soc: float = 0.95
    max_charge_rate_kw: float = 5.0
    max_discharge_rate_kw: float = 5.0
    efficiency: float = 0.95
    nominal_voltage: float = 48.0  # V
    action_deadband_kw: float = 1e-3
    
    def validate(self) -> ConfigValidationResult:
        """Validate battery configuration."""
        result = ConfigValidationResult(is_valid=True)
        _check_finite(self, result)
        
        if self.capacity_kwh <= 0:
            result.add_error(f"capacity_kwh must be > 0, got {self.capacity_kwh}")
        
        if not 0 <= self.min_soc < self.max_soc <= 1:
            result.add_error(
                f"SOC limits must satisfy 0 <= min_soc < max_soc <= 1, "
                f"got min_soc={self.min_soc}, max_soc={self.max_soc}"
            )
        elif not self.min_soc <= self.initial_soc <= self.max_soc:
            result.add_error(
                f"initial_soc must lie in [{self.min_soc}, {self.max_soc}], got {self.initial_soc}"
            )
        
        if self.max_charge_rate_kw < 0:
            result.add_error(f"max_charge_rate_kw must be >= 0, got {self.max_charge_rate_kw}")
        
        if self.max_discharge_rate_kw < 0:
            result.add_error(f"max_discharge_rate_kw must be >= 0, got {self.max_discharge_rate_kw}")
        
        if not 0 < self.efficiency <= 1:
            result.add_error(f"efficiency must be in (0, 1], got {self.efficiency}")
        
        if self.nominal_voltage <= 0:
            result.add_error(f"nominal_voltage must be > 0, got {self.nominal_voltage}")
        
        if self.action_deadband_kw < 0:
            result.add_error(f"action_deadband_kw must be >= 0, got {self.action_deadband_kw}")
        
        if self.max_charge_rate_kw == 0 and self.max_discharge_rate_kw == 0:
            result.add_warning("Battery has zero charge and discharge rate; it will never act")
        
        return result


@dataclass
class DegradationConfig:
    """Calendar degradation rates, expressed per simulated month."""
    capacity_fade_per_month: float = 0.02
    efficiency_fade_per_month: float = 0.02
    voltage_fade_per_month: float = 0.01
    days_per_month: float = 30.0
    min_capacity_fraction: float = 0.5
    min_efficiency: float = 0.5
    
    def validate(self) -> ConfigValidationResult:
        """Validate degradation configuration."""
        result = ConfigValidationResult(is_valid=True)
        _check_finite(self, result)
        
        for name in ("capacity_fade_per_month", "efficiency_fade_per_month", "voltage_fade_per_month"):
            value = getattr(self, name)
            if not 0 <= value < 1:
                result.add_error(f"{name} must be in [0, 1), got {value}")
        
        if self.days_per_month <= 0:
            result.add_error(f"days_per_month must be > 0, got {self.days_per_month}")
        
        if not 0 < self.min_capacity_fraction <= 1:
            result.add_error(
                f"min_capacity_fraction must be in (0, 1], got {self.min_capacity_fraction}"
            )
        
        if not 0 < self.min_efficiency <= 1:
            result.add_error(f"min_efficiency must be in (0, 1], got {self.min_efficiency}")
        
        return result


@dataclass
class DispatchConfig:
    """Dispatch policy selection and decision thresholds."""
    policy: str = "energy_balance"
    high_price_threshold: float = 20.0
    low_price_threshold: float = 5.0
    export_threshold: float = 15.0
    neutral_band: float = 0.3
    export_income_fraction: float = 0.5
    prefer_battery_when_islanded: bool = True
    aggressiveness_fade: float = 0.05
    reference_price: Optional[float] = None
    
    # Learned approximator settings
    mfs_per_input: int = 2
    ridge: float = 1e-6
    domain_margin: float = 0.1
    
    @property
    def price_reference(self) -> float:
        """Price used to normalise learned-policy features."""
        if self.reference_price is not None:
            return self.reference_price
        return self.high_price_threshold / 0.7
    
    def validate(self) -> ConfigValidationResult:
        """Validate dispatch configuration."""
        result = ConfigValidationResult(is_valid=True)
        _check_finite(self, result)
        
        if self.policy not in POLICY_TYPES:
            result.add_error(f"Invalid policy: {self.policy} (expected one of {POLICY_TYPES})")
        
        for name in ("high_price_threshold", "low_price_threshold", "export_threshold"):
            if getattr(self, name) < 0:
                result.add_error(f"{name} must be >= 0, got {getattr(self, name)}")
        
        if self.low_price_threshold > self.high_price_threshold:
            result.add_error(
                f"low_price_threshold ({self.low_price_threshold}) exceeds "
                f"high_price_threshold ({self.high_price_threshold})"
            )
        
        if not 0 < self.neutral_band < 1:
            result.add_error(f"neutral_band must be in (0, 1), got {self.neutral_band}")
        
        if not 0 <= self.export_income_fraction <= 1:
            result.add_error(
                f"export_income_fraction must be in [0, 1], got {self.export_income_fraction}"
            )
        
        if not 0 <= self.aggressiveness_fade < 1:
            result.add_error(f"aggressiveness_fade must be in [0, 1), got {self.aggressiveness_fade}")
        
        if self.reference_price is not None and self.reference_price <= 0:
            result.add_error(f"reference_price must be > 0, got {self.reference_price}")
        
        if self.mfs_per_input < 2:
            result.add_error(f"mfs_per_input must be >= 2, got {self.mfs_per_input}")
        
        if self.ridge < 0:
            result.add_error(f"ridge must be >= 0, got {self.ridge}")
        
        if self.domain_margin < 0:
            result.add_error(f"domain_margin must be >= 0, got {self.domain_margin}")
        
        if self.export_threshold < self.low_price_threshold:
            result.add_warning("export_threshold is below low_price_threshold")
        
        return result


@dataclass
class SimulationConfig:
    """Configuration for the simulation driver."""
    integration: str = "trapezoidal"
    model_feed_in: bool = True
    balance_tolerance: float = 1e-6
    record_events: bool = True
    
    def validate(self) -> ConfigValidationResult:
        """Validate simulation configuration."""
        result = ConfigValidationResult(is_valid=True)
        _check_finite(self, result)
        
        if self.integration not in INTEGRATION_METHODS:
            result.add_error(f"Invalid integration method: {self.integration}")
        
        if self.balance_tolerance <= 0:
            result.add_error(f"balance_tolerance must be > 0, got {self.balance_tolerance}")
        
        return result


@dataclass
class MonitoringConfig:
    """Configuration for logging."""
    log_level: str = "INFO"
    log_file: Optional[str] = None
    
    def validate(self) -> ConfigValidationResult:
        """Validate monitoring configuration."""
        result = ConfigValidationResult(is_valid=True)
        _check_finite(self, result)
        
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            result.add_error(f"Invalid log level: {self.log_level}")
        
        return result


# Flat parameter names accepted by SystemConfig.from_parameters
_FLAT_PARAMETERS = {
    "battery_capacity_kwh": ("battery", "capacity_kwh"),
    "initial_soc": ("battery", "initial_soc"),
    "min_soc": ("battery", "min_soc"),
    "max_soc": ("battery", "max_soc"),
    "max_charge_rate_kw": ("battery", "max_charge_rate_kw"),
    "max_discharge_rate_kw": ("battery", "max_discharge_rate_kw"),
    "battery_efficiency": ("battery", "efficiency"),
    "high_price_threshold": ("dispatch", "high_price_threshold"),
    "low_price_threshold": ("dispatch", "low_price_threshold"),
    "export_threshold": ("dispatch", "export_threshold"),
    "export_income_fraction": ("dispatch", "export_income_fraction"),
}


@dataclass
class SystemConfig(BaseConfig):
    """Main simulator configuration class."""
    
    name: str = "PV Battery System"
    battery: BatteryConfig = field(default_factory=BatteryConfig)
    degradation: DegradationConfig = field(default_factory=DegradationConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    validation_level: ValidationLevel = ValidationLevel.STRICT
    
    def __post_init__(self):
        """Initialize after dataclass creation."""
        super().__init__(self.validation_level)
        self._setup_logging()
    
    def _setup_logging(self):
        """Setup logging based on monitoring configuration."""
        logger = logging.getLogger("pvbess")
        logger.setLevel(getattr(logging, self.monitoring.log_level, logging.INFO))
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        
        # Console handler
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            logger.addHandler(console_handler)
        
        # File handler if specified
        if self.monitoring.log_file:
            existing = [
                h for h in logger.handlers
                if isinstance(h, logging.FileHandler) and h.baseFilename.endswith(self.monitoring.log_file)
            ]
            if not existing:
                file_handler = logging.FileHandler(self.monitoring.log_file)
                file_handler.setFormatter(formatter)
                logger.addHandler(file_handler)
    
    def validate(self) -> ConfigValidationResult:
        """Validate the entire configuration."""
        result = ConfigValidationResult(is_valid=True)
        
        if not self.name:
            result.add_error("System name cannot be empty")
        
        components = [
            ("battery", self.battery),
            ("degradation", self.degradation),
            ("dispatch", self.dispatch),
            ("simulation", self.simulation),
            ("monitoring", self.monitoring)
        ]
        
        for component_name, component in components:
            result.extend(component.validate(), prefix=component_name)
        
        return result
    
    def validate_or_raise(self) -> ConfigValidationResult:
        """Validate and act on the result according to the validation level."""
        result = self.validate()
        
        for warning in result.warnings:
            self._logger.warning(warning)
        
        if result.is_valid or self.validation_level == ValidationLevel.PERMISSIVE:
            return result
        
        if self.validation_level == ValidationLevel.WARN:
            for error in result.errors:
                self._logger.warning(f"Ignoring configuration error: {error}")
            return result
        
        raise ConfigurationError("Invalid configuration: " + "; ".join(result.errors))
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "battery": asdict(self.battery),
            "degradation": asdict(self.degradation),
            "dispatch": asdict(self.dispatch),
            "simulation": asdict(self.simulation),
            "monitoring": asdict(self.monitoring),
            "validation_level": self.validation_level.value
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SystemConfig':
        """Create from dictionary."""
        known = {"name", "battery", "degradation", "dispatch", "simulation",
                 "monitoring", "validation_level"}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration section(s): {', '.join(sorted(unknown))}")
        
        try:
            level = ValidationLevel(data.get("validation_level", ValidationLevel.STRICT.value))
        except ValueError:
            raise ConfigurationError(f"Invalid validation level: {data.get('validation_level')}")
        
        return cls(
            name=data.get("name", "PV Battery System"),
            battery=_section_from_dict(BatteryConfig, data.get("battery"), "battery"),
            degradation=_section_from_dict(DegradationConfig, data.get("degradation"), "degradation"),
            dispatch=_section_from_dict(DispatchConfig, data.get("dispatch"), "dispatch"),
            simulation=_section_from_dict(SimulationConfig, data.get("simulation"), "simulation"),
            monitoring=_section_from_dict(MonitoringConfig, data.get("monitoring"), "monitoring"),
            validation_level=level
        )
    
    @classmethod
    def from_parameters(cls, **parameters: Any) -> 'SystemConfig':
        """Create from the flat ``{battery_capacity_kwh, initial_soc, ...}`` key set."""
        data: Dict[str, Dict[str, Any]] = {"battery": {}, "dispatch": {}}
        for key, value in parameters.items():
            if key not in _FLAT_PARAMETERS:
                raise ConfigurationError(f"Unknown parameter: {key}")
            section, name = _FLAT_PARAMETERS[key]
            data[section][name] = value
        return cls.from_dict(data)
