"""
Calendar degradation of battery capacity, efficiency and terminal voltage.

Degradation is a pure function of elapsed simulated days. It ignores the
charge/discharge history entirely; a cycle-based model would slot in behind
the same ``DegradationModel`` interface.
"""

from abc import ABC, abstractmethod

from ..config import DegradationConfig


class DegradationModel(ABC):
    """Abstract base class for degradation models."""
    
    @abstractmethod
    def capacity_factor(self, elapsed_days: float) -> float:
        """Fraction of nameplate capacity still usable."""
        pass
    
    @abstractmethod
    def efficiency(self, elapsed_days: float) -> float:
        """One-way conversion efficiency after ageing."""
        pass
    
    @abstractmethod
    def voltage_factor(self, elapsed_days: float) -> float:
        """Multiplier applied to the SOC-dependent terminal voltage."""
        pass


class CalendarDegradationModel(DegradationModel):
    """Linear fade per simulated month, floored at configured minimums."""
    
    def __init__(self, config: DegradationConfig, base_efficiency: float):
        self.config = config
        self.base_efficiency = base_efficiency
    
    def _months(self, elapsed_days: float) -> float:
        return max(0.0, elapsed_days) / self.config.days_per_month
    
    def capacity_factor(self, elapsed_days: float) -> float:
        fade = self.config.capacity_fade_per_month * self._months(elapsed_days)
        return max(self.config.min_capacity_fraction, 1.0 - fade)
    
    def efficiency(self, elapsed_days: float) -> float:
        fade = self.config.efficiency_fade_per_month * self._months(elapsed_days)
        floor = min(self.config.min_efficiency, self.base_efficiency)
        return max(floor, self.base_efficiency - fade)
    
    def voltage_factor(self, elapsed_days: float) -> float:
        fade = self.config.voltage_fade_per_month * self._months(elapsed_days)
        return max(0.5, 1.0 - fade)
