"""Synthetic PV, load, tariff and grid-availability profiles for driving simulations."""

from typing import Optional
import logging

import numpy as np

from .models import SECONDS_PER_DAY, SECONDS_PER_HOUR
from .simulation import SignalSet
from .exceptions import InputValidationError
from .validation import Validator

logger = logging.getLogger("pvbess.signals")


def _in_windows(hours: np.ndarray, windows) -> np.ndarray:
    mask = np.zeros(hours.shape, dtype=bool)
    for start, end in windows:
        mask |= (hours >= start) & (hours < end)
    return mask


class SignalGenerator:
    """Generates seeded day, week and month signal sets.

    PV follows a half-sine over the day scaled by a noisy weather factor and a
    monthly seasonal factor. Load is an AC voltage times current profile with
    weekend and mid-month uplift. Prices are time-of-use with peak and off-peak
    windows, a monthly trend and a weekend discount. Grid availability is drawn
    per sample against a reliability that dips mid-month and at weekends.
    """
    
    PEAK_WINDOWS = ((6, 12), (18, 24))
    OFF_PEAK_WINDOWS = ((2, 4), (14, 16))
    
    def __init__(
        self,
        seed: Optional[int] = None,
        base_price: float = 8.0,
        peak_multiplier: float = 2.5,
        off_peak_multiplier: float = 0.6,
        pv_voltage: float = 500.0,
        pv_current: float = 10.0,
        weather_noise: float = 0.1,
        scheduled_grid: bool = True
    ):
        """Initialize signal generator.

        With ``scheduled_grid`` the grid is only ever offered during the peak and
        off-peak windows; otherwise every sample is drawn against reliability.
        """
        Validator.validate_range(base_price, 0.0, None)
        Validator.validate_range(weather_noise, 0.0, None)
        self.rng = np.random.RandomState(seed)
        self.base_price = base_price
        self.peak_multiplier = peak_multiplier
        self.off_peak_multiplier = off_peak_multiplier
        self.pv_voltage = pv_voltage
        self.pv_current = pv_current
        self.weather_noise = weather_noise
        self.scheduled_grid = scheduled_grid
    
    def time_grid(self, days: float, step_seconds: float = 900.0) -> np.ndarray:
        """Uniform grid covering ``days`` with one sample per step."""
        Validator.validate_range(days, 0.0, None)
        Validator.validate_range(step_seconds, 1e-9, None)
        n_samples = int(round(days * SECONDS_PER_DAY / step_seconds))
        if n_samples < 1:
            raise InputValidationError("Horizon shorter than one step")
        return np.arange(n_samples) * float(step_seconds)
    
    @staticmethod
    def _calendar(time: np.ndarray):
        day_index = np.floor(time / SECONDS_PER_DAY)
        day_of_month = day_index + 1
        weekend = (day_index % 7) >= 5
        hours = (time % SECONDS_PER_DAY) / SECONDS_PER_HOUR
        return day_of_month, weekend, hours
    
    def solar_profile(self, time: np.ndarray) -> np.ndarray:
        """PV output in kW."""
        day_of_month, _, hours = self._calendar(time)
        daylight = np.maximum(0.0, np.sin(np.pi * hours / 24.0))
        seasonal = 1 + 0.2 * np.sin(2 * np.pi * day_of_month / 30)
        weather = (
            0.8
            + 0.3 * np.sin(2 * np.pi * time / (2 * SECONDS_PER_DAY))
            + self.weather_noise * self.rng.randn(len(time))
        )
        weather = np.maximum(weather, 0.0)
        
        # Voltage and current both carry the weather and seasonal factors
        voltage = self.pv_voltage * daylight * weather * seasonal
        current = self.pv_current * daylight * weather * seasonal
        return voltage * current / 1000.0
    
    def load_profile(self, time: np.ndarray) -> np.ndarray:
        """Household AC load in kW."""
        day_of_month, weekend, _ = self._calendar(time)
        t_day = time % SECONDS_PER_DAY
        monthly = 1 + 0.15 * np.sin(2 * np.pi * day_of_month / 30 + np.pi / 4)
        weekend_factor = 1 + 0.2 * weekend
        
        ac_voltage = 230 + 10 * np.sin(2 * np.pi * t_day / SECONDS_PER_DAY)
        ac_current = (5 + 2 * np.sin(2 * np.pi * t_day / 43200)) * monthly * weekend_factor
        duty = 0.5 + 0.3 * np.sin(2 * np.pi * t_day / 43200)
        return ac_voltage * ac_current * duty / 1000.0
    
    def price_profile(self, time: np.ndarray) -> np.ndarray:
        """Time-of-use tariff in currency/kWh."""
        day_of_month, weekend, hours = self._calendar(time)
        price = (
            self.base_price
            * (1 + 0.3 * np.sin(2 * np.pi * day_of_month / 30))
            * np.where(weekend, 0.9, 1.0)
        )
        price = np.where(_in_windows(hours, self.PEAK_WINDOWS), price * self.peak_multiplier, price)
        price = np.where(_in_windows(hours, self.OFF_PEAK_WINDOWS), price * self.off_peak_multiplier, price)
        return price
    
    def availability_profile(self, time: np.ndarray) -> np.ndarray:
        """Boolean grid availability per sample."""
        day_of_month, weekend, hours = self._calendar(time)
        reliability = (0.95 - 0.05 * np.sin(2 * np.pi * day_of_month / 30)) * np.where(weekend, 0.9, 1.0)
        draws = self.rng.rand(len(time))
        
        if not self.scheduled_grid:
            return draws < reliability
        
        peak = _in_windows(hours, self.PEAK_WINDOWS)
        off_peak = _in_windows(hours, self.OFF_PEAK_WINDOWS)
        return (peak & (draws < reliability)) | (off_peak & (draws < reliability * 0.8))
    
    def generate(self, days: float, step_seconds: float = 900.0) -> SignalSet:
        """Generate a complete signal set."""
        time = self.time_grid(days, step_seconds)
        signals = SignalSet(
            time=time,
            solar_generation=self.solar_profile(time),
            load_demand=self.load_profile(time),
            grid_price=self.price_profile(time),
            grid_available=self.availability_profile(time)
        )
        logger.debug(
            f"Generated {len(time)} samples over {days} days, "
            f"grid available {signals.availability.mean():.1%} of the time"
        )
        return signals
    
    def day_profile(self, step_seconds: float = 900.0) -> SignalSet:
        return self.generate(1, step_seconds)
    
    def week_profile(self, step_seconds: float = 900.0) -> SignalSet:
        return self.generate(7, step_seconds)
    
    def month_profile(self, step_seconds: float = 3600.0) -> SignalSet:
        return self.generate(30, step_seconds)
