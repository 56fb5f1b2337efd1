"""
Tests for the synthetic signal generator.
"""

import sys
from pathlib import Path
import unittest
import numpy as np

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pvbess.exceptions import InputValidationError
from pvbess.signals import SignalGenerator


class TestSignalGenerator(unittest.TestCase):
    """Test suite for SignalGenerator."""
    
    def test_profiles_validate(self):
        generator = SignalGenerator(seed=1)
        for signals, expected in (
            (generator.day_profile(), 96),
            (generator.week_profile(), 672),
            (generator.month_profile(), 720)
        ):
            self.assertEqual(len(signals), expected)
            signals.validate()
    
    def test_seeded_reproducibility(self):
        first = SignalGenerator(seed=9).week_profile()
        second = SignalGenerator(seed=9).week_profile()
        np.testing.assert_array_equal(first.solar_generation, second.solar_generation)
        np.testing.assert_array_equal(first.grid_available, second.grid_available)
        
        other = SignalGenerator(seed=10).week_profile()
        self.assertFalse(np.array_equal(first.solar_generation, other.solar_generation))
    
    def test_solar_shape(self):
        generator = SignalGenerator(seed=2, weather_noise=0.0)
        time = generator.time_grid(1, 3600.0)
        solar = generator.solar_profile(time)
        self.assertEqual(solar[0], 0.0)
        self.assertTrue(np.all(solar >= 0))
        self.assertEqual(int(np.argmax(solar)), 12)
    
    def test_time_of_use_price(self):
        generator = SignalGenerator(seed=3)
        hours = np.array([3.0, 7.0, 13.0]) * 3600.0
        off_peak, peak, shoulder = generator.price_profile(hours)
        self.assertAlmostEqual(peak / shoulder, 2.5)
        self.assertAlmostEqual(off_peak / shoulder, 0.6)
    
    def test_weekend_discount(self):
        generator = SignalGenerator(seed=3)
        price = generator.price_profile(np.array([5 * 86400.0 + 13 * 3600.0]))[0]
        expected = 8.0 * (1 + 0.3 * np.sin(2 * np.pi * 6 / 30)) * 0.9
        self.assertAlmostEqual(price, expected)
    
    def test_scheduled_grid_windows(self):
        generator = SignalGenerator(seed=4)
        signals = generator.generate(7, 900.0)
        hours = (signals.time % 86400.0) / 3600.0
        outside = (hours >= 4) & (hours < 6)
        self.assertFalse(signals.grid_available[outside].any())
        self.assertTrue(signals.grid_available.any())
    
    def test_unscheduled_grid(self):
        signals = SignalGenerator(seed=4, scheduled_grid=False).generate(7, 900.0)
        hours = (signals.time % 86400.0) / 3600.0
        self.assertTrue(signals.grid_available[(hours >= 4) & (hours < 6)].any())
    
    def test_bad_horizon(self):
        with self.assertRaises(InputValidationError):
            SignalGenerator().generate(0.001, 900.0)


if __name__ == "__main__":
    unittest.main()
