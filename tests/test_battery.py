"""
Tests for the battery state simulator.

Covers:
- Charge and discharge bookkeeping with one-way efficiency losses
- Rate, headroom and deadband handling
- Calendar degradation of capacity, efficiency and voltage
- SOC bounds under arbitrary request sequences
"""

import sys
from pathlib import Path
import unittest
import numpy as np

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pvbess.config import BatteryConfig, DegradationConfig
from pvbess.dispatch import DispatchDecision, DispatchReason
from pvbess.exceptions import DispatchError, InputValidationError
from pvbess.models import (
    BatteryParameters, SimpleBatteryModel, CalendarDegradationModel,
    create_battery_model, charge_limit_kw, discharge_limit_kw
)


QUARTER_HOUR = 900.0


class TestBatteryModel(unittest.TestCase):
    """Test suite for SimpleBatteryModel."""
    
    def setUp(self):
        """Set up a 10 kWh battery at 50% SOC."""
        self.battery_config = BatteryConfig()
        self.degradation_config = DegradationConfig()
        self.battery = create_battery_model("simple", self.battery_config, self.degradation_config)
    
    def test_initial_state(self):
        state = self.battery.snapshot()
        self.assertEqual(state.soc, 0.5)
        self.assertEqual(state.capacity_kwh, 10.0)
        self.assertEqual(state.efficiency, 0.95)
        self.assertAlmostEqual(state.voltage, 48.0)  # 48 * (0.9 + 0.2 * 0.5)
        self.assertEqual(state.power, 0.0)
        self.assertIsNone(state.limit)
    
    def test_charge_stores_less_than_drawn(self):
        state = self.battery.update(2.0, QUARTER_HOUR)
        self.assertEqual(state.power, 2.0)
        self.assertAlmostEqual(state.soc, 0.5 + 2.0 * 0.25 * 0.95 / 10.0)
        self.assertFalse(state.truncated)
        self.assertGreater(state.current, 0)
        print("✓ Charge applies efficiency on the way in")
    
    def test_discharge_draws_more_than_delivered(self):
        state = self.battery.update(-2.0, QUARTER_HOUR)
        self.assertEqual(state.power, -2.0)
        self.assertAlmostEqual(state.soc, 0.5 - 2.0 * 0.25 / 0.95 / 10.0)
        self.assertLess(state.current, 0)
        print("✓ Discharge applies efficiency on the way out")
    
    def test_rate_truncation(self):
        state = self.battery.update(8.0, QUARTER_HOUR)
        self.assertEqual(state.power, 5.0)
        self.assertEqual(state.requested_power, 8.0)
        self.assertEqual(state.limit, "rate")
        self.assertTrue(state.truncated)
        self.assertAlmostEqual(state.shortfall, 3.0)
        
        state = self.battery.update(-7.0, QUARTER_HOUR)
        self.assertEqual(state.power, -5.0)
        self.assertEqual(state.limit, "rate")
    
    def test_headroom_truncation_lands_on_max_soc(self):
        battery = create_battery_model(
            "simple", self.battery_config, self.degradation_config, initial_soc=0.94
        )
        state = battery.update(5.0, 3600.0)
        self.assertEqual(state.limit, "headroom")
        self.assertAlmostEqual(state.power, 0.1 / 0.95)
        self.assertAlmostEqual(state.soc, 0.95)
        
        # Full battery refuses further charge
        state = battery.update(5.0, 3600.0)
        self.assertAlmostEqual(state.power, 0.0)
        self.assertAlmostEqual(state.soc, 0.95)
    
    def test_discharge_at_min_soc_is_refused(self):
        battery = create_battery_model(
            "simple", self.battery_config, self.degradation_config, initial_soc=0.1
        )
        state = battery.update(-3.0, QUARTER_HOUR)
        self.assertEqual(state.power, 0.0)
        self.assertEqual(state.soc, 0.1)
        self.assertEqual(state.limit, "headroom")
        self.assertAlmostEqual(state.shortfall, -3.0)
    
    def test_deadband_holds(self):
        state = self.battery.update(5e-4, QUARTER_HOUR)
        self.assertEqual(state.power, 0.0)
        self.assertEqual(state.soc, 0.5)
        self.assertEqual(state.limit, "deadband")
        self.assertFalse(state.truncated)
    
    def test_invalid_inputs(self):
        with self.assertRaises(DispatchError):
            self.battery.update(float("nan"), QUARTER_HOUR)
        with self.assertRaises(InputValidationError):
            self.battery.update(1.0, 0.0)
        with self.assertRaises(InputValidationError):
            self.battery.update(1.0, float("inf"))
        with self.assertRaises(InputValidationError):
            create_battery_model("simple", self.battery_config, self.degradation_config, initial_soc=0.99)
        with self.assertRaises(ValueError):
            create_battery_model("lithium", self.battery_config, self.degradation_config)
    
    def test_step_applies_decision(self):
        decision = DispatchDecision(
            battery_action=-1.0, grid_action=0.0, reason=DispatchReason.DISCHARGE_BATTERY
        )
        state = self.battery.step(decision, QUARTER_HOUR)
        self.assertEqual(state.power, -1.0)
    
    def test_snapshot_is_a_copy(self):
        state = self.battery.snapshot()
        state.soc = 0.0
        self.assertEqual(self.battery.soc, 0.5)
    
    def test_soc_stays_in_bounds(self):
        """Random requests, including wildly infeasible ones, never leave [min_soc, max_soc]."""
        rng = np.random.RandomState(7)
        for request in rng.uniform(-20.0, 20.0, size=500):
            state = self.battery.update(request, rng.choice([60.0, 900.0, 3600.0]))
            self.assertGreaterEqual(state.soc, self.battery_config.min_soc)
            self.assertLessEqual(state.soc, self.battery_config.max_soc)
            self.assertLessEqual(abs(state.power), 5.0)
        print("✓ SOC bounded over 500 random requests")
    
    def test_tiny_dt_moves_soc_proportionally(self):
        dt = 1e-9
        for request in (5.0, -5.0, 1e6, -1e6):
            before = self.battery.soc
            state = self.battery.update(request, dt)
            self.assertLessEqual(abs(state.soc - before), 5.0 * dt / 3600.0 / 10.0 / 0.95 + 1e-15)
            self.assertLessEqual(abs(state.power), 5.0)
    
    def test_cycle_and_throughput_accounting(self):
        self.battery.update(4.0, 3600.0)
        self.battery.update(-4.0, 3600.0)
        state = self.battery.snapshot()
        self.assertAlmostEqual(state.throughput_kwh, 8.0)
        self.assertGreater(state.cycle_count, 0.0)


class TestLimits(unittest.TestCase):
    """Test the feasibility helpers shared with dispatch policies."""
    
    def test_charge_limit(self):
        self.assertEqual(charge_limit_kw(0.5, 0.95, 10.0, 0.95, 5.0, 0.25), 5.0)
        self.assertAlmostEqual(charge_limit_kw(0.94, 0.95, 10.0, 0.95, 5.0, 1.0), 0.1 / 0.95)
        self.assertEqual(charge_limit_kw(0.95, 0.95, 10.0, 0.95, 5.0, 1.0), 0.0)
    
    def test_discharge_limit(self):
        self.assertEqual(discharge_limit_kw(0.5, 0.1, 10.0, 0.95, 5.0, 0.25), 5.0)
        self.assertAlmostEqual(discharge_limit_kw(0.2, 0.1, 10.0, 0.95, 5.0, 1.0), 0.95)
        self.assertEqual(discharge_limit_kw(0.1, 0.1, 10.0, 0.95, 5.0, 1.0), 0.0)


class TestDegradation(unittest.TestCase):
    """Test calendar ageing."""
    
    def test_one_month_of_ageing(self):
        battery = create_battery_model("simple", BatteryConfig(), DegradationConfig())
        for _ in range(30):
            state = battery.update(0.0, 86400.0)
        
        self.assertAlmostEqual(state.elapsed_days, 30.0)
        self.assertAlmostEqual(state.capacity_kwh, 9.8)
        self.assertAlmostEqual(state.efficiency, 0.93)
        self.assertAlmostEqual(state.voltage, 48.0 * 1.0 * 0.99)
        self.assertEqual(state.soc, 0.5)
        print("✓ 2% capacity fade after one month")
    
    def test_fade_is_floored(self):
        model = CalendarDegradationModel(DegradationConfig(), base_efficiency=0.95)
        self.assertEqual(model.capacity_factor(0.0), 1.0)
        self.assertEqual(model.capacity_factor(100 * 365.0), 0.5)
        self.assertEqual(model.efficiency(100 * 365.0), 0.5)
        self.assertEqual(model.voltage_factor(100 * 365.0), 0.5)
    
    def test_no_fade_when_disabled(self):
        config = DegradationConfig(
            capacity_fade_per_month=0.0, efficiency_fade_per_month=0.0, voltage_fade_per_month=0.0
        )
        battery = SimpleBatteryModel(
            BatteryParameters.from_config(BatteryConfig()),
            CalendarDegradationModel(config, 0.95)
        )
        state = battery.update(0.0, 90 * 86400.0)
        self.assertEqual(state.capacity_kwh, 10.0)
        self.assertEqual(state.efficiency, 0.95)


if __name__ == "__main__":
    unittest.main()
