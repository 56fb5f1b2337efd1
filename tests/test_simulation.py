"""
Tests for the simulation driver.

Covers input validation, the per-step power balance and SOC bounds,
cost accounting and integration, events, cancellation and the
one-month degradation scenario.
"""

import sys
from pathlib import Path
import unittest
import dataclasses
import numpy as np
from scipy.integrate import cumulative_trapezoid

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pvbess import SystemConfig, SignalSet, Simulator, run_simulation
from pvbess.benchmark import optimal_dispatch
from pvbess.config import SimulationConfig, BatteryConfig, DispatchConfig, DegradationConfig
from pvbess.dispatch import DispatchPolicy, DispatchDecision, DispatchReason
from pvbess.events import EventType
from pvbess.exceptions import (
    ConfigurationError, InputValidationError, SimulationCancelledError
)
from pvbess.signals import SignalGenerator


def constant_signals(n, solar, load, price, available=True, dt=900.0):
    return SignalSet(
        time=np.arange(n) * dt,
        solar_generation=np.full(n, solar, dtype=float),
        load_demand=np.full(n, load, dtype=float),
        grid_price=np.full(n, price, dtype=float),
        grid_available=np.full(n, available)
    )


class GreedyChargePolicy(DispatchPolicy):
    """Requests more charge than any battery can take."""
    
    def __init__(self, request=8.0):
        super().__init__("greedy")
        self.request = request
    
    def decide(self, observation):
        return DispatchDecision(
            battery_action=self.request,
            grid_action=observation.net_demand + self.request,
            reason=DispatchReason.CHARGE_BATTERY,
            policy=self.name
        )


class TestSignalValidation(unittest.TestCase):
    """Malformed inputs are rejected before the first step."""
    
    def setUp(self):
        self.simulator = Simulator(SystemConfig())
    
    def test_nan_solar(self):
        signals = constant_signals(4, 1.0, 1.0, 10.0)
        signals.solar_generation[2] = np.nan
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals)
    
    def test_negative_load(self):
        signals = constant_signals(4, 1.0, 1.0, 10.0)
        signals.load_demand[1] = -0.5
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals)
    
    def test_length_mismatch(self):
        signals = constant_signals(4, 1.0, 1.0, 10.0)
        signals.grid_price = signals.grid_price[:3]
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals)
    
    def test_non_monotonic_time(self):
        signals = constant_signals(4, 1.0, 1.0, 10.0)
        signals.time[2] = signals.time[1]
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals)
    
    def test_nan_price_only_where_unavailable(self):
        signals = constant_signals(4, 0.0, 1.0, 10.0)
        signals.grid_price[1] = np.nan
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals)
        
        signals.grid_available = np.array([True, False, True, True])
        trajectory = self.simulator.run(signals)
        self.assertEqual(trajectory[1].grid_price, 0.0)
        self.assertEqual(trajectory[1].instant_cost, 0.0)
    
    def test_bad_dt_schedule(self):
        signals = constant_signals(4, 1.0, 1.0, 10.0)
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals, dt_schedule=[900.0, 900.0])
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals, dt_schedule=[900.0, 0.0, 900.0, 900.0])
    
    def test_single_sample_needs_schedule(self):
        signals = constant_signals(1, 0.0, 2.0, 25.0)
        with self.assertRaises(InputValidationError):
            self.simulator.run(signals)
        trajectory = self.simulator.run(signals, dt_schedule=[900.0])
        self.assertEqual(len(trajectory), 1)
    
    def test_invalid_config_rejected(self):
        config = SystemConfig(battery=BatteryConfig(min_soc=0.9, max_soc=0.5))
        with self.assertRaises(ConfigurationError):
            Simulator(config)
        with self.assertRaises(ConfigurationError):
            Simulator(SystemConfig(dispatch=DispatchConfig(policy="fuzzy")))


class TestSimulationScenarios(unittest.TestCase):
    """Hand-checkable single-step scenarios."""
    
    def setUp(self):
        self.simulator = Simulator(SystemConfig())
    
    def test_expensive_deficit(self):
        trajectory = self.simulator.run(constant_signals(1, 0.0, 2.0, 25.0), dt_schedule=[900.0])
        record = trajectory[0]
        self.assertEqual(record.reason, DispatchReason.DISCHARGE_BATTERY)
        self.assertAlmostEqual(record.battery_power_kw, -2.0)
        self.assertAlmostEqual(record.grid_import_kw, 0.0)
        self.assertLess(record.soc, record.soc_start)
    
    def test_cheap_surplus(self):
        trajectory = self.simulator.run(constant_signals(1, 5.0, 2.0, 3.0), dt_schedule=[900.0])
        record = trajectory[0]
        self.assertEqual(record.reason, DispatchReason.CHARGE_BATTERY)
        self.assertAlmostEqual(record.battery_power_kw, 3.0)
        self.assertAlmostEqual(record.grid_power_kw, 0.0)
        self.assertAlmostEqual(record.soc, 0.5 + 3.0 * 0.25 * 0.95 / 10.0)
    
    def test_empty_battery(self):
        trajectory = self.simulator.run(
            constant_signals(1, 0.0, 2.0, 25.0), dt_schedule=[900.0], initial_soc=0.1
        )
        record = trajectory[0]
        self.assertEqual(record.reason, DispatchReason.IMPORT_GRID_FORCED)
        self.assertEqual(record.battery_power_kw, 0.0)
        self.assertAlmostEqual(record.grid_import_kw, 2.0)
        self.assertAlmostEqual(record.instant_cost, 50.0)
    
    def test_full_battery(self):
        trajectory = self.simulator.run(
            constant_signals(1, 5.0, 2.0, 3.0), dt_schedule=[900.0], initial_soc=0.95
        )
        record = trajectory[0]
        self.assertEqual(record.reason, DispatchReason.EXPORT_GRID_FORCED)
        self.assertAlmostEqual(record.grid_export_kw, 3.0)
        self.assertAlmostEqual(record.export_income, 3.0 * 3.0 * 0.5)
        self.assertEqual(record.instant_cost, 0.0)
    
    def test_one_month_degradation_and_cost_integral(self):
        """30 days of hourly samples: 2% capacity fade and a trapezoidal cost integral."""
        signals = SignalGenerator(seed=42).generate(30, step_seconds=3600.0)
        self.assertEqual(len(signals), 720)
        
        trajectory = run_simulation(signals, SystemConfig())
        self.assertAlmostEqual(trajectory.final_state.capacity_kwh, 10.0 * (1 - 0.02))
        self.assertAlmostEqual(trajectory.final_state.elapsed_days, 30.0)
        
        instant_cost = trajectory.column("instant_cost")
        expected = cumulative_trapezoid(instant_cost, signals.time / 3600.0, initial=0.0)
        np.testing.assert_allclose(trajectory.column("cumulative_cost"), expected, rtol=1e-9, atol=1e-9)
        self.assertAlmostEqual(trajectory.totals.cost, expected[-1])
        print(f"✓ One month simulated, cost {trajectory.totals.cost:.2f}")


class TestSimulationInvariants(unittest.TestCase):
    """Properties that hold at every step of any run."""
    
    @classmethod
    def setUpClass(cls):
        cls.signals = SignalGenerator(seed=5).week_profile()
        cls.trajectories = {
            policy: run_simulation(cls.signals, SystemConfig(dispatch=DispatchConfig(policy=policy)))
            for policy in ("energy_balance", "calendar", "grid_only")
        }
    
    def test_power_balance(self):
        for name, trajectory in self.trajectories.items():
            for record in trajectory:
                residual = (
                    record.solar_generation + record.grid_power_kw
                    - record.battery_power_kw - record.load_demand
                )
                self.assertAlmostEqual(residual, 0.0, places=9, msg=name)
                self.assertAlmostEqual(
                    record.grid_power_kw, record.grid_import_kw - record.grid_export_kw, places=12
                )
    
    def test_soc_bounds(self):
        for trajectory in self.trajectories.values():
            soc = trajectory.column("soc")
            self.assertTrue(np.all(soc >= 0.1))
            self.assertTrue(np.all(soc <= 0.95))
    
    def test_cost_monotonic(self):
        for trajectory in self.trajectories.values():
            cumulative = trajectory.column("cumulative_cost")
            self.assertTrue(np.all(np.diff(cumulative) >= 0))
            self.assertTrue(np.all(trajectory.column("instant_cost") >= 0))
    
    def test_export_income_monotonic(self):
        for trajectory in self.trajectories.values():
            self.assertTrue(np.all(np.diff(trajectory.column("cumulative_export_income")) >= 0))
    
    def test_degradation_monotonic(self):
        for trajectory in self.trajectories.values():
            self.assertTrue(np.all(np.diff(trajectory.column("capacity_kwh")) <= 0))
            self.assertTrue(np.all(np.diff(trajectory.column("efficiency")) <= 0))
            self.assertLess(trajectory.final_state.capacity_kwh, trajectory.initial_state.capacity_kwh)
    
    def test_grid_only_never_moves_battery(self):
        trajectory = self.trajectories["grid_only"]
        self.assertTrue(np.all(trajectory.column("battery_power_kw") == 0))
        self.assertEqual(trajectory.final_state.soc, 0.5)
    
    def test_deterministic(self):
        again = run_simulation(self.signals, SystemConfig())
        np.testing.assert_array_equal(
            again.column("soc"), self.trajectories["energy_balance"].column("soc")
        )
    
    def test_trajectory_is_immutable(self):
        trajectory = self.trajectories["energy_balance"]
        self.assertIsInstance(trajectory.records, tuple)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            trajectory[0].soc = 0.0
        with self.assertRaises(dataclasses.FrozenInstanceError):
            trajectory.totals = None
    
    def test_unavailable_grid_is_free(self):
        trajectory = self.trajectories["energy_balance"]
        for record in trajectory:
            if not record.grid_available:
                self.assertEqual(record.instant_cost, 0.0)
                self.assertIn(EventType.GRID_UNAVAILABLE, [event.type for event in record.events])


class TestIntegrationAndEvents(unittest.TestCase):
    
    def test_rectangular_integration(self):
        config = SystemConfig(simulation=SimulationConfig(integration="rectangular"))
        signals = constant_signals(8, 0.0, 2.0, 10.0)
        trajectory = run_simulation(signals, config)
        self.assertAlmostEqual(trajectory.totals.imported_kwh, 2.0 * 8 * 0.25)
        self.assertAlmostEqual(trajectory.totals.cost, 10.0 * 2.0 * 8 * 0.25)
    
    def test_trapezoidal_integration(self):
        trajectory = run_simulation(constant_signals(8, 0.0, 2.0, 10.0), SystemConfig())
        self.assertAlmostEqual(trajectory.totals.imported_kwh, 2.0 * 7 * 0.25)
        self.assertEqual(trajectory[0].cumulative_imported_kwh, 0.0)
    
    def test_truncation_event(self):
        simulator = Simulator(SystemConfig(), policy=GreedyChargePolicy())
        trajectory = simulator.run(constant_signals(2, 10.0, 1.0, 3.0))
        record = trajectory[0]
        
        self.assertTrue(record.truncated)
        self.assertAlmostEqual(record.requested_battery_kw, 8.0)
        self.assertAlmostEqual(record.battery_power_kw, 5.0)
        self.assertAlmostEqual(record.battery_shortfall_kw, 3.0)
        # Grid closes the balance against the realized battery power
        self.assertAlmostEqual(record.grid_power_kw, -9.0 + 5.0)
        
        event = record.events[0]
        self.assertEqual(event.type, EventType.CHARGE_TRUNCATED)
        self.assertEqual(event.limit, "rate")
        self.assertAlmostEqual(event.realized_kw, 5.0)
    
    def test_events_can_be_disabled(self):
        config = SystemConfig(simulation=SimulationConfig(record_events=False))
        simulator = Simulator(config, policy=GreedyChargePolicy())
        trajectory = simulator.run(constant_signals(2, 10.0, 1.0, 3.0, available=False))
        self.assertEqual(trajectory[0].events, ())
    
    def test_cancellation(self):
        calls = []
        
        def cancel_after_five():
            calls.append(1)
            return len(calls) > 5
        
        with self.assertRaises(SimulationCancelledError):
            Simulator(SystemConfig()).run(constant_signals(20, 1.0, 2.0, 10.0), cancel_check=cancel_after_five)
        self.assertEqual(len(calls), 6)
    
    def test_feed_in_can_be_disabled(self):
        config = SystemConfig(simulation=SimulationConfig(model_feed_in=False))
        trajectory = run_simulation(constant_signals(4, 5.0, 2.0, 18.0), config)
        self.assertGreater(trajectory.totals.exported_kwh, 0.0)
        self.assertEqual(trajectory.totals.export_income, 0.0)
    
    def test_storage_shifts_cheap_surplus(self):
        """Cheap midday surplus stored and used at the expensive evening peak."""
        signals = SignalSet(
            time=np.arange(8) * 900.0,
            solar_generation=[4.0] * 4 + [0.0] * 4,
            load_demand=[1.0] * 8,
            grid_price=[3.0] * 4 + [25.0] * 4,
            grid_available=[True] * 8
        )
        rectangular = SimulationConfig(integration="rectangular")
        with_battery = run_simulation(signals, SystemConfig(simulation=rectangular))
        without = run_simulation(
            signals,
            SystemConfig(dispatch=DispatchConfig(policy="grid_only"), simulation=rectangular)
        )

        self.assertAlmostEqual(with_battery.totals.net_cost, 0.0)
        self.assertAlmostEqual(without.totals.cost, 4 * 0.25 * 25.0)
        self.assertAlmostEqual(without.totals.export_income, 4 * 0.25 * 3.0 * 3.0 * 0.5)

    def test_schedule_must_follow_time_grid(self):
        signals = constant_signals(4, 5.0, 2.0, 3.0, dt=900.0)
        with self.assertRaises(InputValidationError):
            Simulator(SystemConfig()).run(signals, dt_schedule=[1800.0] * 4)
        with self.assertRaises(InputValidationError):
            optimal_dispatch(signals, dt_schedule=[1800.0] * 4)
    
    def test_explicit_final_interval(self):
        """Charged energy matches what the battery stored, last interval included."""
        signals = constant_signals(4, 5.0, 2.0, 3.0, dt=900.0)
        config = SystemConfig(
            degradation=DegradationConfig(
                capacity_fade_per_month=0.0,
                efficiency_fade_per_month=0.0,
                voltage_fade_per_month=0.0
            ),
            simulation=SimulationConfig(integration="rectangular")
        )
        trajectory = Simulator(config).run(signals, dt_schedule=[900.0, 900.0, 900.0, 1800.0])
        
        self.assertEqual(trajectory[3].dt, 1800.0)
        self.assertAlmostEqual(trajectory.totals.charged_kwh, 3.0 * 1.25)
        stored = (trajectory.final_state.soc - trajectory.initial_state.soc) * 10.0
        self.assertAlmostEqual(stored, trajectory.totals.charged_kwh * 0.95)
    
    def test_single_sample_integrates_held_interval(self):
        signals = constant_signals(1, 0.0, 2.0, 25.0)
        trajectory = Simulator(SystemConfig()).run(signals, dt_schedule=[900.0], initial_soc=0.1)
        
        self.assertEqual(trajectory.integration, "rectangular")
        self.assertAlmostEqual(trajectory[0].grid_import_kw, 2.0)
        self.assertAlmostEqual(trajectory.totals.imported_kwh, 0.5)
        self.assertAlmostEqual(trajectory.totals.cost, 12.5)
        self.assertAlmostEqual(trajectory[0].cumulative_cost, 12.5)


if __name__ == "__main__":
    unittest.main()
