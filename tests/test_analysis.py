"""
Tests for trajectory reporting.
"""

import sys
import json
from pathlib import Path
import unittest
import numpy as np

# Add the src directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pvbess import SystemConfig, run_simulation
from pvbess.analysis import TrajectoryAnalyzer, create_summary_report
from pvbess.config import DispatchConfig
from pvbess.exceptions import AnalysisError
from pvbess.signals import SignalGenerator


class TestTrajectoryAnalyzer(unittest.TestCase):
    """Test suite for TrajectoryAnalyzer."""
    
    @classmethod
    def setUpClass(cls):
        signals = SignalGenerator(seed=21).week_profile()
        cls.trajectory = run_simulation(signals, SystemConfig())
        cls.baseline = run_simulation(signals, SystemConfig(dispatch=DispatchConfig(policy="grid_only")))
        cls.analyzer = TrajectoryAnalyzer(cls.trajectory)
    
    def test_dataframe(self):
        frame = self.analyzer.to_dataframe()
        self.assertEqual(len(frame), 672)
        self.assertEqual(frame.index.name, "timestamp")
        self.assertIn("soc", frame.columns)
        self.assertIn("cumulative_cost", frame.columns)
        self.assertEqual(sorted(frame["day"].unique()), list(range(7)))
        self.assertIsInstance(frame["reason"].iloc[0], str)
    
    def test_summary(self):
        summary = self.analyzer.summary()
        totals = self.trajectory.totals
        
        self.assertEqual(summary["steps"], 672)
        self.assertAlmostEqual(summary["duration_days"], 7.0)
        self.assertAlmostEqual(summary["cost"], totals.cost)
        self.assertAlmostEqual(summary["net_cost"], totals.cost - totals.export_income)
        self.assertAlmostEqual(summary["energy_balance_error_kwh"], 0.0, places=6)
        self.assertGreaterEqual(summary["soc_min"], 0.1)
        self.assertLessEqual(summary["soc_max"], 0.95)
        self.assertGreater(summary["capacity_degradation"], 0.0)
        self.assertEqual(sum(summary["reason_counts"].values()), 672)
        self.assertTrue(0.0 <= summary["grid_availability"] <= 1.0)
        print(f"✓ Summary: net cost {summary['net_cost']:.2f}, "
              f"self-sufficiency {summary['self_sufficiency']:.1%}")
    
    def test_daily_summary_adds_up(self):
        daily = self.analyzer.daily_summary()
        self.assertEqual(len(daily), 7)
        self.assertAlmostEqual(daily["cost"].sum(), self.trajectory.totals.cost)
        self.assertAlmostEqual(daily["imported_kwh"].sum(), self.trajectory.totals.imported_kwh)
        self.assertTrue(np.all(daily["cost"] >= 0))
    
    def test_weekly_summary(self):
        weekly = self.analyzer.weekly_summary()
        self.assertEqual(len(weekly), 1)
        self.assertAlmostEqual(weekly["net_cost"].iloc[0], self.trajectory.totals.net_cost)
    
    def test_hourly_profile(self):
        profile = self.analyzer.hourly_profile()
        self.assertEqual(len(profile), 24)
        self.assertAlmostEqual(profile.loc[0, "solar_generation"], 0.0)
    
    def test_integrate_matches_trajectory(self):
        cost = self.analyzer.integrate("instant_cost")
        self.assertAlmostEqual(cost[-1], self.trajectory.totals.cost)
        with self.assertRaises(AnalysisError):
            self.analyzer.integrate("happiness")
    
    def test_compare_to_baseline(self):
        comparison = self.analyzer.compare_to(self.baseline)
        self.assertEqual(comparison["baseline_policy"], "grid_only")
        self.assertEqual(comparison["policy"], "energy_balance")
        self.assertAlmostEqual(
            comparison["savings"],
            self.baseline.totals.net_cost - self.trajectory.totals.net_cost
        )
    
    def test_report_is_serialisable(self):
        report = create_summary_report(self.trajectory, baseline=self.baseline)
        self.assertIn("comparison", report)
        self.assertEqual(set(report["daily"]), set(range(7)))
        json.dumps(report)


if __name__ == "__main__":
    unittest.main()
