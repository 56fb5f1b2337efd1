"""Reporting tools for completed simulation trajectories."""

from typing import Dict, Any, Optional, Union
from dataclasses import asdict
from datetime import datetime, timezone
import numpy as np
import pandas as pd
from scipy.integrate import cumulative_trapezoid

from .models import SECONDS_PER_DAY, SECONDS_PER_HOUR
from .simulation import SimulationTrajectory
from .exceptions import AnalysisError

CUMULATIVE_COLUMNS = [
    "cumulative_generated_kwh",
    "cumulative_consumed_kwh",
    "cumulative_charged_kwh",
    "cumulative_discharged_kwh",
    "cumulative_imported_kwh",
    "cumulative_exported_kwh",
    "cumulative_cost",
    "cumulative_export_income",
]


class TrajectoryAnalyzer:
    """Tabulates and summarises a simulation trajectory."""
    
    def __init__(self, trajectory: SimulationTrajectory):
        if len(trajectory) == 0:
            raise AnalysisError("Cannot analyse an empty trajectory")
        self.trajectory = trajectory
        self._frame: Optional[pd.DataFrame] = None
    
    def to_dataframe(self) -> pd.DataFrame:
        """One row per step, indexed by timestamp in seconds."""
        if self._frame is None:
            rows = []
            for record in self.trajectory:
                row = asdict(record)
                row["reason"] = record.reason.value
                row["events"] = ",".join(event.type.value for event in record.events)
                rows.append(row)
            frame = pd.DataFrame(rows).set_index("timestamp")
            frame["day"] = (frame.index // SECONDS_PER_DAY).astype(int)
            frame["week"] = (frame.index // (7 * SECONDS_PER_DAY)).astype(int)
            self._frame = frame
        return self._frame.copy()
    
    def integrate(self, column: str) -> np.ndarray:
        """Trapezoidal running integral of a per-hour rate column."""
        frame = self.to_dataframe()
        if column not in frame:
            raise AnalysisError(f"Unknown column: {column}")
        hours = frame.index.to_numpy(dtype=float) / SECONDS_PER_HOUR
        return cumulative_trapezoid(frame[column].to_numpy(dtype=float), hours, initial=0.0)
    
    def summary(self) -> Dict[str, Any]:
        """Headline numbers for the whole run."""
        try:
            frame = self.to_dataframe()
            totals = self.trajectory.totals
            initial = self.trajectory.initial_state
            final = self.trajectory.final_state
            available = frame["grid_available"].astype(bool)
            
            balance_error = (
                totals.generated_kwh + totals.imported_kwh + totals.discharged_kwh
                - totals.consumed_kwh - totals.exported_kwh - totals.charged_kwh
            )
            
            return {
                "policy": self.trajectory.policy_name,
                "steps": len(frame),
                "duration_days": float(frame.index[-1] - frame.index[0] + frame["dt"].iloc[-1]) / SECONDS_PER_DAY,
                "generated_kwh": totals.generated_kwh,
                "consumed_kwh": totals.consumed_kwh,
                "charged_kwh": totals.charged_kwh,
                "discharged_kwh": totals.discharged_kwh,
                "imported_kwh": totals.imported_kwh,
                "exported_kwh": totals.exported_kwh,
                "cost": totals.cost,
                "export_income": totals.export_income,
                "net_cost": totals.net_cost,
                "energy_balance_error_kwh": balance_error,
                "self_sufficiency": 1 - totals.imported_kwh / totals.consumed_kwh if totals.consumed_kwh else 1.0,
                "soc_min": float(frame["soc"].min()),
                "soc_max": float(frame["soc"].max()),
                "final_soc": final.soc,
                "average_available_price": float(frame.loc[available, "grid_price"].mean()) if available.any() else 0.0,
                "grid_availability": float(available.mean()),
                "equivalent_cycles": final.cycle_count,
                "average_efficiency": float(frame["efficiency"].mean()),
                "capacity_degradation": 1 - final.capacity_kwh / initial.capacity_kwh,
                "truncation_count": int(frame["truncated"].sum()),
                "fallback_count": int(frame["fallback_used"].sum()),
                "reason_counts": {reason: int(count) for reason, count in frame["reason"].value_counts().items()}
            }
        except (KeyError, ValueError, ZeroDivisionError) as e:
            raise AnalysisError(f"Trajectory summary failed: {str(e)}")
    
    def _period_summary(self, period: str) -> pd.DataFrame:
        frame = self.to_dataframe()
        grouped = frame.groupby(period)
        
        # Energy per period from the running integrals
        closing = grouped[CUMULATIVE_COLUMNS].last()
        per_period = closing.diff()
        per_period.iloc[0] = closing.iloc[0]
        per_period.columns = [name.replace("cumulative_", "") for name in CUMULATIVE_COLUMNS]
        
        per_period["net_cost"] = per_period["cost"] - per_period["export_income"]
        per_period["soc_min"] = grouped["soc"].min()
        per_period["soc_max"] = grouped["soc"].max()
        per_period["grid_availability"] = grouped["grid_available"].mean()
        per_period["truncations"] = grouped["truncated"].sum()
        per_period["fallbacks"] = grouped["fallback_used"].sum()
        return per_period
    
    def daily_summary(self) -> pd.DataFrame:
        """Energy, cost and SOC range per simulated day."""
        return self._period_summary("day")
    
    def weekly_summary(self) -> pd.DataFrame:
        """Energy, cost and SOC range per simulated week."""
        return self._period_summary("week")
    
    def hourly_profile(self) -> pd.DataFrame:
        """Average flows by hour of day."""
        frame = self.to_dataframe()
        columns = ["solar_generation", "load_demand", "battery_power_kw", "grid_power_kw", "soc", "grid_price"]
        return frame.groupby(frame["hour_of_day"].astype(int))[columns].mean()
    
    def compare_to(self, baseline: Union[SimulationTrajectory, 'TrajectoryAnalyzer']) -> Dict[str, float]:
        """Cost and grid savings against a baseline run on the same signals."""
        if isinstance(baseline, SimulationTrajectory):
            baseline = TrajectoryAnalyzer(baseline)
        
        ours = self.trajectory.totals
        theirs = baseline.trajectory.totals
        if len(self.trajectory) != len(baseline.trajectory):
            raise AnalysisError("Trajectories cover different numbers of steps")
        
        savings = theirs.net_cost - ours.net_cost
        return {
            "baseline_policy": baseline.trajectory.policy_name,
            "policy": self.trajectory.policy_name,
            "baseline_net_cost": theirs.net_cost,
            "net_cost": ours.net_cost,
            "savings": savings,
            "savings_pct": 100 * savings / theirs.net_cost if theirs.net_cost else 0.0,
            "import_reduction_kwh": theirs.imported_kwh - ours.imported_kwh
        }


def create_summary_report(
    trajectory: SimulationTrajectory,
    baseline: Optional[SimulationTrajectory] = None
) -> Dict[str, Any]:
    """Create a JSON-serialisable report for one run."""
    analyzer = TrajectoryAnalyzer(trajectory)
    daily = analyzer.daily_summary()
    
    report = {
        "summary": analyzer.summary(),
        "daily": {
            int(day): {name: float(value) for name, value in row.items()}
            for day, row in daily.iterrows()
        },
        "metadata": trajectory.metadata,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
    if baseline is not None:
        report["comparison"] = analyzer.compare_to(baseline)
    return report
