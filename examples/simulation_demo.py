"""
Monthly simulation example for the PV + battery dispatch simulator.
This example demonstrates:
- Configuring the battery and dispatch thresholds
- Generating a month of synthetic PV, load and tariff signals
- Comparing rule, calendar and learned policies against a grid-only baseline
- Bounding the result with the perfect-foresight benchmark
"""

from pathlib import Path

from pvbess import SystemConfig, Simulator
from pvbess.config import BatteryConfig, DispatchConfig, MonitoringConfig
from pvbess.dispatch import CalendarAwarePolicy, FallbackDispatchPolicy, train_approximator
from pvbess.analysis import TrajectoryAnalyzer, create_summary_report
from pvbess.benchmark import optimal_dispatch
from pvbess.signals import SignalGenerator
from pvbess.simulation import training_observations


def main():
    config = SystemConfig(
        name="Monthly Demo",
        battery=BatteryConfig(capacity_kwh=13.5, max_charge_rate_kw=5.0, max_discharge_rate_kw=5.0),
        dispatch=DispatchConfig(high_price_threshold=18.0, low_price_threshold=6.0),
        monitoring=MonitoringConfig(log_level="INFO")
    )
    
    print("Generating a month of hourly signals...")
    generator = SignalGenerator(seed=42)
    signals = generator.month_profile()
    print(f"  Samples: {len(signals)}")
    print(f"  Grid available: {signals.availability.mean():.1%} of the time")
    
    # Rule policies
    trajectories = {}
    for policy in ("grid_only", "energy_balance", "calendar"):
        policy_config = config.merge({"dispatch": {"policy": policy}})
        trajectories[policy] = Simulator(policy_config).run(signals)
    
    # Learned policy trained on a different month, with the calendar rules as safety net
    rules = CalendarAwarePolicy(config.dispatch, config.battery)
    training = SignalGenerator(seed=7).month_profile()
    approximator = train_approximator(training_observations(training, config), rules)
    learned = FallbackDispatchPolicy(approximator, rules)
    trajectories["fuzzy"] = Simulator(config, policy=learned).run(signals)
    
    baseline = trajectories["grid_only"]
    print("\nPolicy comparison:")
    for name, trajectory in trajectories.items():
        summary = TrajectoryAnalyzer(trajectory).summary()
        comparison = TrajectoryAnalyzer(trajectory).compare_to(baseline)
        print(f"  {name:15s} net cost {summary['net_cost']:9.2f}  "
              f"savings {comparison['savings_pct']:6.1f}%  "
              f"SOC {summary['soc_min']:.2f}-{summary['soc_max']:.2f}  "
              f"fallbacks {summary['fallback_count']}")
    
    print("\nFallback statistics for the learned policy:")
    stats = learned.get_performance_stats()
    print(f"  {stats['fallbacks']} of {stats['evaluations']} steps ({stats['fallback_rate']:.1%})")
    
    # Perfect foresight over the first two days
    horizon = SignalGenerator(seed=42).generate(2, step_seconds=3600.0)
    bound = optimal_dispatch(horizon, config)
    print(f"\nTwo-day optimal net cost: {bound.net_cost:.2f}")
    
    daily = TrajectoryAnalyzer(trajectories["energy_balance"]).daily_summary()
    print("\nFirst week, energy balance policy:")
    print(daily[["imported_kwh", "exported_kwh", "net_cost", "soc_min", "soc_max"]].head(7).round(2))
    
    report = create_summary_report(trajectories["energy_balance"], baseline=baseline)
    print(f"\nCapacity after one month: {report['summary']['capacity_degradation']:.1%} faded")
    
    config.save_to_file(Path("monthly_demo.yaml"))
    print("Configuration saved to monthly_demo.yaml")


if __name__ == "__main__":
    main()
