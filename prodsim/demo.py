"""Demo: day-ahead unit commitment followed by real-time economic dispatch.

Builds two synthetic systems over the same devices, chains a day-ahead
unit commitment ("UC") and a real-time economic dispatch ("ED") with a
semi-continuous feed-forward of the commitment decisions, runs the
simulation in a temporary folder and prints a short summary.

Usage:
    python -m prodsim.demo

Or in Python:
    from prodsim.demo import run_sequential_demo
    results = run_sequential_demo()
"""

from __future__ import annotations

import logging
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import pandas as pd

from prodsim.domain.models import (
    DeviceCategory,
    DeviceFormulation,
    VariableType,
    make_key,
)
from prodsim.generators import build_day_ahead_system, build_real_time_system
from prodsim.optimization import DecisionModel, SolverConfig
from prodsim.results import SimulationResults
from prodsim.simulation import (
    ExecutionOptions,
    FailurePolicy,
    InterProblemChronology,
    SemiContinuousFeedforward,
    Simulation,
    SimulationModels,
    SimulationSequence,
)
from prodsim.templates import (
    NetworkModel,
    template_economic_dispatch,
    template_unit_commitment,
)

logger = logging.getLogger(__name__)

THERMAL_POWER = make_key(VariableType.ACTIVE_POWER, DeviceCategory.THERMAL_STANDARD)
THERMAL_STATUS = make_key(VariableType.ON, DeviceCategory.THERMAL_STANDARD)


@dataclass
class DemoConfig:
    """Configuration for the demo simulation.

    Attributes:
        steps: Number of simulated days.
        initial_time: Start of the simulation.
        rt_horizon_periods: Five-minute periods in each real-time problem.
        rt_interval_minutes: Minutes between real-time problems.
        forecast_noise: Per-unit noise added to the real-time forecasts.
        solver_name: Pyomo solver name. Uses the default if None.
        seed: Random seed for reproducibility.
    """

    steps: int = 2
    initial_time: datetime = datetime(2024, 1, 1)
    rt_horizon_periods: int = 12
    rt_interval_minutes: int = 60
    forecast_noise: float = 0.02
    solver_name: str | None = None
    seed: int = 42


@dataclass
class DemoResults:
    """Results from running the demo."""

    exit_code: int
    results_dir: Path
    uc_power: pd.DataFrame
    uc_status: pd.DataFrame
    ed_power: pd.DataFrame
    uc_stats: pd.DataFrame
    ed_stats: pd.DataFrame

    def print_summary(self) -> None:
        """Print formatted summary to console."""
        print("\n" + "=" * 60)
        print("Sequential UC -> ED Simulation Results")
        print("=" * 60)
        print(f"\nResults stored in {self.results_dir}")

        print("\nUnit commitment (UC):")
        print(f"   • Executions: {len(self.uc_stats)}")
        print(f"   • Total objective: ${self.uc_stats['objective_value'].sum():,.0f}")
        print(f"   • Committed unit-hours: {self.uc_status.sum().sum():,.0f}")

        print("\nEconomic dispatch (ED):")
        print(f"   • Executions: {len(self.ed_stats)}")
        print(f"   • Total objective: ${self.ed_stats['objective_value'].sum():,.0f}")
        print(f"   • Realized periods: {len(self.ed_power)}")
        print(f"   • Mean thermal output: {self.ed_power.sum(axis=1).mean():,.1f} MW")

        print(f"\nExit code: {self.exit_code}")
        print("=" * 60 + "\n")


def build_demo_simulation(config: DemoConfig, simulation_folder: Path) -> Simulation:
    """Assemble the UC -> ED simulation."""
    days = config.steps + 2
    solver = SolverConfig(solver_name=config.solver_name) if config.solver_name else None

    uc_system = build_day_ahead_system(config.initial_time, days=days, seed=config.seed)
    ed_system = build_real_time_system(
        config.initial_time,
        days=days,
        horizon_periods=config.rt_horizon_periods,
        interval=timedelta(minutes=config.rt_interval_minutes),
        noise_std=config.forecast_noise,
        seed=config.seed,
    )

    uc_template = template_unit_commitment()
    uc_template.set_device_model(
        DeviceCategory.THERMAL_STANDARD,
        DeviceFormulation.THERMAL_STANDARD_UNIT_COMMITMENT,
    )
    ed_template = template_economic_dispatch(NetworkModel(use_slacks=True))

    models = SimulationModels(
        decision_models=[
            DecisionModel(uc_template, uc_system, name="UC", optimizer=solver),
            DecisionModel(ed_template, ed_system, name="ED", optimizer=solver),
        ]
    )
    feedforwards = {
        "ED": [
            SemiContinuousFeedforward(
                component_type=DeviceCategory.THERMAL_STANDARD,
                source=VariableType.ON,
                affected_values=(VariableType.ACTIVE_POWER,),
            ),
        ],
    }
    sequence = SimulationSequence(
        models=models,
        feedforwards=feedforwards,
        ini_cond_chronology=InterProblemChronology(),
    )
    return Simulation(
        name="uc-ed",
        steps=config.steps,
        models=models,
        sequence=sequence,
        simulation_folder=simulation_folder,
    )


def run_sequential_demo(
    config: DemoConfig | None = None, simulation_folder: str | Path | None = None
) -> DemoResults:
    """Run the UC -> ED demo and read back its results.

    Args:
        config: Demo configuration. Uses defaults if None.
        simulation_folder: Where to write results. A temporary folder if None.

    Returns:
        DemoResults with realized values and solver statistics.
    """
    config = config or DemoConfig()
    folder = Path(simulation_folder or tempfile.mkdtemp(prefix="prodsim-"))

    sim = build_demo_simulation(config, folder)
    results_dir = sim.build()
    exit_code = sim.execute(
        ExecutionOptions(failure_policy=FailurePolicy.SKIP_AND_CONTINUE)
    )
    sim.close()

    results = SimulationResults(results_dir)
    uc = results.get_problem_results("UC")
    ed = results.get_problem_results("ED")
    demo = DemoResults(
        exit_code=exit_code,
        results_dir=results_dir,
        uc_power=uc.read_realized_variable(THERMAL_POWER),
        uc_status=uc.read_realized_variable(THERMAL_STATUS),
        ed_power=ed.read_realized_variable(THERMAL_POWER),
        uc_stats=uc.read_optimizer_stats(),
        ed_stats=ed.read_optimizer_stats(),
    )
    results.close()
    return demo


def main() -> None:
    """Main entry point for running the demo from the command line."""
    import argparse

    parser = argparse.ArgumentParser(description="Sequential UC -> ED simulation demo")
    parser.add_argument(
        "--steps",
        type=int,
        default=2,
        help="Number of simulated days (default: 2)",
    )
    parser.add_argument(
        "--solver",
        type=str,
        default=None,
        help="Pyomo solver name (default: PRODSIM_SOLVER or appsi_highs)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Simulation folder (default: a temporary directory)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log per-execution details",
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = DemoConfig(steps=args.steps, solver_name=args.solver)
    results = run_sequential_demo(config, args.output)
    results.print_summary()
    sys.exit(results.exit_code)


if __name__ == "__main__":
    main()
