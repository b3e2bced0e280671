"""Test fixtures for reproducible simulation testing.

Provides:
- Day-ahead (hourly) and real-time (15-minute) systems over the same devices
- A scripted solver backend that assigns fixed values instead of solving,
  so sequencing, feed-forward and storage can be tested without a solver
- Decision models and two-stage sequences built from them
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path

import pyomo.environ as pyo
import pytest
from pyomo.opt import SolverFactory

from prodsim.domain.models import (
    DeviceCategory,
    DeviceFormulation,
    PowerLoad,
    RenewableDispatch,
    ThermalStandard,
    VariableType,
)
from prodsim.errors import InfeasibleError
from prodsim.generators import build_test_system
from prodsim.optimization import DecisionModel, SolverConfig, SolverOutcome
from prodsim.simulation import (
    SemiContinuousFeedforward,
    Simulation,
    SimulationModels,
    SimulationSequence,
)
from prodsim.system import PowerSystem
from prodsim.templates import (
    NetworkModel,
    template_economic_dispatch,
    template_unit_commitment,
)


def _highs_available() -> bool:
    try:
        return bool(SolverFactory("appsi_highs").available(exception_flag=False))
    except Exception:
        return False


HIGHS_AVAILABLE = _highs_available()

requires_highs = pytest.mark.skipif(
    not HIGHS_AVAILABLE, reason="HiGHS (appsi_highs) solver not available"
)


# =============================================================================
# Scripted Solver
# =============================================================================


class ScriptedSolver:
    """Solver backend that writes fixed values into every variable.

    Variables named ``OnVariable__*`` are set to ``on_value``; every other
    variable to ``value``. Calls listed in ``fail_at`` as
    ``(model name, call number)`` raise ``InfeasibleError``.
    """

    def __init__(
        self,
        value: float = 10.0,
        on_value: float = 1.0,
        fail_at: set[tuple[str, int]] | None = None,
    ) -> None:
        self.value = value
        self.on_value = on_value
        self.fail_at = fail_at or set()
        self.calls: dict[str, int] = defaultdict(int)
        self.log: list[str] = []

    def solve(
        self, model: pyo.ConcreteModel, config: SolverConfig, load_duals: bool
    ) -> SolverOutcome:
        self.calls[model.name] += 1
        self.log.append(model.name)
        if (model.name, self.calls[model.name]) in self.fail_at:
            raise InfeasibleError(f"{model.name} is infeasible (scripted)", "infeasible")

        for var in model.component_objects(pyo.Var, active=True):
            value = self.on_value if var.name.startswith("OnVariable__") else self.value
            for index in var:
                var[index].set_value(value, skip_validation=True)
        return SolverOutcome(
            solver_status="ok",
            termination_condition="optimal",
            objective_value=float(pyo.value(model.objective)),
            solve_time_seconds=0.001,
        )


@pytest.fixture
def scripted_solver() -> ScriptedSolver:
    """Scripted solver that never fails."""
    return ScriptedSolver()


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def base_timestamp() -> datetime:
    """Standard simulation start (midnight, winter day)."""
    return datetime(2024, 1, 1, 0, 0, 0)


# =============================================================================
# System Fixtures
# =============================================================================


def make_da_system(
    initial_time: datetime, days: int = 4, horizon: int = 48
) -> PowerSystem:
    """Hourly system, windows of ``horizon`` hours every 24 hours."""
    system = build_test_system("DA", initial_time, days * 24, timedelta(hours=1), seed=7)
    system.transform_single_time_series(horizon, timedelta(hours=24))
    return system


def make_rt_system(
    initial_time: datetime,
    days: int = 4,
    horizon: int = 28,
    interval: timedelta = timedelta(hours=6),
) -> PowerSystem:
    """15-minute system, windows of ``horizon`` periods every ``interval``."""
    system = build_test_system(
        "RT", initial_time, days * 96, timedelta(minutes=15), seed=7
    )
    system.transform_single_time_series(horizon, interval)
    return system


@pytest.fixture
def da_system(base_timestamp: datetime) -> PowerSystem:
    """Four days of hourly data, 48-hour windows advancing 24 hours."""
    return make_da_system(base_timestamp)


@pytest.fixture
def rt_system(base_timestamp: datetime) -> PowerSystem:
    """Four days of 15-minute data, 7-hour windows advancing 6 hours."""
    return make_rt_system(base_timestamp)


@pytest.fixture
def small_system(base_timestamp: datetime) -> PowerSystem:
    """Two thermal units, one wind plant and one load over 12 hours."""
    system = PowerSystem("small", base_timestamp, timedelta(hours=1))
    system.add_component(
        ThermalStandard(
            name="Base",
            min_active_power=20.0,
            max_active_power=100.0,
            variable_cost=20.0,
            status=True,
            active_power=50.0,
            time_at_status=10.0,
        )
    )
    system.add_component(
        ThermalStandard(
            name="Peaker",
            min_active_power=10.0,
            max_active_power=60.0,
            variable_cost=80.0,
            start_up_cost=100.0,
        )
    )
    system.add_component(RenewableDispatch(name="Wind", rating=50.0))
    system.add_component(PowerLoad(name="Demand", max_active_power=140.0))
    system.add_time_series("Wind", [0.2, 0.4, 0.6, 0.8, 1.0, 0.8] * 2)
    system.add_time_series("Demand", [0.5, 0.6, 0.7, 0.9, 1.0, 0.8] * 2)
    system.transform_single_time_series(6, timedelta(hours=3))
    return system


# =============================================================================
# Decision Model Fixtures
# =============================================================================


@pytest.fixture
def uc_model(da_system: PowerSystem, scripted_solver: ScriptedSolver) -> DecisionModel:
    """Standard unit commitment on the day-ahead system."""
    template = template_unit_commitment()
    template.set_device_model(
        DeviceCategory.THERMAL_STANDARD,
        DeviceFormulation.THERMAL_STANDARD_UNIT_COMMITMENT,
    )
    return DecisionModel(template, da_system, name="UC", solver=scripted_solver)


@pytest.fixture
def ed_model(rt_system: PowerSystem, scripted_solver: ScriptedSolver) -> DecisionModel:
    """Economic dispatch with balance slacks on the real-time system."""
    template = template_economic_dispatch(NetworkModel(use_slacks=True))
    return DecisionModel(template, rt_system, name="ED", solver=scripted_solver)


def semicontinuous_thermal() -> SemiContinuousFeedforward:
    return SemiContinuousFeedforward(
        component_type=DeviceCategory.THERMAL_STANDARD,
        source=VariableType.ON,
        affected_values=(VariableType.ACTIVE_POWER,),
    )


@pytest.fixture
def uc_ed_simulation(
    uc_model: DecisionModel, ed_model: DecisionModel, tmp_path: Path
) -> Simulation:
    """Two-stage UC -> ED simulation over two steps."""
    models = SimulationModels(decision_models=[uc_model, ed_model])
    sequence = SimulationSequence(
        models=models, feedforwards={"ED": [semicontinuous_thermal()]}
    )
    return Simulation(
        name="uc-ed",
        steps=2,
        models=models,
        sequence=sequence,
        simulation_folder=tmp_path,
    )
