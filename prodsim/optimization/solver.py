"""Solver capability used by decision models.

``PyomoSolver`` hands a built Pyomo model to ``SolverFactory`` and maps the
termination condition onto the engine's error taxonomy. Any object with
the same ``solve`` signature can stand in for it (see ``SolverBackend``).
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Protocol

import pyomo.environ as pyo
from pyomo.common.errors import ApplicationError
from pyomo.opt import SolverFactory, SolverStatus, TerminationCondition

from prodsim.errors import InfeasibleError, SolverError

logger = logging.getLogger(__name__)

DEFAULT_SOLVER = "appsi_highs"

ACCEPTED_TERMINATIONS = frozenset(
    {
        TerminationCondition.optimal,
        TerminationCondition.locallyOptimal,
        TerminationCondition.globallyOptimal,
        TerminationCondition.feasible,
    }
)

INFEASIBLE_TERMINATIONS = frozenset(
    {
        TerminationCondition.infeasible,
        TerminationCondition.infeasibleOrUnbounded,
    }
)


def _default_solver_name() -> str:
    return os.getenv("PRODSIM_SOLVER", DEFAULT_SOLVER)


@dataclass
class SolverConfig:
    """Configuration for the solver."""

    solver_name: str = field(default_factory=_default_solver_name)
    time_limit_seconds: float = 300.0
    mip_gap: float = 0.01  # relative optimality gap
    tee: bool = False  # stream solver output

    def validate(self) -> bool:
        """Validate configuration."""
        return self.time_limit_seconds > 0 and 0.0 <= self.mip_gap < 1.0


@dataclass
class SolverOutcome:
    """What the solver reported for one solve."""

    solver_status: str
    termination_condition: str
    objective_value: float | None
    solve_time_seconds: float


class SolverBackend(Protocol):
    """Anything that can solve a built Pyomo model in place."""

    def solve(
        self, model: pyo.ConcreteModel, config: SolverConfig, load_duals: bool
    ) -> SolverOutcome:
        """Solve ``model`` and load the solution into it.

        Raises:
            InfeasibleError: If the problem is infeasible.
            SolverError: For any other unacceptable termination.
        """
        ...


class PyomoSolver:
    """Solver backend built on Pyomo's ``SolverFactory``."""

    def _configure(self, solver: object, config: SolverConfig) -> None:
        options = solver.options  # type: ignore[attr-defined]
        name = config.solver_name
        if name in ["gurobi", "gurobi_direct", "cplex", "cplex_direct"]:
            options["TimeLimit"] = config.time_limit_seconds
            options["MIPGap"] = config.mip_gap
        elif name == "glpk":
            options["tmlim"] = int(config.time_limit_seconds)
            options["mipgap"] = config.mip_gap
        elif name == "cbc":
            options["seconds"] = config.time_limit_seconds
            options["ratioGap"] = config.mip_gap
        elif name in ["appsi_highs", "highs"]:
            options["time_limit"] = config.time_limit_seconds
            options["mip_rel_gap"] = config.mip_gap

    def solve(
        self, model: pyo.ConcreteModel, config: SolverConfig, load_duals: bool
    ) -> SolverOutcome:
        solver = SolverFactory(config.solver_name)
        if solver is None or not solver.available(exception_flag=False):
            raise SolverError(
                f"Solver '{config.solver_name}' not available", "unavailable"
            )
        self._configure(solver, config)

        if load_duals and model.component("dual") is None:
            model.dual = pyo.Suffix(direction=pyo.Suffix.IMPORT)

        start_time = time.perf_counter()
        try:
            results = solver.solve(model, tee=config.tee, load_solutions=False)
        except (ApplicationError, RuntimeError, ValueError) as exc:
            raise SolverError(
                f"Solver '{config.solver_name}' failed on {model.name}: {exc}"
            ) from exc
        solve_time = time.perf_counter() - start_time

        status = results.solver.status
        termination = results.solver.termination_condition
        logger.debug(
            "%s: status=%s termination=%s in %.3fs",
            model.name,
            status,
            termination,
            solve_time,
        )

        if termination in INFEASIBLE_TERMINATIONS:
            raise InfeasibleError(
                f"{model.name} is infeasible ({termination})", str(termination)
            )
        if termination not in ACCEPTED_TERMINATIONS or status not in (
            SolverStatus.ok,
            SolverStatus.warning,
        ):
            raise SolverError(
                f"{model.name} terminated with status={status}, "
                f"termination={termination}",
                str(termination),
            )

        model.solutions.load_from(results)
        return SolverOutcome(
            solver_status=str(status),
            termination_condition=str(termination),
            objective_value=pyo.value(model.objective),
            solve_time_seconds=solve_time,
        )
