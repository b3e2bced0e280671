"""Decision model: one recurring optimization problem.

A ``DecisionModel`` binds a template to a data source and a solver. It is
built into an ``OptimizationContainer`` for a time window, solved into a
``ResultSnapshot`` and advanced by its interval, once per execution.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Protocol

from prodsim.domain.models import (
    DeviceCategory,
    DeviceInitialState,
    ThermalStandard,
)
from prodsim.domain.timewindow import TimeWindow
from prodsim.errors import BuildError
from prodsim.optimization.container import OptimizationContainer
from prodsim.optimization.formulations import FORMULATION_BUILDERS, build_copper_plate
from prodsim.optimization.snapshot import ResultSnapshot
from prodsim.optimization.solver import PyomoSolver, SolverBackend, SolverConfig
from prodsim.system.power_system import PowerSystem
from prodsim.templates.template import ModelTemplate, TemplateInstance

logger = logging.getLogger(__name__)


class ContainerExtension(Protocol):
    """Something that adds components to a program while it is built."""

    def add_to_container(
        self, container: OptimizationContainer, system: PowerSystem
    ) -> None: ...


class DecisionModel:
    """A single optimization problem bound to a template, system and solver.

    Horizon and interval come from the system's forecast structure.
    """

    def __init__(
        self,
        template: ModelTemplate,
        system: PowerSystem,
        name: str,
        optimizer: SolverConfig | None = None,
        solver: SolverBackend | None = None,
    ) -> None:
        """Initialize the decision model.

        Args:
            template: Template mapping device categories to formulations.
            system: Data source.
            name: Unique stage name within a sequence.
            optimizer: Solver configuration. Uses defaults if None.
            solver: Solver backend. Uses Pyomo's SolverFactory if None.

        Raises:
            ValueError: If the name is empty or the solver configuration is invalid.
        """
        if not name or not name.strip():
            raise ValueError("DecisionModel name must be non-empty")
        self.name = name
        self.template = template
        self.system = system
        self.optimizer = optimizer or SolverConfig()
        if not self.optimizer.validate():
            raise ValueError(f"Invalid solver configuration: {self.optimizer}")
        self.solver: SolverBackend = solver or PyomoSolver()
        self._instance: TemplateInstance | None = None
        self._window: TimeWindow | None = None

    def __repr__(self) -> str:
        return f"DecisionModel(name={self.name!r}, system={self.system.name!r})"

    # =================================================================
    # Time structure
    # =================================================================

    @property
    def resolution(self) -> timedelta:
        return self.system.resolution

    @property
    def horizon(self) -> int:
        if self.system.horizon is None:
            raise RuntimeError(
                f"System '{self.system.name}' of {self.name} has no forecast "
                "structure. Call transform_single_time_series() first."
            )
        return self.system.horizon

    @property
    def interval(self) -> timedelta:
        if self.system.interval is None:
            raise RuntimeError(
                f"System '{self.system.name}' of {self.name} has no forecast "
                "structure. Call transform_single_time_series() first."
            )
        return self.system.interval

    @property
    def window(self) -> TimeWindow | None:
        """Window the next build covers."""
        return self._window

    def initialize_window(self, initial_time: datetime | None = None) -> TimeWindow:
        self._window = TimeWindow(
            start=initial_time or self.system.initial_time,
            resolution=self.resolution,
            horizon=self.horizon,
            interval=self.interval,
        )
        return self._window

    def advance(self, executions: int = 1) -> TimeWindow:
        """Shift the bound window forward by ``executions`` intervals."""
        if self._window is None:
            raise RuntimeError(f"{self.name} has no window. Call build() first.")
        self._window = self._window.advance(executions)
        return self._window

    # =================================================================
    # Template and initial conditions
    # =================================================================

    def instantiate_template(self) -> TemplateInstance:
        """Validate and freeze the template for this model's system."""
        if self._instance is None:
            self._instance = self.template.instantiate(self.system)
        return self._instance

    @property
    def template_instance(self) -> TemplateInstance | None:
        return self._instance

    def thermal_units(self) -> list[ThermalStandard]:
        return [
            d
            for d in self.system.get_components(DeviceCategory.THERMAL_STANDARD)
            if isinstance(d, ThermalStandard)
        ]

    def default_initial_conditions(self) -> dict[str, DeviceInitialState]:
        """Initial states taken from the data source."""
        return {
            unit.name: DeviceInitialState(
                status=unit.status,
                active_power=unit.active_power,
                time_at_status=unit.time_at_status,
            )
            for unit in self.thermal_units()
        }

    # =================================================================
    # Build / solve
    # =================================================================

    def build(
        self,
        window: TimeWindow | None = None,
        initial_conditions: dict[str, DeviceInitialState] | None = None,
        feedforwards: Iterable[ContainerExtension] = (),
    ) -> OptimizationContainer:
        """Translate template + data for a window into a Pyomo program.

        Args:
            window: Window to build. Defaults to the bound window.
            initial_conditions: Thermal states before the window. Defaults to
                the data source values.
            feedforwards: Rules adding parameters and constraints to the program.

        Returns:
            Container holding the built model.

        Raises:
            BuildError: If the window is outside the data, the resolution does
                not match, or an initial condition is missing.
        """
        instance = self.instantiate_template()
        if window is None:
            window = self._window or self.initialize_window()
        else:
            self._window = window
        if window.resolution != self.resolution:
            raise BuildError(
                f"{self.name}: window resolution {window.resolution} does not "
                f"match system resolution {self.resolution}"
            )
        if window.start < self.system.initial_time or window.end > self.system.data_end:
            raise BuildError(
                f"{self.name}: window {window.start} - {window.end} exceeds the "
                f"available data {self.system.initial_time} - {self.system.data_end}"
            )

        if initial_conditions is None:
            initial_conditions = self.default_initial_conditions()
        missing = [u.name for u in self.thermal_units() if u.name not in initial_conditions]
        if missing:
            raise BuildError(
                f"{self.name}: missing initial conditions for {', '.join(missing)}"
            )

        container = OptimizationContainer(
            name=self.name,
            window=window,
            template=instance,
            initial_conditions=dict(initial_conditions),
        )
        for category, device_model in instance.device_models.items():
            devices = self.system.get_components(category)
            FORMULATION_BUILDERS[device_model.formulation](
                container, self.system, devices
            )
        for feedforward in feedforwards:
            feedforward.add_to_container(container, self.system)
        build_copper_plate(container, instance.network_model)
        container.finalize()

        logger.debug(
            "Built %s for %s (%d periods, %d variable blocks)",
            self.name,
            window.start,
            window.horizon,
            len(container.variables),
        )
        return container

    def solve(self, container: OptimizationContainer) -> ResultSnapshot:
        """Solve a built program.

        Raises:
            InfeasibleError: If the solver proves infeasibility.
            SolverError: For any other unacceptable termination.
        """
        if not container.is_finalized:
            raise RuntimeError("Model not built. Call build() first.")
        load_duals = bool(container.duals) and not container.template.has_integer_variables
        outcome = self.solver.solve(container.model, self.optimizer, load_duals)
        logger.debug(
            "Solved %s for %s: %s, objective=%s",
            self.name,
            container.window.start,
            outcome.termination_condition,
            outcome.objective_value,
        )
        return ResultSnapshot(
            stage=self.name,
            window=container.window,
            termination_condition=outcome.termination_condition,
            solver_status=outcome.solver_status,
            objective_value=outcome.objective_value,
            solve_time_seconds=outcome.solve_time_seconds,
            variables=container.variable_values(),
            parameters=container.parameter_values(),
            duals=container.dual_values(),
            initial_conditions=dict(container.initial_conditions),
        )

    def optimize(self, window: TimeWindow | None = None) -> ResultSnapshot:
        """Build and solve in one step with default initial conditions."""
        return self.solve(self.build(window))
