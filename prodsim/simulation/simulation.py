"""Simulation driver.

A ``Simulation`` validates a sequence, creates a run directory with a
results store and then executes the stages step by step. Within a step,
stages run in the sequence's execution order and each stage solves
``step_length / interval`` times, advancing its window after every
execution. Every execution is written to the store as soon as it ends.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from prodsim.errors import (
    BuildError,
    FeedForwardBindingError,
    MissingFormulationError,
    SolverError,
    ValidationError,
)
from prodsim.optimization.container import OptimizationContainer
from prodsim.optimization.decision_model import DecisionModel
from prodsim.results.results import SimulationResults
from prodsim.results.store import ResultsStore
from prodsim.simulation.chronology import (
    SolvedExecution,
    initial_conditions_for,
    resolve_initial_condition,
)
from prodsim.simulation.sequence import SimulationModels, SimulationSequence

logger = logging.getLogger(__name__)

# Errors of a single execution handled by the failure policy
EXECUTION_ERRORS = (BuildError, FeedForwardBindingError, SolverError)


class SimulationState(str, Enum):
    """Lifecycle of a simulation."""

    CREATED = "created"
    BUILT = "built"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class FailurePolicy(str, Enum):
    """What to do when a stage execution fails."""

    ABORT = "abort"
    SKIP_AND_CONTINUE = "skip_and_continue"


@dataclass
class ExecutionOptions:
    """Configuration for ``Simulation.execute``."""

    failure_policy: FailurePolicy = FailurePolicy.ABORT
    log_progress: bool = True  # INFO message per step

    def validate(self) -> bool:
        """Validate configuration."""
        return isinstance(self.failure_policy, FailurePolicy)


def _next_run_number(base: Path) -> int:
    if not base.exists():
        return 1
    numbers = [int(p.name) for p in base.iterdir() if p.is_dir() and p.name.isdigit()]
    return max(numbers, default=0) + 1


class Simulation:
    """Sequential simulation of one or more decision models.

    Example:
        >>> sim = Simulation("uc-ed", 2, models, sequence, "/tmp/sims")
        >>> sim.build()
        >>> sim.execute()
        >>> results = sim.results()
    """

    def __init__(
        self,
        name: str,
        steps: int,
        models: SimulationModels,
        sequence: SimulationSequence,
        simulation_folder: str | Path,
        initial_time: datetime | None = None,
    ) -> None:
        """Initialize the simulation.

        Args:
            name: Simulation name, used for the run directory.
            steps: Number of steps to execute.
            models: Decision models taking part.
            sequence: Execution order, feed-forward rules and chronology.
            simulation_folder: Parent folder of the run directories.
            initial_time: Start of the first step. Defaults to the data start.
        """
        if not name or not name.strip():
            raise ValueError("Simulation name must be non-empty")
        if steps < 1:
            raise ValueError(f"steps must be at least 1, got {steps}")
        self.name = name
        self.steps = steps
        self.models = models
        self.sequence = sequence
        self.simulation_folder = Path(simulation_folder)
        self.initial_time = initial_time

        self.state = SimulationState.CREATED
        self.run_number: int | None = None
        self.results_dir: Path | None = None
        self.store: ResultsStore | None = None
        self.run_id: int | None = None
        self.solved_executions = 0
        self.failed_executions = 0
        self._prebuilt: dict[str, OptimizationContainer] = {}

    def __repr__(self) -> str:
        return (
            f"Simulation(name={self.name!r}, steps={self.steps}, "
            f"state={self.state.value})"
        )

    # =================================================================
    # Build
    # =================================================================

    def _start_time(self) -> datetime:
        if self.initial_time is not None:
            return self.initial_time
        return self.models.decision_models[0].system.initial_time

    def _validate(self) -> list[str]:
        """Collect every incompatibility between stages and data."""
        issues: list[str] = []
        if not len(self.models):
            return ["Simulation has no decision models"]
        if self.models.names != self.sequence.models.names:
            issues.append(
                f"Sequence stages {self.sequence.models.names} do not match "
                f"simulation models {self.models.names}"
            )

        structured = []
        for model in self.models:
            system = model.system
            if system.horizon is None or system.interval is None:
                issues.append(
                    f"{model.name}: system '{system.name}' has no forecast structure"
                )
                continue
            structured.append(model)
            for device in system.missing_time_series():
                issues.append(f"{model.name}: device '{device}' has no time series")
            try:
                model.instantiate_template()
            except MissingFormulationError as exc:
                issues.append(f"{model.name}: {exc}")
            if model.interval % model.resolution:
                issues.append(
                    f"{model.name}: interval {model.interval} is not a multiple "
                    f"of resolution {model.resolution}"
                )
            if model.horizon * model.resolution < model.interval:
                issues.append(
                    f"{model.name}: horizon of {model.horizon} periods does not "
                    f"cover the interval {model.interval}"
                )
        if len(structured) != len(self.models):
            return issues

        first = self.models.decision_models[0]
        start = self._start_time()
        if self.initial_time is None:
            starts = {m.system.initial_time for m in self.models}
            if len(starts) > 1:
                issues.append(
                    "Stages do not share an initial time: "
                    + ", ".join(f"{m.name}={m.system.initial_time}" for m in self.models)
                )

        step_length = first.interval
        for model in self.models:
            system = model.system
            if start < system.initial_time or (start - system.initial_time) % model.resolution:
                issues.append(
                    f"{model.name}: initial time {start} is not on the data grid "
                    f"starting at {system.initial_time} with resolution {model.resolution}"
                )
                continue
            if step_length % model.interval:
                issues.append(
                    f"{model.name}: interval {model.interval} does not divide the "
                    f"step length {step_length}"
                )
                continue
            executions = self.steps * (step_length // model.interval)
            last_end = (
                start + (executions - 1) * model.interval + model.horizon * model.resolution
            )
            if last_end > system.data_end:
                issues.append(
                    f"{model.name}: {self.steps} steps need data until {last_end}, "
                    f"but system '{system.name}' ends at {system.data_end}"
                )
        return issues

    def build(self) -> Path:
        """Validate the simulation and prepare the run.

        Returns:
            The run directory.

        Raises:
            ValidationError: Listing every issue found. Nothing is written.
        """
        if self.state is not SimulationState.CREATED:
            raise RuntimeError(f"Simulation {self.name} is already {self.state.value}")

        issues = self._validate()
        if not issues:
            start = self._start_time()
            self._prebuilt = {}
            for name in self.sequence.execution_order():
                model = self.models[name]
                window = model.initialize_window(start)
                try:
                    self._prebuilt[name] = model.build(
                        window, feedforwards=self.sequence.feedforwards_for(name)
                    )
                except BuildError as exc:
                    issues.append(f"{name}: {exc}")
        if issues:
            self._prebuilt = {}
            logger.error(
                "Simulation %s failed validation with %d issue(s)", self.name, len(issues)
            )
            raise ValidationError(issues)

        base = self.simulation_folder / self.name
        self.run_number = _next_run_number(base)
        self.results_dir = base / str(self.run_number)
        self.results_dir.mkdir(parents=True)
        self.store = ResultsStore(self.results_dir)
        step_length = self.sequence.step_length
        self.run_id = self.store.start_run(
            name=self.name,
            run_number=self.run_number,
            steps=self.steps,
            initial_time=self._start_time(),
            step_length_seconds=step_length.total_seconds(),
            stages=[
                {
                    "name": name,
                    "resolution_seconds": self.models[name].resolution.total_seconds(),
                    "horizon": self.models[name].horizon,
                    "interval_seconds": self.models[name].interval.total_seconds(),
                    "executions_per_step": self.sequence.executions_per_step(name),
                }
                for name in self.sequence.execution_order()
            ],
        )
        self.state = SimulationState.BUILT
        logger.info(
            "Built simulation %s (run %d, %d steps of %s) in %s",
            self.name,
            self.run_number,
            self.steps,
            step_length,
            self.results_dir,
        )
        return self.results_dir

    # =================================================================
    # Execute
    # =================================================================

    def _build_execution(
        self, model: DecisionModel, history: dict[str, SolvedExecution]
    ) -> OptimizationContainer:
        prebuilt = self._prebuilt.pop(model.name, None)
        if prebuilt is not None:
            return prebuilt
        window = model.window
        if window is None:
            raise RuntimeError(f"{model.name}: no window. Call build() first.")
        source = resolve_initial_condition(
            self.sequence.ini_cond_chronology,
            model.name,
            window.start,
            history,
            self.sequence.linked_stages(model.name),
        )
        conditions = initial_conditions_for(model, window.start, source)
        if source is not None:
            logger.debug(
                "%s at %s: initial conditions from %s", model.name, window.start, source.stage
            )
        return model.build(
            window, conditions, feedforwards=self.sequence.feedforwards_for(model.name)
        )

    def _apply_feedforwards(
        self, container: OptimizationContainer, history: dict[str, SolvedExecution]
    ) -> None:
        for rule in self.sequence.feedforwards_for(container.name):
            if rule.source_stage is None:
                raise FeedForwardBindingError(f"{rule}: source stage not resolved")
            record = history.get(rule.source_stage)
            if record is None:
                logger.warning(
                    "%s: no solved execution of %s yet, %s keeps its previous values",
                    container.name,
                    rule.source_stage,
                    rule.parameter_key,
                )
                continue
            rule.apply(record.snapshot, container)

    def _mark_failed(self) -> None:
        """Close the run as failed, keeping the error that ended it."""
        self.state = SimulationState.FAILED
        if self.store is None or self.run_id is None:
            return
        try:
            self.store.finish_run(self.run_id, self.state.value)
        except SQLAlchemyError:
            logger.exception("Could not record the failure of run %d", self.run_number)

    def execute(self, options: ExecutionOptions | None = None) -> int:
        """Run every step of the simulation.

        Any error that ends the run leaves the simulation ``FAILED`` and the
        stored run closed as failed before it propagates.

        Args:
            options: Execution options. Defaults to aborting on failure.

        Returns:
            The exit code (0 when every execution solved, 1 otherwise).

        Raises:
            SolverError: If an execution fails under ``FailurePolicy.ABORT``.
            BuildError: Likewise, for an execution that could not be built.
        """
        if self.state is not SimulationState.BUILT:
            raise RuntimeError("Simulation not built. Call build() first.")
        if self.store is None or self.run_id is None:
            raise RuntimeError("Simulation has no results store. Call build() first.")
        options = options or ExecutionOptions()
        if not options.validate():
            raise ValueError(f"Invalid execution options: {options}")

        self.state = SimulationState.EXECUTING
        try:
            self._run_steps(self.store, self.run_id, options)
        except BaseException:
            self._mark_failed()
            raise

        self.state = SimulationState.COMPLETED
        self.store.finish_run(self.run_id, self.state.value)
        logger.info(
            "Simulation %s completed: %d solved, %d failed executions",
            self.name,
            self.solved_executions,
            self.failed_executions,
        )
        return self.exit_code

    def _run_steps(self, store: ResultsStore, run_id: int, options: ExecutionOptions) -> None:
        history: dict[str, SolvedExecution] = {}
        order = self.sequence.execution_order()
        solve_count = 0

        for step in range(1, self.steps + 1):
            if options.log_progress:
                logger.info("Simulation %s: step %d/%d", self.name, step, self.steps)
            for name in order:
                model = self.models[name]
                for execution in range(1, self.sequence.executions_per_step(name) + 1):
                    window = model.window
                    if window is None:
                        raise RuntimeError(f"{name}: no window. Call build() first.")
                    try:
                        container = self._build_execution(model, history)
                        self._apply_feedforwards(container, history)
                        snapshot = model.solve(container)
                    except EXECUTION_ERRORS as exc:
                        self.failed_executions += 1
                        store.write_failure(run_id, name, step, execution, window, exc)
                        if options.failure_policy is FailurePolicy.ABORT:
                            logger.error(
                                "%s failed at step %d execution %d (%s): %s",
                                name,
                                step,
                                execution,
                                window.start,
                                exc,
                            )
                            raise
                        logger.warning(
                            "%s failed at step %d execution %d (%s), continuing: %s",
                            name,
                            step,
                            execution,
                            window.start,
                            exc,
                        )
                    except Exception as exc:
                        # Not an execution failure: always ends the run
                        self.failed_executions += 1
                        logger.exception(
                            "%s raised an unexpected error at step %d execution %d (%s)",
                            name,
                            step,
                            execution,
                            window.start,
                        )
                        try:
                            store.write_failure(run_id, name, step, execution, window, exc)
                        except SQLAlchemyError:
                            logger.exception("Could not record the failed execution")
                        raise
                    else:
                        store.write_snapshot(run_id, step, execution, snapshot)
                        solve_count += 1
                        history[name] = SolvedExecution(snapshot, solve_count)
                        self.solved_executions += 1
                    model.advance()

    @property
    def exit_code(self) -> int:
        """0 if the simulation completed with every execution solved, else 1."""
        if self.state is SimulationState.COMPLETED and not self.failed_executions:
            return 0
        return 1

    def results(self) -> SimulationResults:
        """Query API over this run's store."""
        return SimulationResults(self)

    def close(self) -> None:
        if self.store is not None:
            self.store.close()
