"""Feed-forward rules: values passed from one stage into another.

A rule reads one variable of a solved source stage and writes it into a
parameter of the target stage, where it bounds, fixes or switches the
affected variables:

- ``SemiContinuousFeedforward``: Pmin * u[t] <= P[t] <= Pmax * u[t], with u
  the source commitment status. Replaces the target's own lower bound.
- ``UpperBoundFeedforward``: P[t] <= source[t]
- ``LowerBoundFeedforward``: P[t] >= source[t]
- ``FixValueFeedforward``: P[t] == source[t]

Source values are aligned to the target window by timestamp. A finer
target holds the value of the source period covering it; a coarser target
takes the value at its period start (status and fixed values) or the
average of the covered source periods (bounds). Target periods beyond the
source window hold the last source value.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, ClassVar

import numpy as np
import pandas as pd
import pyomo.environ as pyo

from prodsim.domain.models import (
    FORMULATION_VARIABLES,
    DeviceCategory,
    ParameterType,
    VariableType,
    device_rating,
    make_key,
)
from prodsim.domain.timewindow import TimeWindow
from prodsim.errors import FeedForwardBindingError
from prodsim.optimization.container import OptimizationContainer
from prodsim.optimization.formulations import lower_bound_constraint_name
from prodsim.optimization.snapshot import ResultSnapshot
from prodsim.system.power_system import PowerSystem

if TYPE_CHECKING:
    from prodsim.optimization.decision_model import DecisionModel

AGGREGATE_FIRST = "first"
AGGREGATE_MEAN = "mean"


def align_to_window(
    frame: pd.DataFrame, window: TimeWindow, aggregation: str = AGGREGATE_FIRST
) -> pd.DataFrame:
    """Align a timestamp-indexed frame to the periods of ``window``.

    Args:
        frame: Source values, one column per component.
        window: Target window.
        aggregation: ``"first"`` takes the source value in force at each
            target period start; ``"mean"`` averages the source periods a
            target period covers.

    Returns:
        Frame indexed by the window timestamps with the source columns.
    """
    if frame.empty:
        raise ValueError("Cannot align an empty frame")
    if aggregation not in (AGGREGATE_FIRST, AGGREGATE_MEAN):
        raise ValueError(f"Unknown aggregation: {aggregation}")

    ordered = frame.sort_index()
    target_index = window.index()
    held = ordered.reindex(target_index, method="ffill")
    # Target periods before the source window take its first value
    held = held.fillna(ordered.iloc[0])
    if aggregation == AGGREGATE_FIRST:
        return held

    bins = (ordered.index - target_index[0]) // pd.Timedelta(window.resolution)
    means = ordered.groupby(np.asarray(bins)).mean()
    means = means.reindex(range(window.horizon))
    means.index = target_index
    return means.fillna(held)


@dataclass(frozen=True)
class FeedForward:
    """Base feed-forward rule.

    Attributes:
        component_type: Device category the rule applies to.
        source: Variable read from the source stage.
        affected_values: Variables of the target stage that are constrained.
        source_stage: Name of the source stage. When omitted, the nearest
            preceding stage producing ``source`` is used.
        target_stage: Set when the rule is attached to a sequence.
    """

    parameter_type: ClassVar[ParameterType]
    aggregation: ClassVar[str] = AGGREGATE_FIRST

    component_type: DeviceCategory
    source: VariableType
    affected_values: tuple[VariableType, ...]
    source_stage: str | None = None
    target_stage: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "component_type", DeviceCategory(self.component_type))
        object.__setattr__(self, "source", VariableType(self.source))
        affected = tuple(VariableType(v) for v in self.affected_values)
        if not affected:
            raise ValueError(f"{type(self).__name__} needs at least one affected value")
        object.__setattr__(self, "affected_values", affected)

    def __str__(self) -> str:
        return (
            f"{type(self).__name__}({self.source_stage or '?'}:{self.source.value} -> "
            f"{self.target_stage or '?'}:{self.component_type.value})"
        )

    @property
    def parameter_key(self) -> str:
        return make_key(self.parameter_type, self.component_type)

    @property
    def source_key(self) -> str:
        return make_key(self.source, self.component_type)

    @property
    def is_attached(self) -> bool:
        return self.target_stage is not None

    # =================================================================
    # Binding
    # =================================================================

    def _produced(self, model: DecisionModel) -> tuple[VariableType, ...]:
        formulation = model.template.get_formulation(self.component_type)
        if formulation is None:
            return ()
        return FORMULATION_VARIABLES[formulation]

    def attach(self, target: str, models: Mapping[str, DecisionModel]) -> FeedForward:
        """Validate the rule against the stages and bind it to ``target``.

        Args:
            target: Name of the target stage.
            models: Every stage of the sequence by name, in declaration order.

        Returns:
            A bound copy of the rule.

        Raises:
            FeedForwardBindingError: If a stage is missing, source and target
                are the same stage, the source does not produce the source
                variable, or the target does not expose an affected variable.
        """
        if target not in models:
            raise FeedForwardBindingError(f"{self}: unknown target stage '{target}'")

        source = self.source_stage
        if source is None:
            names = list(models)
            candidates = [
                name
                for name in reversed(names[: names.index(target)])
                if self.source in self._produced(models[name])
            ]
            if not candidates:
                raise FeedForwardBindingError(
                    f"{self}: no stage declared before '{target}' produces "
                    f"{self.source_key}"
                )
            source = candidates[0]

        if source == target:
            raise FeedForwardBindingError(
                f"{self}: source and target are the same stage '{target}'"
            )
        if source not in models:
            raise FeedForwardBindingError(f"{self}: unknown source stage '{source}'")
        if self.source not in self._produced(models[source]):
            raise FeedForwardBindingError(
                f"{self}: stage '{source}' does not produce {self.source_key}"
            )
        exposed = self._produced(models[target])
        missing = [v.value for v in self.affected_values if v not in exposed]
        if missing:
            raise FeedForwardBindingError(
                f"{self}: stage '{target}' does not expose "
                f"{', '.join(missing)} for {self.component_type.value}"
            )
        return replace(self, source_stage=source, target_stage=target)

    # =================================================================
    # Build / apply
    # =================================================================

    def _initial_values(self, devices: list[Any]) -> np.ndarray:
        return np.zeros(len(devices))

    def _add_constraints(
        self,
        container: OptimizationContainer,
        system: PowerSystem,
        variable: VariableType,
        parameter: pyo.Param,
    ) -> None:
        raise NotImplementedError

    def add_to_container(
        self, container: OptimizationContainer, system: PowerSystem
    ) -> None:
        """Add the rule's parameter and constraints to a target program."""
        first = container.get_variable(self.affected_values[0], self.component_type)
        devices = [system.get_component(name) for name in first.components]
        initial = np.tile(self._initial_values(devices), (container.window.horizon, 1))
        parameter = container.add_parameter(
            self.parameter_type,
            self.component_type,
            first.components,
            initial,
            doc=f"Feed-forward from {self.source_stage}",
        )
        for variable in self.affected_values:
            self._add_constraints(container, system, variable, parameter)

    def _transform(self, values: pd.DataFrame) -> pd.DataFrame:
        return values

    def apply(self, snapshot: ResultSnapshot, container: OptimizationContainer) -> None:
        """Overwrite the target parameter with aligned source values.

        Raises:
            FeedForwardBindingError: If the snapshot lacks the source variable.
        """
        frame = snapshot.variables.get(self.source_key)
        if frame is None:
            raise FeedForwardBindingError(
                f"{self}: snapshot of '{snapshot.stage}' has no {self.source_key}"
            )
        aligned = align_to_window(frame, container.window, self.aggregation)
        container.set_parameter_values(self.parameter_key, self._transform(aligned))


class SemiContinuousFeedforward(FeedForward):
    """Switch the target's output range on and off with the source status."""

    parameter_type = ParameterType.ON_STATUS

    def _initial_values(self, devices: list[Any]) -> np.ndarray:
        return np.ones(len(devices))

    def _add_constraints(
        self,
        container: OptimizationContainer,
        system: PowerSystem,
        variable: VariableType,
        parameter: pyo.Param,
    ) -> None:
        entry = container.get_variable(variable, self.component_type)
        limits = {}
        for name in entry.components:
            device = system.get_component(name)
            limits[name] = (
                float(getattr(device, "min_active_power", 0.0)),
                device_rating(device),
            )

        own_lower = container.constraints.get(
            lower_bound_constraint_name(self.component_type)
        )
        if own_lower is not None:
            own_lower.deactivate()

        var = entry.var
        suffix = make_key(variable, self.component_type)

        def ub_rule(_m: Any, t: int, c: str) -> Any:
            return var[t, c] <= limits[c][1] * parameter[t, c]

        def lb_rule(_m: Any, t: int, c: str) -> Any:
            return var[t, c] >= limits[c][0] * parameter[t, c]

        names = container.model.component(f"{self.component_type.value}__names")
        container.add_constraint(
            f"semicontinuous_ub__{suffix}",
            pyo.Constraint(container.model.T, names, rule=ub_rule),
        )
        container.add_constraint(
            f"semicontinuous_lb__{suffix}",
            pyo.Constraint(container.model.T, names, rule=lb_rule),
        )

    def _transform(self, values: pd.DataFrame) -> pd.DataFrame:
        return (values > 0.5).astype(float)


class _ValueFeedforward(FeedForward):
    """Relate the affected variables to the source values directly."""

    constraint_prefix: ClassVar[str]

    def _relation(self, var: Any, param: Any) -> Any:
        raise NotImplementedError

    def _add_constraints(
        self,
        container: OptimizationContainer,
        system: PowerSystem,
        variable: VariableType,
        parameter: pyo.Param,
    ) -> None:
        var = container.get_variable(variable, self.component_type).var

        def rule(_m: Any, t: int, c: str) -> Any:
            return self._relation(var[t, c], parameter[t, c])

        names = container.model.component(f"{self.component_type.value}__names")
        container.add_constraint(
            f"{self.constraint_prefix}__{make_key(variable, self.component_type)}",
            pyo.Constraint(container.model.T, names, rule=rule),
        )


class UpperBoundFeedforward(_ValueFeedforward):
    """Cap the target variables at the source values."""

    parameter_type = ParameterType.UPPER_BOUND_VALUE
    aggregation = AGGREGATE_MEAN
    constraint_prefix = "feedforward_ub"

    def _initial_values(self, devices: list[Any]) -> np.ndarray:
        return np.array([device_rating(d) for d in devices], dtype=float)

    def _relation(self, var: Any, param: Any) -> Any:
        return var <= param


class LowerBoundFeedforward(_ValueFeedforward):
    """Hold the target variables at or above the source values."""

    parameter_type = ParameterType.LOWER_BOUND_VALUE
    aggregation = AGGREGATE_MEAN
    constraint_prefix = "feedforward_lb"

    def _relation(self, var: Any, param: Any) -> Any:
        return var >= param


class FixValueFeedforward(_ValueFeedforward):
    """Fix the target variables to the source values."""

    parameter_type = ParameterType.FIX_VALUE
    constraint_prefix = "feedforward_fix"

    def _relation(self, var: Any, param: Any) -> Any:
        return var == param
