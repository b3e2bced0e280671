"""Optimization container: a built Pyomo program plus its bookkeeping.

The container is the handle returned by ``DecisionModel.build``. It keeps
track of every variable, parameter and reported constraint by result
identifier (``"<Type>__<Category>"``) so that results can be extracted
and feed-forward rules can find their parameter slots.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
import pyomo.environ as pyo

from prodsim.domain.models import DeviceInitialState, make_key
from prodsim.domain.timewindow import TimeWindow
from prodsim.templates.template import TemplateInstance


@dataclass
class VariableEntry:
    """A variable block indexed by (period, component)."""

    key: str
    var: pyo.Var
    components: list[str]


@dataclass
class ParameterEntry:
    """A mutable parameter block indexed by (period, component)."""

    key: str
    param: pyo.Param
    components: list[str]


@dataclass
class ConstraintEntry:
    """A constraint indexed by period whose duals are reported."""

    key: str
    constraint: pyo.Constraint
    component: str


@dataclass
class OptimizationContainer:
    """Built program for one stage execution.

    Attributes:
        name: Name of the owning decision model.
        window: Time window the program covers.
        template: Template instance the program was built from.
        initial_conditions: Thermal states before the window, by device name.
        model: The Pyomo model.
    """

    name: str
    window: TimeWindow
    template: TemplateInstance
    initial_conditions: dict[str, DeviceInitialState] = field(default_factory=dict)
    model: pyo.ConcreteModel = field(init=False)
    variables: dict[str, VariableEntry] = field(default_factory=dict, init=False)
    parameters: dict[str, ParameterEntry] = field(default_factory=dict, init=False)
    duals: dict[str, ConstraintEntry] = field(default_factory=dict, init=False)
    constraints: dict[str, pyo.Constraint] = field(default_factory=dict, init=False)
    _injections: dict[int, list[Any]] = field(
        default_factory=lambda: defaultdict(list), init=False, repr=False
    )
    _costs: list[Any] = field(default_factory=list, init=False, repr=False)
    _finalized: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.model = pyo.ConcreteModel(name=self.name)
        self.model.T = pyo.Set(
            initialize=range(self.window.horizon), ordered=True, doc="Time periods"
        )

    @property
    def periods(self) -> range:
        return range(self.window.horizon)

    @property
    def period_hours(self) -> float:
        return self.window.resolution.total_seconds() / 3600.0

    @property
    def period_minutes(self) -> float:
        return self.window.resolution.total_seconds() / 60.0

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    # =================================================================
    # Component registration
    # =================================================================

    def _component_set(self, category: str, components: list[str]) -> pyo.Set:
        set_name = f"{category}__names"
        existing = self.model.component(set_name)
        if existing is not None:
            return existing
        component_set = pyo.Set(initialize=components, ordered=True)
        self.model.add_component(set_name, component_set)
        return component_set

    def add_variable(
        self,
        var_type: Enum,
        category: Enum | str,
        components: list[str],
        domain: Any = pyo.NonNegativeReals,
        doc: str = "",
    ) -> pyo.Var:
        key = make_key(var_type, category)
        if key in self.variables:
            raise RuntimeError(f"Variable '{key}' already exists in {self.name}")
        category_name = category.value if isinstance(category, Enum) else category
        names = self._component_set(category_name, components)
        var = pyo.Var(self.model.T, names, domain=domain, doc=doc or key)
        self.model.add_component(key, var)
        self.variables[key] = VariableEntry(key, var, list(components))
        return var

    def add_parameter(
        self,
        param_type: Enum,
        category: Enum | str,
        components: list[str],
        values: np.ndarray,
        doc: str = "",
    ) -> pyo.Param:
        """Add a mutable parameter from a (periods x components) array."""
        key = make_key(param_type, category)
        if key in self.parameters:
            raise RuntimeError(f"Parameter '{key}' already exists in {self.name}")
        values = np.asarray(values, dtype=float)
        expected = (self.window.horizon, len(components))
        if values.shape != expected:
            raise ValueError(
                f"Parameter '{key}' expects shape {expected}, got {values.shape}"
            )
        category_name = category.value if isinstance(category, Enum) else category
        names = self._component_set(category_name, components)
        column = {name: j for j, name in enumerate(components)}

        def init(_m: Any, t: int, c: str) -> float:
            return float(values[t, column[c]])

        param = pyo.Param(
            self.model.T, names, initialize=init, mutable=True, doc=doc or key
        )
        self.model.add_component(key, param)
        self.parameters[key] = ParameterEntry(key, param, list(components))
        return param

    def add_constraint(self, name: str, constraint: pyo.Constraint) -> pyo.Constraint:
        if name in self.constraints:
            raise RuntimeError(f"Constraint '{name}' already exists in {self.name}")
        self.model.add_component(name, constraint)
        self.constraints[name] = constraint
        return constraint

    def add_dual_constraint(
        self, constraint_type: Enum, component: str, constraint: pyo.Constraint
    ) -> pyo.Constraint:
        key = make_key(constraint_type, component)
        self.add_constraint(key, constraint)
        self.duals[key] = ConstraintEntry(key, constraint, component)
        return constraint

    def add_injection(self, t: int, expression: Any) -> None:
        """Add a term to the system balance at period ``t`` (withdrawals negative)."""
        self._injections[t].append(expression)

    def injections(self, t: int) -> list[Any]:
        return list(self._injections[t])

    def add_cost(self, expression: Any) -> None:
        self._costs.append(expression)

    def finalize(self) -> None:
        """Attach the cost-minimising objective."""
        if self._finalized:
            raise RuntimeError(f"Program for {self.name} is already finalized")
        self.model.objective = pyo.Objective(
            expr=sum(self._costs) if self._costs else 0.0, sense=pyo.minimize
        )
        self._finalized = True

    # =================================================================
    # Lookup
    # =================================================================

    def get_variable(self, var_type: Enum, category: Enum | str) -> VariableEntry:
        key = make_key(var_type, category)
        if key not in self.variables:
            raise KeyError(f"Variable '{key}' not found in {self.name}")
        return self.variables[key]

    def get_parameter(self, param_type: Enum, category: Enum | str) -> ParameterEntry:
        key = make_key(param_type, category)
        if key not in self.parameters:
            raise KeyError(f"Parameter '{key}' not found in {self.name}")
        return self.parameters[key]

    def set_parameter_values(self, key: str, values: pd.DataFrame) -> None:
        """Overwrite a parameter from a frame indexed like the window.

        Columns missing from ``values`` keep their current values.
        """
        entry = self.parameters[key]
        if len(values.index) != self.window.horizon:
            raise ValueError(
                f"Parameter '{key}' expects {self.window.horizon} rows, "
                f"got {len(values.index)}"
            )
        for component in entry.components:
            if component not in values.columns:
                continue
            column = values[component].to_numpy(dtype=float)
            for t in self.periods:
                entry.param[t, component] = float(column[t])

    # =================================================================
    # Extraction
    # =================================================================

    def _frame(self, components: list[str], getter: Any) -> pd.DataFrame:
        data = np.array(
            [[getter(t, c) for c in components] for t in self.periods], dtype=float
        ).reshape(self.window.horizon, len(components))
        return pd.DataFrame(data, index=self.window.index(), columns=components)

    def variable_values(self) -> dict[str, pd.DataFrame]:
        def value_of(entry: VariableEntry) -> Any:
            def get(t: int, c: str) -> float:
                value = entry.var[t, c].value
                return 0.0 if value is None else float(value)

            return get

        return {
            key: self._frame(entry.components, value_of(entry))
            for key, entry in self.variables.items()
        }

    def parameter_values(self) -> dict[str, pd.DataFrame]:
        return {
            key: self._frame(
                entry.components,
                lambda t, c, p=entry.param: float(pyo.value(p[t, c])),
            )
            for key, entry in self.parameters.items()
        }

    def dual_values(self) -> dict[str, pd.DataFrame]:
        """Duals of reported constraints; empty when none were imported."""
        suffix = self.model.component("dual")
        if suffix is None:
            return {}
        frames = {}
        for key, entry in self.duals.items():
            values = [suffix.get(entry.constraint[t]) for t in self.periods]
            if all(v is None for v in values):
                continue
            frames[key] = pd.DataFrame(
                {entry.component: [0.0 if v is None else float(v) for v in values]},
                index=self.window.index(),
            )
        return frames
