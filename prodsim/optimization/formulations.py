"""Device and network formulations.

Each builder adds the variables, parameters, constraints, balance
injections and costs of one device category to an
``OptimizationContainer``. ``FORMULATION_BUILDERS`` maps every
``DeviceFormulation`` to its builder.

Thermal formulations (P = active power, u = on, v = start, w = stop):

1. Output limits: Pmin * u[t] <= P[t] <= Pmax * u[t]  (u = 1 for dispatch)
2. Commitment logic: u[t] - u[t-1] = v[t] - w[t]
3. Ramp limits: P[t] - P[t-1] <= R_up * dt + Pmax * v[t]
                P[t-1] - P[t] <= R_dn * dt + Pmax * w[t]
4. Minimum up/down time: Σ v[τ] over the last UT periods <= u[t]
                         Σ w[τ] over the last DT periods <= 1 - u[t]

Network (copper plate): Σ injections[t] + slack_up[t] - slack_dn[t] = 0
"""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

import numpy as np
import pyomo.environ as pyo

from prodsim.domain.models import (
    SYSTEM_COMPONENT,
    ConstraintType,
    Device,
    DeviceCategory,
    DeviceFormulation,
    DeviceInitialState,
    ParameterType,
    ThermalStandard,
    VariableType,
)
from prodsim.errors import BuildError
from prodsim.optimization.container import OptimizationContainer
from prodsim.system.power_system import PowerSystem
from prodsim.templates.template import NetworkModel

Builder = Callable[[OptimizationContainer, PowerSystem, list[Device]], None]


def lower_bound_constraint_name(category: DeviceCategory) -> str:
    return f"active_power_lb__{category.value}"


def upper_bound_constraint_name(category: DeviceCategory) -> str:
    return f"active_power_ub__{category.value}"


def _initial_state(
    container: OptimizationContainer, unit: ThermalStandard
) -> DeviceInitialState:
    state = container.initial_conditions.get(unit.name)
    if state is None:
        raise BuildError(
            f"Missing initial condition for '{unit.name}' in {container.name}"
        )
    return state


# =============================================================================
# Thermal
# =============================================================================


def _add_thermal(
    container: OptimizationContainer,
    units: list[ThermalStandard],
    commitment: bool,
    ramp_limited: bool,
    min_up_down: bool,
    enforce_min: bool = True,
) -> None:
    category = DeviceCategory.THERMAL_STANDARD
    names = [u.name for u in units]
    by_name = {u.name: u for u in units}
    dt = container.period_hours
    minutes = container.period_minutes

    power = container.add_variable(
        VariableType.ACTIVE_POWER, category, names, doc="Thermal output (MW)"
    )

    if commitment:
        on = container.add_variable(VariableType.ON, category, names, pyo.Binary)
        start = container.add_variable(VariableType.START, category, names, pyo.Binary)
        stop = container.add_variable(VariableType.STOP, category, names, pyo.Binary)

    # Output limits
    def ub_rule(_m: Any, t: int, c: str) -> Any:
        unit = by_name[c]
        if commitment:
            return power[t, c] <= unit.max_active_power * on[t, c]
        return power[t, c] <= unit.max_active_power

    def lb_rule(_m: Any, t: int, c: str) -> Any:
        unit = by_name[c]
        if commitment:
            return power[t, c] >= unit.min_active_power * on[t, c]
        return power[t, c] >= unit.min_active_power

    index = (container.model.T, container.model.component(f"{category.value}__names"))
    container.add_constraint(
        upper_bound_constraint_name(category), pyo.Constraint(*index, rule=ub_rule)
    )
    if enforce_min:
        container.add_constraint(
            lower_bound_constraint_name(category), pyo.Constraint(*index, rule=lb_rule)
        )

    if commitment:
        # Commitment logic
        def commitment_rule(_m: Any, t: int, c: str) -> Any:
            previous = (
                float(_initial_state(container, by_name[c]).status)
                if t == 0
                else on[t - 1, c]
            )
            return on[t, c] - previous == start[t, c] - stop[t, c]

        def start_stop_rule(_m: Any, t: int, c: str) -> Any:
            return start[t, c] + stop[t, c] <= 1

        container.add_constraint(
            f"commitment__{category.value}",
            pyo.Constraint(*index, rule=commitment_rule),
        )
        container.add_constraint(
            f"start_stop__{category.value}",
            pyo.Constraint(*index, rule=start_stop_rule),
        )

    if ramp_limited:

        def ramp_up_rule(_m: Any, t: int, c: str) -> Any:
            unit = by_name[c]
            previous = (
                _initial_state(container, unit).active_power
                if t == 0
                else power[t - 1, c]
            )
            limit = unit.ramp_up * minutes
            if commitment:
                return power[t, c] - previous <= limit + unit.max_active_power * start[t, c]
            return power[t, c] - previous <= limit

        def ramp_down_rule(_m: Any, t: int, c: str) -> Any:
            unit = by_name[c]
            previous = (
                _initial_state(container, unit).active_power
                if t == 0
                else power[t - 1, c]
            )
            limit = unit.ramp_down * minutes
            if commitment:
                return previous - power[t, c] <= limit + unit.max_active_power * stop[t, c]
            return previous - power[t, c] <= limit

        container.add_constraint(
            f"ramp_up__{category.value}", pyo.Constraint(*index, rule=ramp_up_rule)
        )
        container.add_constraint(
            f"ramp_down__{category.value}", pyo.Constraint(*index, rule=ramp_down_rule)
        )

    if commitment and min_up_down:
        _add_min_up_down(container, units, on, start, stop, index)

    # Costs
    for unit in units:
        c = unit.name
        for t in container.periods:
            cost = unit.variable_cost * power[t, c] * dt
            if commitment:
                cost = (
                    cost
                    + unit.fixed_cost * on[t, c] * dt
                    + unit.start_up_cost * start[t, c]
                    + unit.shut_down_cost * stop[t, c]
                )
            container.add_cost(cost)

    for t in container.periods:
        container.add_injection(t, sum(power[t, c] for c in names))


def _add_min_up_down(
    container: OptimizationContainer,
    units: list[ThermalStandard],
    on: pyo.Var,
    start: pyo.Var,
    stop: pyo.Var,
    index: tuple[Any, Any],
) -> None:
    category = DeviceCategory.THERMAL_STANDARD
    by_name = {u.name: u for u in units}
    dt = container.period_hours

    def periods_for(hours: float) -> int:
        return max(1, math.ceil(hours / dt - 1e-9))

    def min_up_rule(_m: Any, t: int, c: str) -> Any:
        unit = by_name[c]
        if unit.min_up_time <= dt:
            return pyo.Constraint.Skip
        first = max(0, t - periods_for(unit.min_up_time) + 1)
        return sum(start[tau, c] for tau in range(first, t + 1)) <= on[t, c]

    def min_down_rule(_m: Any, t: int, c: str) -> Any:
        unit = by_name[c]
        if unit.min_down_time <= dt:
            return pyo.Constraint.Skip
        first = max(0, t - periods_for(unit.min_down_time) + 1)
        return sum(stop[tau, c] for tau in range(first, t + 1)) <= 1 - on[t, c]

    # Units inside their minimum up/down time at the window start keep status
    def initial_status_rule(_m: Any, t: int, c: str) -> Any:
        unit = by_name[c]
        state = _initial_state(container, unit)
        required = unit.min_up_time if state.status else unit.min_down_time
        remaining = 0
        if state.time_at_status < required:
            remaining = periods_for(required - state.time_at_status)
        if t >= remaining:
            return pyo.Constraint.Skip
        return on[t, c] == float(state.status)

    container.add_constraint(
        f"min_up__{category.value}", pyo.Constraint(*index, rule=min_up_rule)
    )
    container.add_constraint(
        f"min_down__{category.value}", pyo.Constraint(*index, rule=min_down_rule)
    )
    container.add_constraint(
        f"initial_status__{category.value}",
        pyo.Constraint(*index, rule=initial_status_rule),
    )


def _thermal_units(devices: list[Device]) -> list[ThermalStandard]:
    return [d for d in devices if isinstance(d, ThermalStandard)]


def build_thermal_standard_unit_commitment(
    container: OptimizationContainer, _system: PowerSystem, devices: list[Device]
) -> None:
    _add_thermal(
        container,
        _thermal_units(devices),
        commitment=True,
        ramp_limited=True,
        min_up_down=True,
    )


def build_thermal_basic_unit_commitment(
    container: OptimizationContainer, _system: PowerSystem, devices: list[Device]
) -> None:
    _add_thermal(
        container,
        _thermal_units(devices),
        commitment=True,
        ramp_limited=False,
        min_up_down=False,
    )


def build_thermal_standard_dispatch(
    container: OptimizationContainer, _system: PowerSystem, devices: list[Device]
) -> None:
    _add_thermal(
        container,
        _thermal_units(devices),
        commitment=False,
        ramp_limited=True,
        min_up_down=False,
    )


def build_thermal_basic_dispatch(
    container: OptimizationContainer, _system: PowerSystem, devices: list[Device]
) -> None:
    _add_thermal(
        container,
        _thermal_units(devices),
        commitment=False,
        ramp_limited=False,
        min_up_down=False,
    )


def build_thermal_dispatch_no_min(
    container: OptimizationContainer, _system: PowerSystem, devices: list[Device]
) -> None:
    _add_thermal(
        container,
        _thermal_units(devices),
        commitment=False,
        ramp_limited=False,
        min_up_down=False,
        enforce_min=False,
    )


# =============================================================================
# Time-series driven devices
# =============================================================================


def _profiles(
    container: OptimizationContainer, system: PowerSystem, devices: list[Device]
) -> np.ndarray:
    """(periods x devices) array of MW values over the container window."""
    columns = [system.get_active_power_profile(d, container.window) for d in devices]
    if not columns:
        return np.zeros((container.window.horizon, 0))
    return np.column_stack(columns)


def _add_dispatchable_time_series(
    container: OptimizationContainer,
    system: PowerSystem,
    devices: list[Device],
    category: DeviceCategory,
) -> None:
    names = [d.name for d in devices]
    dt = container.period_hours
    limit = container.add_parameter(
        ParameterType.ACTIVE_POWER_TIME_SERIES,
        category,
        names,
        _profiles(container, system, devices),
        doc="Available power (MW)",
    )
    power = container.add_variable(VariableType.ACTIVE_POWER, category, names)

    def ub_rule(_m: Any, t: int, c: str) -> Any:
        return power[t, c] <= limit[t, c]

    container.add_constraint(
        upper_bound_constraint_name(category),
        pyo.Constraint(
            container.model.T,
            container.model.component(f"{category.value}__names"),
            rule=ub_rule,
        ),
    )

    for device in devices:
        cost = getattr(device, "variable_cost", 0.0)
        if cost:
            container.add_cost(
                sum(cost * power[t, device.name] * dt for t in container.periods)
            )
    for t in container.periods:
        container.add_injection(t, sum(power[t, c] for c in names))


def _add_fixed_time_series(
    container: OptimizationContainer,
    system: PowerSystem,
    devices: list[Device],
    category: DeviceCategory,
    sign: float,
) -> None:
    names = [d.name for d in devices]
    values = container.add_parameter(
        ParameterType.ACTIVE_POWER_TIME_SERIES,
        category,
        names,
        _profiles(container, system, devices),
    )
    for t in container.periods:
        container.add_injection(t, sign * sum(values[t, c] for c in names))


def _category_of(devices: list[Device]) -> DeviceCategory:
    return devices[0].category


def build_renewable_full_dispatch(
    container: OptimizationContainer, system: PowerSystem, devices: list[Device]
) -> None:
    _add_dispatchable_time_series(
        container, system, devices, DeviceCategory.RENEWABLE_DISPATCH
    )


def build_hydro_run_of_river(
    container: OptimizationContainer, system: PowerSystem, devices: list[Device]
) -> None:
    _add_dispatchable_time_series(
        container, system, devices, DeviceCategory.HYDRO_DISPATCH
    )


def build_fixed_output(
    container: OptimizationContainer, system: PowerSystem, devices: list[Device]
) -> None:
    _add_fixed_time_series(container, system, devices, _category_of(devices), 1.0)


def build_static_power_load(
    container: OptimizationContainer, system: PowerSystem, devices: list[Device]
) -> None:
    _add_fixed_time_series(
        container, system, devices, DeviceCategory.POWER_LOAD, -1.0
    )


FORMULATION_BUILDERS: dict[DeviceFormulation, Builder] = {
    DeviceFormulation.THERMAL_STANDARD_UNIT_COMMITMENT: (
        build_thermal_standard_unit_commitment
    ),
    DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT: build_thermal_basic_unit_commitment,
    DeviceFormulation.THERMAL_STANDARD_DISPATCH: build_thermal_standard_dispatch,
    DeviceFormulation.THERMAL_BASIC_DISPATCH: build_thermal_basic_dispatch,
    DeviceFormulation.THERMAL_DISPATCH_NO_MIN: build_thermal_dispatch_no_min,
    DeviceFormulation.RENEWABLE_FULL_DISPATCH: build_renewable_full_dispatch,
    DeviceFormulation.HYDRO_DISPATCH_RUN_OF_RIVER: build_hydro_run_of_river,
    DeviceFormulation.FIXED_OUTPUT: build_fixed_output,
    DeviceFormulation.STATIC_POWER_LOAD: build_static_power_load,
}


# =============================================================================
# Network
# =============================================================================


def build_copper_plate(container: OptimizationContainer, network: NetworkModel) -> None:
    """System-wide balance, with penalised slacks when enabled."""
    model = container.model
    dt = container.period_hours
    slack_up = slack_down = None

    if network.use_slacks:
        slack_up = container.add_variable(
            VariableType.SYSTEM_BALANCE_SLACK_UP, SYSTEM_COMPONENT, [SYSTEM_COMPONENT]
        )
        slack_down = container.add_variable(
            VariableType.SYSTEM_BALANCE_SLACK_DOWN, SYSTEM_COMPONENT, [SYSTEM_COMPONENT]
        )
        container.add_cost(
            sum(
                network.slack_penalty
                * dt
                * (slack_up[t, SYSTEM_COMPONENT] + slack_down[t, SYSTEM_COMPONENT])
                for t in container.periods
            )
        )

    def balance_rule(_m: Any, t: int) -> Any:
        terms = container.injections(t)
        expr = sum(terms) if terms else 0.0
        if slack_up is not None and slack_down is not None:
            expr = expr + slack_up[t, SYSTEM_COMPONENT] - slack_down[t, SYSTEM_COMPONENT]
        if not terms and slack_up is None:
            return pyo.Constraint.Feasible
        return expr == 0

    container.add_dual_constraint(
        ConstraintType.COPPER_PLATE_BALANCE,
        SYSTEM_COMPONENT,
        pyo.Constraint(model.T, rule=balance_rule),
    )
