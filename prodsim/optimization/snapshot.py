"""Solved-program snapshot.

A ``ResultSnapshot`` is the typed result of one stage execution: every
variable, parameter and reported dual as a DataFrame indexed by timestamp
with one column per component, plus solver metadata. Snapshots are never
mutated after the solve; feed-forward rules and chronologies only read
them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

import numpy as np
import pandas as pd

from prodsim.domain.models import (
    DeviceCategory,
    DeviceInitialState,
    ParameterType,
    VariableType,
    make_key,
)
from prodsim.domain.timewindow import TimeWindow

STATUS_TOLERANCE = 1e-6


@dataclass(frozen=True)
class ResultSnapshot:
    """Results of one solved stage execution."""

    stage: str
    window: TimeWindow
    termination_condition: str
    solver_status: str
    objective_value: float | None
    solve_time_seconds: float
    variables: dict[str, pd.DataFrame] = field(default_factory=dict)
    parameters: dict[str, pd.DataFrame] = field(default_factory=dict)
    duals: dict[str, pd.DataFrame] = field(default_factory=dict)
    initial_conditions: dict[str, DeviceInitialState] = field(default_factory=dict)

    def get_variable(self, key: str) -> pd.DataFrame:
        return self.variables[key].copy()

    def get_parameter(self, key: str) -> pd.DataFrame:
        return self.parameters[key].copy()

    def has_period_before(self, timestamp: datetime) -> bool:
        return self.window.start < timestamp

    def thermal_state_before(
        self, unit: str, timestamp: datetime
    ) -> DeviceInitialState | None:
        """State of a thermal unit at the last period before ``timestamp``.

        Status comes from the commitment variable when the program had one,
        else from a feed-forward on/off parameter, else from output > 0.
        Returns ``None`` if the snapshot has no data for the unit before
        ``timestamp``.
        """
        category = DeviceCategory.THERMAL_STANDARD
        power_frame = self.variables.get(make_key(VariableType.ACTIVE_POWER, category))
        if power_frame is None or unit not in power_frame.columns:
            return None
        prior = power_frame.index < pd.Timestamp(timestamp)
        if not prior.any():
            return None

        power = power_frame.loc[prior, unit].to_numpy(dtype=float)
        status_frame = self.variables.get(make_key(VariableType.ON, category))
        if status_frame is None:
            status_frame = self.parameters.get(
                make_key(ParameterType.ON_STATUS, category)
            )
        if status_frame is not None and unit in status_frame.columns:
            status = status_frame.loc[prior, unit].to_numpy(dtype=float) > 0.5
        else:
            status = power > STATUS_TOLERANCE

        last = bool(status[-1])
        changes = np.flatnonzero(status != last)
        run_length = len(status) - (changes[-1] + 1 if changes.size else 0)
        period_hours = self.window.resolution.total_seconds() / 3600.0
        time_at_status = run_length * period_hours

        if not changes.size:
            previous = self.initial_conditions.get(unit)
            if previous is not None and previous.status == last:
                time_at_status += previous.time_at_status

        return DeviceInitialState(
            status=last,
            active_power=max(0.0, float(power[-1])) if last else 0.0,
            time_at_status=time_at_status,
        )
