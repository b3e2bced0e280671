"""Query API over a simulation's results store.

``SimulationResults`` opens the store of a run and hands out one
``ProblemResults`` per stage. Per-execution reads return one DataFrame per
window start; realized reads keep only the interval of each execution
(look-ahead dropped) and concatenate them into a single time series.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

from prodsim.results.store import (
    KIND_DUAL,
    KIND_PARAMETER,
    KIND_VARIABLE,
    STATUS_FAILED,
    STATUS_SOLVED,
    STORE_FILENAME,
    ResultsStore,
)

if TYPE_CHECKING:
    from prodsim.simulation.simulation import Simulation

logger = logging.getLogger(__name__)


def _to_wide(values: pd.DataFrame) -> pd.DataFrame:
    """Pivot long-format values into a (timestamp x component) frame."""
    order = (
        values.drop_duplicates("component").sort_values("position")["component"].tolist()
    )
    wide = values.pivot(index="timestamp", columns="component", values="value")
    wide = wide[order]
    wide.index = pd.DatetimeIndex(wide.index, name="DateTime")
    wide.columns.name = None
    return wide


class ProblemResults:
    """Results of one stage of a simulation run."""

    def __init__(self, store: ResultsStore, run_id: int, stage: str) -> None:
        self.store = store
        self.run_id = run_id
        self.name = stage

    def __repr__(self) -> str:
        return f"ProblemResults(stage={self.name!r}, run_id={self.run_id})"

    # =================================================================
    # Listing
    # =================================================================

    def list_variable_names(self) -> list[str]:
        return self.store.list_keys(self.run_id, self.name, KIND_VARIABLE)

    def list_parameter_names(self) -> list[str]:
        return self.store.list_keys(self.run_id, self.name, KIND_PARAMETER)

    def list_dual_names(self) -> list[str]:
        return self.store.list_keys(self.run_id, self.name, KIND_DUAL)

    def get_timestamps(self) -> list[datetime]:
        """Window starts of the solved executions, in execution order."""
        executions = self.store.executions(self.run_id, self.name)
        solved = executions[executions["status"] == STATUS_SOLVED]
        return [pd.Timestamp(t).to_pydatetime() for t in solved["window_start"]]

    # =================================================================
    # Per-execution reads
    # =================================================================

    def _read(
        self,
        kind: str,
        key: str,
        initial_time: datetime | None,
        count: int | None,
    ) -> dict[datetime, pd.DataFrame]:
        if key not in self.store.list_keys(self.run_id, self.name, kind):
            raise KeyError(f"{kind} '{key}' not stored for stage {self.name}")
        values = self.store.read_values(self.run_id, self.name, kind, key)
        if initial_time is not None:
            values = values[values["window_start"] >= pd.Timestamp(initial_time)]

        results: dict[datetime, pd.DataFrame] = {}
        for _, group in values.groupby("execution_id", sort=True):
            start = pd.Timestamp(group["window_start"].iloc[0]).to_pydatetime()
            results[start] = _to_wide(group)
            if count is not None and len(results) >= count:
                break
        return results

    def _read_many(
        self,
        kind: str,
        names: Iterable[str] | None,
        initial_time: datetime | None,
        count: int | None,
    ) -> dict[str, dict[datetime, pd.DataFrame]]:
        keys = (
            list(names)
            if names is not None
            else self.store.list_keys(self.run_id, self.name, kind)
        )
        return {key: self._read(kind, key, initial_time, count) for key in keys}

    def read_variable(
        self, name: str, initial_time: datetime | None = None, count: int | None = None
    ) -> dict[datetime, pd.DataFrame]:
        """Values of one variable per execution, keyed by window start.

        Args:
            name: Variable identifier, e.g. ``ActivePowerVariable__ThermalStandard``.
            initial_time: Skip executions starting before this time.
            count: Return at most this many executions.

        Raises:
            KeyError: If the variable was never stored for this stage.
        """
        return self._read(KIND_VARIABLE, name, initial_time, count)

    def read_parameter(
        self, name: str, initial_time: datetime | None = None, count: int | None = None
    ) -> dict[datetime, pd.DataFrame]:
        return self._read(KIND_PARAMETER, name, initial_time, count)

    def read_dual(
        self, name: str, initial_time: datetime | None = None, count: int | None = None
    ) -> dict[datetime, pd.DataFrame]:
        return self._read(KIND_DUAL, name, initial_time, count)

    def read_variables(
        self,
        names: Iterable[str] | None = None,
        initial_time: datetime | None = None,
        count: int | None = None,
    ) -> dict[str, dict[datetime, pd.DataFrame]]:
        """Per-execution values of several variables (all when ``names`` is None)."""
        return self._read_many(KIND_VARIABLE, names, initial_time, count)

    def read_parameters(
        self,
        names: Iterable[str] | None = None,
        initial_time: datetime | None = None,
        count: int | None = None,
    ) -> dict[str, dict[datetime, pd.DataFrame]]:
        return self._read_many(KIND_PARAMETER, names, initial_time, count)

    def read_duals(
        self,
        names: Iterable[str] | None = None,
        initial_time: datetime | None = None,
        count: int | None = None,
    ) -> dict[str, dict[datetime, pd.DataFrame]]:
        return self._read_many(KIND_DUAL, names, initial_time, count)

    # =================================================================
    # Realized reads
    # =================================================================

    def _read_realized(self, kind: str, key: str) -> pd.DataFrame:
        if key not in self.store.list_keys(self.run_id, self.name, kind):
            raise KeyError(f"{kind} '{key}' not stored for stage {self.name}")
        values = self.store.read_values(self.run_id, self.name, kind, key)
        values = values[values["timestamp"] < values["realized_end"]]
        realized = _to_wide(values).sort_index()
        return realized[~realized.index.duplicated(keep="last")]

    def _read_realized_many(
        self, kind: str, names: Iterable[str] | None
    ) -> dict[str, pd.DataFrame]:
        keys = (
            list(names)
            if names is not None
            else self.store.list_keys(self.run_id, self.name, kind)
        )
        return {key: self._read_realized(kind, key) for key in keys}

    def read_realized_variables(
        self, names: Iterable[str] | None = None
    ) -> dict[str, pd.DataFrame]:
        """Realized values: the interval of every execution, concatenated."""
        return self._read_realized_many(KIND_VARIABLE, names)

    def read_realized_parameters(
        self, names: Iterable[str] | None = None
    ) -> dict[str, pd.DataFrame]:
        return self._read_realized_many(KIND_PARAMETER, names)

    def read_realized_duals(
        self, names: Iterable[str] | None = None
    ) -> dict[str, pd.DataFrame]:
        return self._read_realized_many(KIND_DUAL, names)

    def read_realized_variable(self, name: str) -> pd.DataFrame:
        return self._read_realized(KIND_VARIABLE, name)

    # =================================================================
    # Execution metadata
    # =================================================================

    def read_optimizer_stats(self) -> pd.DataFrame:
        """Solver statistics of every solved execution, indexed by window start."""
        executions = self.store.executions(self.run_id, self.name)
        solved = executions[executions["status"] == STATUS_SOLVED]
        stats = solved[
            [
                "window_start",
                "step",
                "execution",
                "termination_condition",
                "objective_value",
                "solve_time_seconds",
            ]
        ]
        return stats.set_index("window_start").rename_axis("DateTime")

    def read_failed_executions(self) -> pd.DataFrame:
        executions = self.store.executions(self.run_id, self.name)
        failed = executions[executions["status"] == STATUS_FAILED]
        return failed[
            ["step", "execution", "window_start", "termination_condition", "error_message"]
        ].reset_index(drop=True)


class SimulationResults:
    """Results of a simulation run.

    Args:
        source: A built ``Simulation``, a run directory, a simulation
            directory (latest run is used) or the SQLite file itself.
    """

    def __init__(self, source: Simulation | str | Path) -> None:
        if isinstance(source, (str, Path)):
            path = self._locate(Path(source))
            self.store = ResultsStore(path)
            self._owns_store = True
        else:
            if source.store is None:
                raise RuntimeError("Simulation not built. Call build() first.")
            self.store = source.store
            self._owns_store = False

        run = self.store.latest_run()
        if run is None:
            raise ValueError(f"No simulation run recorded in {self.store.path}")
        self.run_id = int(run.id)
        self.name = run.name
        self.run_number = run.run_number
        self.status = run.status
        self.steps = run.steps
        self.initial_time = run.initial_time
        self.stages = [stage["name"] for stage in run.stages]
        self._stage_info = {stage["name"]: stage for stage in run.stages}
        logger.debug(
            "Opened %s run %d (%s) from %s",
            self.name,
            self.run_number,
            self.status,
            self.store.path,
        )

    def __repr__(self) -> str:
        return (
            f"SimulationResults(name={self.name!r}, run={self.run_number}, "
            f"status={self.status!r}, stages={self.stages})"
        )

    @staticmethod
    def _locate(path: Path) -> Path:
        if path.is_file():
            return path
        if (path / STORE_FILENAME).is_file():
            return path / STORE_FILENAME
        runs = sorted(
            (p for p in path.glob("*") if p.is_dir() and p.name.isdigit()),
            key=lambda p: int(p.name),
        )
        if runs and (runs[-1] / STORE_FILENAME).is_file():
            return runs[-1] / STORE_FILENAME
        raise FileNotFoundError(f"No results store found under {path}")

    def list_problems(self) -> list[str]:
        return list(self.stages)

    def stage_info(self, name: str) -> dict:
        return dict(self._stage_info[name])

    def get_problem_results(self, name: str) -> ProblemResults:
        if name not in self._stage_info:
            raise KeyError(
                f"Stage '{name}' not in simulation {self.name}; "
                f"available: {', '.join(self.stages)}"
            )
        return ProblemResults(self.store, self.run_id, name)

    def close(self) -> None:
        if self._owns_store:
            self.store.close()
