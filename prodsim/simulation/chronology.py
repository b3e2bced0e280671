"""Initial-condition chronologies.

A chronology decides which solved execution supplies the thermal state a
stage starts from:

- ``IntraProblemChronology``: the stage's own previous execution.
- ``InterProblemChronology``: the most recently solved execution, among the
  stage and the stages linked to it by feed-forward rules, that covers a
  period before the new window.

Resolution is a pure function of the stage, the window start and the
history of solved executions the simulation passes in.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from datetime import datetime

from prodsim.domain.models import DeviceInitialState
from prodsim.optimization.decision_model import DecisionModel
from prodsim.optimization.snapshot import ResultSnapshot


@dataclass(frozen=True)
class SolvedExecution:
    """Latest solved execution of a stage.

    Attributes:
        snapshot: Results of the execution.
        order: Position in the overall solve order (higher is more recent).
    """

    snapshot: ResultSnapshot
    order: int


@dataclass(frozen=True)
class InitialConditionSource:
    """Snapshot a stage reads its initial state from."""

    stage: str
    snapshot: ResultSnapshot


class InitialConditionChronology:
    """Base chronology."""

    def resolve(
        self,
        stage: str,
        window_start: datetime,
        history: Mapping[str, SolvedExecution],
        linked: Collection[str] | None = None,
    ) -> InitialConditionSource | None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other)

    def __hash__(self) -> int:
        return hash(type(self).__name__)


class IntraProblemChronology(InitialConditionChronology):
    """Each stage starts from its own previous execution."""

    def resolve(
        self,
        stage: str,
        window_start: datetime,
        history: Mapping[str, SolvedExecution],
        linked: Collection[str] | None = None,
    ) -> InitialConditionSource | None:
        record = history.get(stage)
        if record is None or not record.snapshot.has_period_before(window_start):
            return None
        return InitialConditionSource(stage, record.snapshot)


class InterProblemChronology(InitialConditionChronology):
    """Each stage starts from the latest solved execution of a linked stage.

    ``linked`` names the stages connected to ``stage`` by feed-forward
    rules. The stage itself is always a candidate. Without ``linked`` every
    stage in the history is a candidate.
    """

    def resolve(
        self,
        stage: str,
        window_start: datetime,
        history: Mapping[str, SolvedExecution],
        linked: Collection[str] | None = None,
    ) -> InitialConditionSource | None:
        candidates = [
            (record.order, name)
            for name, record in history.items()
            if (linked is None or name == stage or name in linked)
            and record.snapshot.has_period_before(window_start)
        ]
        if not candidates:
            return None
        _, name = max(candidates)
        return InitialConditionSource(name, history[name].snapshot)


WithinProblemChronology = IntraProblemChronology


def resolve_initial_condition(
    chronology: InitialConditionChronology,
    stage: str,
    window_start: datetime,
    history: Mapping[str, SolvedExecution],
    linked: Collection[str] | None = None,
) -> InitialConditionSource | None:
    """Source of a stage's initial state, or ``None`` for data defaults."""
    return chronology.resolve(stage, window_start, history, linked)


def initial_conditions_for(
    model: DecisionModel,
    window_start: datetime,
    source: InitialConditionSource | None,
) -> dict[str, DeviceInitialState]:
    """Thermal states for a stage execution starting at ``window_start``.

    Units without data in the source snapshot keep their data-source
    defaults.
    """
    conditions = model.default_initial_conditions()
    if source is None:
        return conditions
    for unit in conditions:
        state = source.snapshot.thermal_state_before(unit, window_start)
        if state is not None:
            conditions[unit] = state
    return conditions
