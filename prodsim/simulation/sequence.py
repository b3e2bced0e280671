"""Simulation sequence: stages, feed-forward wiring and execution order."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from prodsim.errors import (
    CyclicDependencyError,
    DuplicateNameError,
    FeedForwardBindingError,
)
from prodsim.optimization.decision_model import DecisionModel
from prodsim.simulation.chronology import (
    InitialConditionChronology,
    InterProblemChronology,
)
from prodsim.simulation.feedforward import FeedForward

logger = logging.getLogger(__name__)


@dataclass
class SimulationModels:
    """Decision models of a simulation, in declaration order."""

    decision_models: list[DecisionModel] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for model in self.decision_models:
            if model.name in seen:
                raise DuplicateNameError(model.name)
            seen.add(model.name)

    def __iter__(self) -> Iterator[DecisionModel]:
        return iter(self.decision_models)

    def __len__(self) -> int:
        return len(self.decision_models)

    def __contains__(self, name: object) -> bool:
        return any(m.name == name for m in self.decision_models)

    def __getitem__(self, name: str) -> DecisionModel:
        for model in self.decision_models:
            if model.name == name:
                return model
        raise KeyError(f"No decision model named '{name}'")

    @property
    def names(self) -> list[str]:
        return [m.name for m in self.decision_models]

    def by_name(self) -> dict[str, DecisionModel]:
        return {m.name: m for m in self.decision_models}


def topological_order(
    nodes: Sequence[str], dependencies: Mapping[str, set[str]]
) -> list[str]:
    """Order ``nodes`` so every node follows the nodes it depends on.

    Ties are broken by position in ``nodes``.

    Raises:
        CyclicDependencyError: If the dependencies contain a cycle.
    """
    remaining = {n: set(dependencies.get(n, ())) for n in nodes}
    order: list[str] = []
    while remaining:
        ready = [n for n in nodes if n in remaining and not remaining[n]]
        if not ready:
            raise CyclicDependencyError([n for n in nodes if n in remaining])
        node = ready[0]
        order.append(node)
        del remaining[node]
        for pending in remaining.values():
            pending.discard(node)
    return order


class SimulationSequence:
    """Stages, the feed-forward rules between them and the chronology.

    Args:
        models: Decision models, in declaration order.
        feedforwards: Rules keyed by target stage name.
        ini_cond_chronology: Chronology for thermal initial conditions.

    Raises:
        DuplicateNameError: If two stages share a name.
        FeedForwardBindingError: If a rule does not fit its stages.
        CyclicDependencyError: If the rules form a cycle.
    """

    def __init__(
        self,
        models: SimulationModels | Sequence[DecisionModel],
        feedforwards: Mapping[str, Sequence[FeedForward]] | None = None,
        ini_cond_chronology: InitialConditionChronology | None = None,
    ) -> None:
        if not isinstance(models, SimulationModels):
            models = SimulationModels(list(models))
        self.models = models
        self.ini_cond_chronology = ini_cond_chronology or InterProblemChronology()

        by_name = models.by_name()
        self.feedforwards: dict[str, tuple[FeedForward, ...]] = {}
        self.dependencies: dict[str, set[str]] = {name: set() for name in by_name}
        for target, rules in (feedforwards or {}).items():
            bound = tuple(rule.attach(target, by_name) for rule in rules)
            self.feedforwards[target] = bound
            for rule in bound:
                if rule.source_stage is None:
                    raise FeedForwardBindingError(f"{rule}: source stage not resolved")
                self.dependencies[target].add(rule.source_stage)

        self._order = topological_order(models.names, self.dependencies)
        logger.debug("Execution order: %s", " -> ".join(self._order))

    def __repr__(self) -> str:
        return (
            f"SimulationSequence(order={self._order}, "
            f"chronology={self.ini_cond_chronology!r})"
        )

    def execution_order(self) -> list[str]:
        return list(self._order)

    def feedforwards_for(self, target: str) -> tuple[FeedForward, ...]:
        return self.feedforwards.get(target, ())

    def linked_stages(self, name: str) -> set[str]:
        """Stages connected to ``name`` through feed-forward rules, itself included.

        Rules are followed in both directions, so a stage is linked to its
        sources, to its targets and transitively to theirs.
        """
        if name not in self.dependencies:
            raise KeyError(f"Unknown stage '{name}'")
        neighbours: dict[str, set[str]] = {node: set() for node in self.dependencies}
        for target, sources in self.dependencies.items():
            for source in sources:
                neighbours[target].add(source)
                neighbours[source].add(target)

        linked = {name}
        pending = [name]
        while pending:
            for other in neighbours[pending.pop()]:
                if other not in linked:
                    linked.add(other)
                    pending.append(other)
        return linked

    @property
    def step_length(self) -> timedelta:
        """Simulated time covered by one step: the first stage's interval."""
        if not len(self.models):
            raise RuntimeError("Sequence has no decision models")
        return self.models.decision_models[0].interval

    def executions_per_step(self, name: str) -> int:
        """Number of times a stage solves within one step."""
        return self.step_length // self.models[name].interval
