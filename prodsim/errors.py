"""Error taxonomy for the simulation engine.

Configuration errors (templates, feed-forwards, sequence structure) are
raised while a simulation is assembled or built. Solve errors are raised
per stage execution and handled by the simulation failure policy.
"""

from __future__ import annotations


class ProdSimError(Exception):
    """Base class for all engine errors."""


class MissingFormulationError(ProdSimError):
    """A device category in the data source has no formulation."""

    def __init__(self, category: str, message: str | None = None) -> None:
        self.category = category
        super().__init__(
            message or f"No formulation assigned for device category '{category}'"
        )


class DuplicateNameError(ProdSimError):
    """Two decision models in one sequence share a name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Decision model name '{name}' is used more than once")


class BuildError(ProdSimError):
    """A decision model could not be translated into a program."""


class FeedForwardBindingError(ProdSimError):
    """A feed-forward rule references something its stages do not provide."""


class CyclicDependencyError(ProdSimError):
    """Feed-forward rules form a cycle between stages."""

    def __init__(self, stages: list[str]) -> None:
        self.stages = stages
        super().__init__(
            "Feed-forward dependencies form a cycle among stages: "
            + ", ".join(stages)
        )


class ValidationError(ProdSimError):
    """Simulation build found one or more incompatible stages.

    All issues are collected before raising.
    """

    def __init__(self, issues: list[str]) -> None:
        self.issues = list(issues)
        lines = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(f"Simulation validation failed:\n{lines}")


class SolverError(ProdSimError):
    """The solver terminated without an acceptable solution."""

    def __init__(self, message: str, termination_condition: str = "error") -> None:
        self.termination_condition = termination_condition
        super().__init__(message)


class InfeasibleError(SolverError):
    """The solver proved the problem infeasible."""
