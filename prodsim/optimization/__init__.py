"""Program construction and solving for decision models."""

from prodsim.optimization.container import OptimizationContainer
from prodsim.optimization.decision_model import DecisionModel
from prodsim.optimization.snapshot import ResultSnapshot
from prodsim.optimization.solver import (
    DEFAULT_SOLVER,
    PyomoSolver,
    SolverBackend,
    SolverConfig,
    SolverOutcome,
)

__all__ = [
    "DEFAULT_SOLVER",
    "DecisionModel",
    "OptimizationContainer",
    "PyomoSolver",
    "ResultSnapshot",
    "SolverBackend",
    "SolverConfig",
    "SolverOutcome",
]
