"""Sequential simulation: feed-forward, chronology, sequence and driver."""

from prodsim.simulation.chronology import (
    InitialConditionChronology,
    InitialConditionSource,
    InterProblemChronology,
    IntraProblemChronology,
    SolvedExecution,
    WithinProblemChronology,
    initial_conditions_for,
    resolve_initial_condition,
)
from prodsim.simulation.feedforward import (
    FeedForward,
    FixValueFeedforward,
    LowerBoundFeedforward,
    SemiContinuousFeedforward,
    UpperBoundFeedforward,
    align_to_window,
)
from prodsim.simulation.sequence import SimulationModels, SimulationSequence
from prodsim.simulation.simulation import (
    ExecutionOptions,
    FailurePolicy,
    Simulation,
    SimulationState,
)

__all__ = [
    "ExecutionOptions",
    "FailurePolicy",
    "FeedForward",
    "FixValueFeedforward",
    "InitialConditionChronology",
    "InitialConditionSource",
    "InterProblemChronology",
    "IntraProblemChronology",
    "LowerBoundFeedforward",
    "SemiContinuousFeedforward",
    "Simulation",
    "SimulationModels",
    "SimulationSequence",
    "SimulationState",
    "SolvedExecution",
    "UpperBoundFeedforward",
    "WithinProblemChronology",
    "align_to_window",
    "initial_conditions_for",
    "resolve_initial_condition",
]
