"""Persistence and querying of simulation results."""

from prodsim.results.results import ProblemResults, SimulationResults
from prodsim.results.store import ResultsStore

__all__ = ["ProblemResults", "ResultsStore", "SimulationResults"]
