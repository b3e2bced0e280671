"""Synthetic profile and system generators."""

from prodsim.generators.profiles import ProfileGenerator
from prodsim.generators.systems import (
    build_day_ahead_system,
    build_real_time_system,
    build_test_system,
)

__all__ = [
    "ProfileGenerator",
    "build_day_ahead_system",
    "build_real_time_system",
    "build_test_system",
]
