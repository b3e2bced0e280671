"""Domain models for the sequential simulation engine."""

from prodsim.domain.models import (
    SYSTEM_COMPONENT,
    ConstraintType,
    Device,
    DeviceCategory,
    DeviceFormulation,
    DeviceInitialState,
    HydroDispatch,
    NetworkFormulation,
    ParameterType,
    PowerLoad,
    RenewableDispatch,
    RenewableFix,
    ThermalStandard,
    VariableType,
    make_key,
)
from prodsim.domain.timewindow import TimeWindow

__all__ = [
    "SYSTEM_COMPONENT",
    "ConstraintType",
    "Device",
    "DeviceCategory",
    "DeviceFormulation",
    "DeviceInitialState",
    "HydroDispatch",
    "NetworkFormulation",
    "ParameterType",
    "PowerLoad",
    "RenewableDispatch",
    "RenewableFix",
    "ThermalStandard",
    "TimeWindow",
    "VariableType",
    "make_key",
]
