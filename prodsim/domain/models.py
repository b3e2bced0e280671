"""Core domain models for the sequential simulation engine.

All device models use Pydantic with strict validation. Units:
- Power: MW (megawatts)
- Energy: MWh (megawatt-hours)
- Costs: $/MWh for energy, $/h for no-load, $ per start/stop
- Ramp rates: MW/min
- Up/down times: hours
"""

from enum import Enum
from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =============================================================================
# Type Aliases with Validation
# =============================================================================

PowerMW = Annotated[float, Field(ge=0, description="Power in megawatts (MW)")]
CostPerMWh = Annotated[float, Field(description="Cost in $/MWh")]
RampMWPerMin = Annotated[float, Field(gt=0, description="Ramp rate (MW/min)")]
Hours = Annotated[float, Field(ge=0, description="Duration in hours")]


# =============================================================================
# Enums
# =============================================================================


class DeviceCategory(str, Enum):
    """Abstract device categories a template assigns formulations to."""

    THERMAL_STANDARD = "ThermalStandard"
    RENEWABLE_DISPATCH = "RenewableDispatch"
    RENEWABLE_FIX = "RenewableFix"
    HYDRO_DISPATCH = "HydroDispatch"
    POWER_LOAD = "PowerLoad"


class DeviceFormulation(str, Enum):
    """Mathematical formulations available for devices."""

    THERMAL_STANDARD_UNIT_COMMITMENT = "ThermalStandardUnitCommitment"
    THERMAL_BASIC_UNIT_COMMITMENT = "ThermalBasicUnitCommitment"
    THERMAL_STANDARD_DISPATCH = "ThermalStandardDispatch"
    THERMAL_BASIC_DISPATCH = "ThermalBasicDispatch"
    THERMAL_DISPATCH_NO_MIN = "ThermalDispatchNoMin"
    RENEWABLE_FULL_DISPATCH = "RenewableFullDispatch"
    HYDRO_DISPATCH_RUN_OF_RIVER = "HydroDispatchRunOfRiver"
    FIXED_OUTPUT = "FixedOutput"
    STATIC_POWER_LOAD = "StaticPowerLoad"


class NetworkFormulation(str, Enum):
    """Network formulations."""

    COPPER_PLATE = "CopperPlatePowerModel"


class VariableType(str, Enum):
    """Decision variable types produced by formulations."""

    ACTIVE_POWER = "ActivePowerVariable"
    ON = "OnVariable"
    START = "StartVariable"
    STOP = "StopVariable"
    SYSTEM_BALANCE_SLACK_UP = "SystemBalanceSlackUp"
    SYSTEM_BALANCE_SLACK_DOWN = "SystemBalanceSlackDown"


class ParameterType(str, Enum):
    """Parameter types held in a built program."""

    ACTIVE_POWER_TIME_SERIES = "ActivePowerTimeSeriesParameter"
    ON_STATUS = "OnStatusParameter"
    UPPER_BOUND_VALUE = "UpperBoundValueParameter"
    LOWER_BOUND_VALUE = "LowerBoundValueParameter"
    FIX_VALUE = "FixValueParameter"


class ConstraintType(str, Enum):
    """Constraint types whose duals are reported."""

    COPPER_PLATE_BALANCE = "CopperPlateBalanceConstraint"


SYSTEM_COMPONENT = "System"


def make_key(entry_type: Enum | str, component: DeviceCategory | str) -> str:
    """Build the result identifier ``"<Type>__<Category>"``."""
    type_name = entry_type.value if isinstance(entry_type, Enum) else entry_type
    component_name = component.value if isinstance(component, Enum) else component
    return f"{type_name}__{component_name}"


# =============================================================================
# Formulation Registry
# =============================================================================

# Categories each formulation may be assigned to.
FORMULATION_CATEGORIES: dict[DeviceFormulation, frozenset[DeviceCategory]] = {
    DeviceFormulation.THERMAL_STANDARD_UNIT_COMMITMENT: frozenset(
        {DeviceCategory.THERMAL_STANDARD}
    ),
    DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT: frozenset(
        {DeviceCategory.THERMAL_STANDARD}
    ),
    DeviceFormulation.THERMAL_STANDARD_DISPATCH: frozenset(
        {DeviceCategory.THERMAL_STANDARD}
    ),
    DeviceFormulation.THERMAL_BASIC_DISPATCH: frozenset(
        {DeviceCategory.THERMAL_STANDARD}
    ),
    DeviceFormulation.THERMAL_DISPATCH_NO_MIN: frozenset(
        {DeviceCategory.THERMAL_STANDARD}
    ),
    DeviceFormulation.RENEWABLE_FULL_DISPATCH: frozenset(
        {DeviceCategory.RENEWABLE_DISPATCH}
    ),
    DeviceFormulation.HYDRO_DISPATCH_RUN_OF_RIVER: frozenset(
        {DeviceCategory.HYDRO_DISPATCH}
    ),
    DeviceFormulation.FIXED_OUTPUT: frozenset(
        {
            DeviceCategory.RENEWABLE_DISPATCH,
            DeviceCategory.RENEWABLE_FIX,
            DeviceCategory.HYDRO_DISPATCH,
        }
    ),
    DeviceFormulation.STATIC_POWER_LOAD: frozenset({DeviceCategory.POWER_LOAD}),
}

_COMMITMENT_VARIABLES = (
    VariableType.ACTIVE_POWER,
    VariableType.ON,
    VariableType.START,
    VariableType.STOP,
)

# Variables each formulation creates in a built program.
FORMULATION_VARIABLES: dict[DeviceFormulation, tuple[VariableType, ...]] = {
    DeviceFormulation.THERMAL_STANDARD_UNIT_COMMITMENT: _COMMITMENT_VARIABLES,
    DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT: _COMMITMENT_VARIABLES,
    DeviceFormulation.THERMAL_STANDARD_DISPATCH: (VariableType.ACTIVE_POWER,),
    DeviceFormulation.THERMAL_BASIC_DISPATCH: (VariableType.ACTIVE_POWER,),
    DeviceFormulation.THERMAL_DISPATCH_NO_MIN: (VariableType.ACTIVE_POWER,),
    DeviceFormulation.RENEWABLE_FULL_DISPATCH: (VariableType.ACTIVE_POWER,),
    DeviceFormulation.HYDRO_DISPATCH_RUN_OF_RIVER: (VariableType.ACTIVE_POWER,),
    DeviceFormulation.FIXED_OUTPUT: (),
    DeviceFormulation.STATIC_POWER_LOAD: (),
}

# Formulations with binary variables (no duals are reported for these programs).
INTEGER_FORMULATIONS = frozenset(
    {
        DeviceFormulation.THERMAL_STANDARD_UNIT_COMMITMENT,
        DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT,
    }
)


# =============================================================================
# Device Models
# =============================================================================


class Device(BaseModel):
    """Common fields of every device."""

    model_config = ConfigDict(frozen=True)

    category: ClassVar[DeviceCategory]

    name: Annotated[str, Field(min_length=1)]
    available: bool = True


class ThermalStandard(Device):
    """Dispatchable thermal generator with commitment data."""

    category: ClassVar[DeviceCategory] = DeviceCategory.THERMAL_STANDARD

    min_active_power: PowerMW = 0.0
    max_active_power: PowerMW
    ramp_up: RampMWPerMin = 1e6
    ramp_down: RampMWPerMin = 1e6
    min_up_time: Hours = 0.0
    min_down_time: Hours = 0.0
    variable_cost: CostPerMWh = 0.0
    fixed_cost: Annotated[float, Field(ge=0, description="No-load cost ($/h)")] = 0.0
    start_up_cost: Annotated[float, Field(ge=0)] = 0.0
    shut_down_cost: Annotated[float, Field(ge=0)] = 0.0

    # Initial state used when no prior solution exists
    status: bool = False
    active_power: PowerMW = 0.0
    time_at_status: Hours = 999.0

    @model_validator(mode="after")
    def check_limits(self) -> "ThermalStandard":
        if self.min_active_power > self.max_active_power:
            raise ValueError(
                f"min_active_power ({self.min_active_power}) exceeds "
                f"max_active_power ({self.max_active_power})"
            )
        if not self.status and self.active_power > 0:
            raise ValueError("An offline unit cannot have initial active_power > 0")
        return self


class RenewableDispatch(Device):
    """Curtailable renewable plant (wind, solar PV)."""

    category: ClassVar[DeviceCategory] = DeviceCategory.RENEWABLE_DISPATCH

    rating: PowerMW
    variable_cost: CostPerMWh = 0.0


class RenewableFix(Device):
    """Non-curtailable renewable plant (rooftop PV)."""

    category: ClassVar[DeviceCategory] = DeviceCategory.RENEWABLE_FIX

    rating: PowerMW


class HydroDispatch(Device):
    """Run-of-river hydro plant."""

    category: ClassVar[DeviceCategory] = DeviceCategory.HYDRO_DISPATCH

    rating: PowerMW
    variable_cost: CostPerMWh = 0.0


class PowerLoad(Device):
    """Fixed demand."""

    category: ClassVar[DeviceCategory] = DeviceCategory.POWER_LOAD

    max_active_power: PowerMW


def device_rating(device: Device) -> float:
    """Scale applied to a device's per-unit ``max_active_power`` time series."""
    if isinstance(device, (ThermalStandard, PowerLoad)):
        return device.max_active_power
    if isinstance(device, (RenewableDispatch, RenewableFix, HydroDispatch)):
        return device.rating
    raise TypeError(f"Unsupported device type: {type(device).__name__}")


# =============================================================================
# Initial Conditions
# =============================================================================


class DeviceInitialState(BaseModel):
    """State of a thermal unit just before a window starts."""

    model_config = ConfigDict(frozen=True)

    status: bool
    active_power: PowerMW
    time_at_status: Hours = 999.0
