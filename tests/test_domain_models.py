"""Tests for domain models."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from prodsim.domain.models import (
    FORMULATION_CATEGORIES,
    FORMULATION_VARIABLES,
    INTEGER_FORMULATIONS,
    ConstraintType,
    DeviceCategory,
    DeviceFormulation,
    DeviceInitialState,
    HydroDispatch,
    ParameterType,
    PowerLoad,
    RenewableDispatch,
    RenewableFix,
    ThermalStandard,
    VariableType,
    device_rating,
    make_key,
)
from prodsim.domain.timewindow import TimeWindow


class TestResultKeys:
    """Tests for result identifiers."""

    def test_variable_key(self) -> None:
        """Test the <Type>__<Category> form for variables."""
        key = make_key(VariableType.ACTIVE_POWER, DeviceCategory.THERMAL_STANDARD)
        assert key == "ActivePowerVariable__ThermalStandard"

    def test_parameter_key(self) -> None:
        """Test the key of the on-status feed-forward parameter."""
        key = make_key(ParameterType.ON_STATUS, DeviceCategory.THERMAL_STANDARD)
        assert key == "OnStatusParameter__ThermalStandard"

    def test_dual_key(self) -> None:
        """Test the key of the system balance dual."""
        key = make_key(ConstraintType.COPPER_PLATE_BALANCE, "System")
        assert key == "CopperPlateBalanceConstraint__System"


class TestThermalStandard:
    """Tests for ThermalStandard model."""

    def test_defaults(self) -> None:
        """Test that defaults describe an offline, unconstrained unit."""
        unit = ThermalStandard(name="G1", max_active_power=100.0)

        assert unit.category == DeviceCategory.THERMAL_STANDARD
        assert unit.status is False
        assert unit.active_power == 0.0
        assert unit.time_at_status == 999.0
        assert unit.available

    def test_min_above_max_rejected(self) -> None:
        """Test that min_active_power cannot exceed max_active_power."""
        with pytest.raises(ValidationError, match="exceeds"):
            ThermalStandard(name="G1", min_active_power=120.0, max_active_power=100.0)

    def test_offline_with_output_rejected(self) -> None:
        """Test that an offline unit cannot start with output."""
        with pytest.raises(ValidationError, match="offline"):
            ThermalStandard(
                name="G1", max_active_power=100.0, status=False, active_power=10.0
            )

    def test_negative_power_rejected(self) -> None:
        """Test that negative capacities are rejected."""
        with pytest.raises(ValidationError):
            ThermalStandard(name="G1", max_active_power=-1.0)

    def test_empty_name_rejected(self) -> None:
        """Test that devices need a name."""
        with pytest.raises(ValidationError):
            ThermalStandard(name="", max_active_power=100.0)

    def test_immutability(self) -> None:
        """Test that devices are immutable."""
        unit = ThermalStandard(name="G1", max_active_power=100.0)

        with pytest.raises(ValidationError):
            unit.max_active_power = 200.0  # type: ignore[misc]


class TestDeviceRating:
    """Tests for time-series scaling of devices."""

    @pytest.mark.parametrize(
        ("device", "expected"),
        [
            (RenewableDispatch(name="W", rating=200.0), 200.0),
            (RenewableFix(name="PV", rating=30.0), 30.0),
            (HydroDispatch(name="H", rating=50.0), 50.0),
            (PowerLoad(name="L", max_active_power=700.0), 700.0),
            (ThermalStandard(name="G", max_active_power=350.0), 350.0),
        ],
    )
    def test_rating(self, device: object, expected: float) -> None:
        """Test the scale applied to per-unit series."""
        assert device_rating(device) == expected  # type: ignore[arg-type]


class TestFormulationRegistry:
    """Tests for the formulation registries."""

    def test_every_formulation_registered(self) -> None:
        """Test that each formulation declares categories and variables."""
        for formulation in DeviceFormulation:
            assert formulation in FORMULATION_CATEGORIES
            assert formulation in FORMULATION_VARIABLES

    def test_commitment_formulations_produce_on_variable(self) -> None:
        """Test that integer formulations expose the commitment status."""
        for formulation in INTEGER_FORMULATIONS:
            assert VariableType.ON in FORMULATION_VARIABLES[formulation]

    def test_dispatch_has_no_on_variable(self) -> None:
        """Test that continuous dispatch has no commitment status."""
        variables = FORMULATION_VARIABLES[DeviceFormulation.THERMAL_BASIC_DISPATCH]
        assert variables == (VariableType.ACTIVE_POWER,)

    def test_fixed_output_categories(self) -> None:
        """Test that FixedOutput applies to renewables and hydro only."""
        categories = FORMULATION_CATEGORIES[DeviceFormulation.FIXED_OUTPUT]
        assert DeviceCategory.RENEWABLE_FIX in categories
        assert DeviceCategory.THERMAL_STANDARD not in categories


class TestDeviceInitialState:
    """Tests for DeviceInitialState model."""

    def test_valid_state(self) -> None:
        """Test creating an online state."""
        state = DeviceInitialState(status=True, active_power=80.0, time_at_status=3.0)
        assert state.status
        assert state.time_at_status == 3.0

    def test_negative_time_rejected(self) -> None:
        """Test that time at status cannot be negative."""
        with pytest.raises(ValidationError):
            DeviceInitialState(status=True, active_power=0.0, time_at_status=-1.0)


class TestTimeWindow:
    """Tests for TimeWindow arithmetic."""

    @pytest.fixture
    def window(self, base_timestamp: datetime) -> TimeWindow:
        """48 hourly periods advancing 24 hours."""
        return TimeWindow(
            start=base_timestamp,
            resolution=timedelta(hours=1),
            horizon=48,
            interval=timedelta(hours=24),
        )

    def test_derived_lengths(self, window: TimeWindow) -> None:
        """Test interval and look-ahead period counts."""
        assert window.interval_periods == 24
        assert window.look_ahead_periods == 24
        assert window.end == window.start + timedelta(hours=48)

    def test_timestamps(self, window: TimeWindow) -> None:
        """Test that timestamps step by the resolution."""
        index = window.index()
        assert len(index) == 48
        assert index[1] - index[0] == timedelta(hours=1)
        assert index.name == "DateTime"

    def test_realized_timestamps(self, window: TimeWindow) -> None:
        """Test that the look-ahead is dropped from realized periods."""
        realized = window.realized_timestamps()
        assert len(realized) == 24
        assert realized[-1] == window.start + timedelta(hours=23)

    def test_advance_is_pure(self, window: TimeWindow) -> None:
        """Test that advancing returns a new window."""
        advanced = window.advance()

        assert advanced.start == window.start + timedelta(hours=24)
        assert window.start == datetime(2024, 1, 1)
        assert window.advance(3).start == window.start + timedelta(hours=72)

    def test_contains(self, window: TimeWindow) -> None:
        """Test the half-open window membership."""
        assert window.contains(window.start)
        assert not window.contains(window.end)

    def test_interval_must_be_resolution_multiple(self, base_timestamp: datetime) -> None:
        """Test that misaligned intervals are rejected."""
        with pytest.raises(ValidationError, match="multiple"):
            TimeWindow(
                start=base_timestamp,
                resolution=timedelta(hours=1),
                horizon=4,
                interval=timedelta(minutes=90),
            )

    def test_horizon_must_be_positive(self, base_timestamp: datetime) -> None:
        """Test that empty windows are rejected."""
        with pytest.raises(ValidationError):
            TimeWindow(
                start=base_timestamp,
                resolution=timedelta(hours=1),
                horizon=0,
                interval=timedelta(hours=1),
            )
