"""Tests for the PowerSystem data source."""

from datetime import datetime, timedelta

import numpy as np
import pytest

from prodsim.domain.models import (
    DeviceCategory,
    PowerLoad,
    RenewableDispatch,
    ThermalStandard,
)
from prodsim.domain.timewindow import TimeWindow
from prodsim.errors import BuildError
from prodsim.system import PowerSystem


class TestComponents:
    """Tests for device registration."""

    def test_duplicate_device_rejected(self, small_system: PowerSystem) -> None:
        """Test that device names are unique."""
        with pytest.raises(ValueError, match="already exists"):
            small_system.add_component(ThermalStandard(name="Base", max_active_power=1.0))

    def test_unknown_device(self, small_system: PowerSystem) -> None:
        """Test lookup of a missing device."""
        with pytest.raises(KeyError):
            small_system.get_component("Nope")

    def test_unavailable_devices_hidden(self, base_timestamp: datetime) -> None:
        """Test that unavailable devices are excluded from categories."""
        system = PowerSystem("S", base_timestamp, timedelta(hours=1))
        system.add_component(
            ThermalStandard(name="Off", max_active_power=10.0, available=False)
        )
        system.add_component(PowerLoad(name="L", max_active_power=10.0))

        assert system.device_categories() == [DeviceCategory.POWER_LOAD]
        assert system.get_components(DeviceCategory.THERMAL_STANDARD) == []


class TestTimeSeries:
    """Tests for time series storage and slicing."""

    def test_invalid_series_rejected(self, small_system: PowerSystem) -> None:
        """Test that negative or non-finite values are rejected."""
        with pytest.raises(ValueError, match="negative"):
            small_system.add_time_series("Wind", [0.1, -0.2])
        with pytest.raises(ValueError, match="non-finite"):
            small_system.add_time_series("Wind", [0.1, np.nan])
        with pytest.raises(ValueError):
            small_system.add_time_series("Wind", [])

    def test_missing_time_series(self, base_timestamp: datetime) -> None:
        """Test reporting of devices without series."""
        system = PowerSystem("S", base_timestamp, timedelta(hours=1))
        system.add_component(RenewableDispatch(name="W", rating=10.0))
        system.add_component(ThermalStandard(name="G", max_active_power=10.0))

        assert system.missing_time_series() == ["W"]

    def test_slice(self, small_system: PowerSystem, base_timestamp: datetime) -> None:
        """Test reading a slice of a series."""
        values = small_system.get_time_series_values(
            "Wind", base_timestamp + timedelta(hours=2), 3
        )
        np.testing.assert_allclose(values, [0.6, 0.8, 1.0])

    def test_slice_out_of_range(
        self, small_system: PowerSystem, base_timestamp: datetime
    ) -> None:
        """Test that slices past the data fail with BuildError."""
        with pytest.raises(BuildError, match="exceeds"):
            small_system.get_time_series_values(
                "Wind", base_timestamp + timedelta(hours=10), 6
            )

    def test_slice_off_grid(self, small_system: PowerSystem, base_timestamp: datetime) -> None:
        """Test that starts between periods fail with BuildError."""
        with pytest.raises(BuildError, match="grid"):
            small_system.get_time_series_values(
                "Wind", base_timestamp + timedelta(minutes=30), 2
            )

    def test_profile_scaled_to_mw(
        self, small_system: PowerSystem, base_timestamp: datetime
    ) -> None:
        """Test that profiles are multiplied by the device rating."""
        window = TimeWindow(
            start=base_timestamp,
            resolution=timedelta(hours=1),
            horizon=2,
            interval=timedelta(hours=1),
        )
        wind = small_system.get_component("Wind")
        np.testing.assert_allclose(
            small_system.get_active_power_profile(wind, window), [10.0, 20.0]
        )

    def test_profile_resolution_mismatch(
        self, small_system: PowerSystem, base_timestamp: datetime
    ) -> None:
        """Test that windows at another resolution are rejected."""
        window = TimeWindow(
            start=base_timestamp,
            resolution=timedelta(minutes=30),
            horizon=2,
            interval=timedelta(hours=1),
        )
        with pytest.raises(BuildError, match="resolution"):
            small_system.get_active_power_profile(
                small_system.get_component("Wind"), window
            )


class TestForecastStructure:
    """Tests for transform_single_time_series."""

    def test_structure(self, small_system: PowerSystem, base_timestamp: datetime) -> None:
        """Test horizon, interval and data end."""
        assert small_system.horizon == 6
        assert small_system.interval == timedelta(hours=3)
        assert small_system.available_horizon == 12
        assert small_system.data_end == base_timestamp + timedelta(hours=12)

    def test_invalid_interval(self, small_system: PowerSystem) -> None:
        """Test that intervals off the resolution grid are rejected."""
        with pytest.raises(ValueError, match="multiple"):
            small_system.transform_single_time_series(6, timedelta(minutes=90))

    def test_invalid_horizon(self, small_system: PowerSystem) -> None:
        """Test that the horizon must be positive."""
        with pytest.raises(ValueError, match="horizon"):
            small_system.transform_single_time_series(0, timedelta(hours=1))
