"""Time-series backed system data source.

A ``PowerSystem`` holds the devices of one system and their time series at
a single native resolution. Decision models read windows of it while a
simulation rolls forward. The forecast structure (problem horizon and the
interval between problem starts) is set with
``transform_single_time_series``.
"""

import logging
from datetime import datetime, timedelta

import numpy as np

from prodsim.domain.models import (
    Device,
    DeviceCategory,
    HydroDispatch,
    PowerLoad,
    RenewableDispatch,
    RenewableFix,
    device_rating,
)
from prodsim.domain.timewindow import TimeWindow
from prodsim.errors import BuildError

logger = logging.getLogger(__name__)

MAX_ACTIVE_POWER = "max_active_power"

# Device types that cannot be modelled without a max_active_power series.
_TIME_SERIES_DEVICES = (RenewableDispatch, RenewableFix, HydroDispatch, PowerLoad)


class PowerSystem:
    """Devices plus time series at one native resolution.

    Time series are stored per unit of the device rating and returned in MW.
    """

    def __init__(
        self,
        name: str,
        initial_time: datetime,
        resolution: timedelta,
        base_power: float = 100.0,
    ) -> None:
        """Initialize an empty system.

        Args:
            name: System name used in log messages.
            initial_time: Timestamp of the first value of every series.
            resolution: Native resolution of every series.
            base_power: System base power (MVA).
        """
        if resolution <= timedelta(0):
            raise ValueError("resolution must be positive")
        self.name = name
        self.initial_time = initial_time
        self.resolution = resolution
        self.base_power = base_power
        self._devices: dict[str, Device] = {}
        self._time_series: dict[tuple[str, str], np.ndarray] = {}
        self._horizon: int | None = None
        self._interval: timedelta | None = None

    def __repr__(self) -> str:
        return (
            f"PowerSystem(name={self.name!r}, devices={len(self._devices)}, "
            f"resolution={self.resolution}, horizon={self._horizon})"
        )

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def add_component(self, device: Device) -> None:
        if device.name in self._devices:
            raise ValueError(f"Device '{device.name}' already exists in {self.name}")
        self._devices[device.name] = device

    def get_component(self, name: str) -> Device:
        try:
            return self._devices[name]
        except KeyError:
            raise KeyError(f"Device '{name}' not found in {self.name}") from None

    def get_components(self, category: DeviceCategory) -> list[Device]:
        """Available devices of a category, in insertion order."""
        return [
            d
            for d in self._devices.values()
            if d.category == category and d.available
        ]

    def device_categories(self) -> list[DeviceCategory]:
        """Categories with at least one available device, in insertion order."""
        seen: list[DeviceCategory] = []
        for device in self._devices.values():
            if device.available and device.category not in seen:
                seen.append(device.category)
        return seen

    # ------------------------------------------------------------------
    # Time series
    # ------------------------------------------------------------------

    def add_time_series(
        self,
        device_name: str,
        values: np.ndarray | list[float],
        label: str = MAX_ACTIVE_POWER,
    ) -> None:
        """Attach a per-unit time series to a device.

        Args:
            device_name: Name of an existing device.
            values: Per-unit values starting at ``initial_time``.
            label: Series label.
        """
        self.get_component(device_name)
        array = np.asarray(values, dtype=float)
        if array.ndim != 1 or array.size == 0:
            raise ValueError("Time series must be a non-empty 1-D array")
        if not np.all(np.isfinite(array)):
            raise ValueError(f"Time series for '{device_name}' has non-finite values")
        if np.any(array < 0):
            raise ValueError(f"Time series for '{device_name}' has negative values")
        self._time_series[(device_name, label)] = array

    def has_time_series(self, device_name: str, label: str = MAX_ACTIVE_POWER) -> bool:
        return (device_name, label) in self._time_series

    def transform_single_time_series(self, horizon: int, interval: timedelta) -> None:
        """Set the forecast structure used by decision models.

        Args:
            horizon: Number of periods in every problem window.
            interval: Time between consecutive problem starts.
        """
        if horizon <= 0:
            raise ValueError(f"horizon must be positive, got {horizon}")
        if interval <= timedelta(0) or interval % self.resolution:
            raise ValueError(
                f"interval {interval} must be a positive multiple of "
                f"resolution {self.resolution}"
            )
        self._horizon = horizon
        self._interval = interval
        logger.debug(
            "System %s forecast structure: horizon=%d, interval=%s",
            self.name,
            horizon,
            interval,
        )

    @property
    def horizon(self) -> int | None:
        return self._horizon

    @property
    def interval(self) -> timedelta | None:
        return self._interval

    @property
    def available_horizon(self) -> int:
        """Periods available in every attached series."""
        if not self._time_series:
            return 0
        return min(len(v) for v in self._time_series.values())

    @property
    def data_end(self) -> datetime:
        """Exclusive end of the available data."""
        return self.initial_time + self.available_horizon * self.resolution

    def missing_time_series(self) -> list[str]:
        """Names of devices that need a series but have none."""
        return [
            d.name
            for d in self._devices.values()
            if d.available
            and isinstance(d, _TIME_SERIES_DEVICES)
            and not self.has_time_series(d.name)
        ]

    def get_time_series_values(
        self,
        device_name: str,
        start: datetime,
        count: int,
        label: str = MAX_ACTIVE_POWER,
    ) -> np.ndarray:
        """Per-unit values for ``count`` periods starting at ``start``.

        Raises:
            BuildError: If the series is missing or the slice is out of range.
        """
        key = (device_name, label)
        if key not in self._time_series:
            raise BuildError(
                f"Device '{device_name}' in {self.name} has no '{label}' time series"
            )
        offset = start - self.initial_time
        if offset < timedelta(0) or offset % self.resolution:
            raise BuildError(
                f"{start} is not on the {self.resolution} grid of {self.name} "
                f"starting at {self.initial_time}"
            )
        first = offset // self.resolution
        series = self._time_series[key]
        if first + count > len(series):
            raise BuildError(
                f"Window of {count} periods at {start} exceeds the "
                f"{len(series)} periods available for '{device_name}' in {self.name}"
            )
        return series[first : first + count].copy()

    def get_active_power_profile(self, device: Device, window: TimeWindow) -> np.ndarray:
        """Time series of a device over a window, scaled to MW."""
        if window.resolution != self.resolution:
            raise BuildError(
                f"Window resolution {window.resolution} differs from the "
                f"{self.resolution} resolution of {self.name}"
            )
        values = self.get_time_series_values(device.name, window.start, window.horizon)
        return values * device_rating(device)
