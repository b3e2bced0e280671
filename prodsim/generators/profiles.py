"""Per-unit solar, wind and load profile generator.

Produces synthetic profiles with:
- Diurnal patterns (solar follows sun, wind peaks overnight, load peaks
  in the evening)
- Seasonal variations
- Optional forecast noise
- Reproducible via numpy.random.Generator seeds

Profiles are smooth functions of wall-clock time, so a day-ahead hourly
profile and a real-time 5-minute profile built from the same generator
agree at the shared timestamps.
"""

from datetime import datetime, timedelta

import numpy as np
from numpy.random import Generator


class ProfileGenerator:
    """Generates per-unit time series (values between 0 and 1)."""

    def __init__(self, noise_std: float = 0.0, seed: int | None = None) -> None:
        """Initialize the profile generator.

        Args:
            noise_std: Standard deviation of Gaussian noise added per period.
            seed: Random seed for reproducibility.
        """
        if noise_std < 0:
            raise ValueError("noise_std must be non-negative")
        self.noise_std = noise_std
        self._rng: Generator = np.random.default_rng(seed)

    @staticmethod
    def _hours(start: datetime, periods: int, resolution: timedelta) -> np.ndarray:
        """Fractional hour of day for every period."""
        step_hours = resolution.total_seconds() / 3600.0
        first = start.hour + start.minute / 60.0 + start.second / 3600.0
        return (first + step_hours * np.arange(periods)) % 24.0

    @staticmethod
    def _days(start: datetime, periods: int, resolution: timedelta) -> np.ndarray:
        """Day of year for every period."""
        step_days = resolution.total_seconds() / 86400.0
        first = start.timetuple().tm_yday + start.hour / 24.0
        return first + step_days * np.arange(periods)

    def _finish(self, values: np.ndarray) -> np.ndarray:
        if self.noise_std > 0:
            values = values + self._rng.normal(0, self.noise_std, size=values.shape)
        return np.clip(values, 0.0, 1.0)

    def solar(self, start: datetime, periods: int, resolution: timedelta) -> np.ndarray:
        """Solar capacity factor, zero at night."""
        hours = self._hours(start, periods, resolution)
        days = self._days(start, periods, resolution)

        # Bell curve peaking at solar noon (~13:00)
        hour_factor = np.clip(1 - ((hours - 13.0) / 7.0) ** 2, 0.0, None)
        hour_factor[(hours < 5) | (hours > 20)] = 0.0

        # Peak in summer (day 172 = June 21)
        seasonal_factor = 0.6 + 0.4 * np.cos(2 * np.pi * (days - 172) / 365)

        values = self._finish(hour_factor * seasonal_factor)
        values[hour_factor == 0.0] = 0.0
        return values

    def wind(self, start: datetime, periods: int, resolution: timedelta) -> np.ndarray:
        """Wind capacity factor, stronger at night and in spring/fall."""
        hours = self._hours(start, periods, resolution)
        days = self._days(start, periods, resolution)

        hour_factor = 0.6 + 0.3 * np.cos(2 * np.pi * (hours - 3) / 24)
        seasonal_factor = 0.7 + 0.2 * np.cos(4 * np.pi * days / 365)

        return self._finish(hour_factor * seasonal_factor)

    def load(self, start: datetime, periods: int, resolution: timedelta) -> np.ndarray:
        """Load as a fraction of peak: overnight trough, evening peak."""
        hours = self._hours(start, periods, resolution)

        morning = 0.15 * np.exp(-(((hours - 8.0) / 2.5) ** 2))
        evening = 0.3 * np.exp(-(((hours - 19.0) / 3.0) ** 2))
        values = 0.6 + morning + evening + 0.05 * np.sin(2 * np.pi * hours / 24)

        return self._finish(values)

    def constant(self, periods: int, value: float = 1.0) -> np.ndarray:
        if not 0.0 <= value <= 1.0:
            raise ValueError("value must be between 0 and 1")
        return np.full(periods, value)
