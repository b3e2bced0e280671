"""Rolling time-window arithmetic.

A stage solves over ``horizon`` periods of length ``resolution`` starting
at ``start`` and moves forward by ``interval`` after every execution. The
periods beyond the interval are the look-ahead and are dropped from
realized results.
"""

from datetime import datetime, timedelta
from typing import Annotated

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, model_validator


class TimeWindow(BaseModel):
    """Time window of a single stage execution."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    resolution: timedelta
    horizon: Annotated[int, Field(gt=0, description="Periods in the window")]
    interval: timedelta

    @model_validator(mode="after")
    def check_alignment(self) -> "TimeWindow":
        if self.resolution <= timedelta(0):
            raise ValueError("resolution must be positive")
        if self.interval <= timedelta(0):
            raise ValueError("interval must be positive")
        if self.interval % self.resolution:
            raise ValueError(
                f"interval {self.interval} is not a multiple of "
                f"resolution {self.resolution}"
            )
        return self

    @property
    def end(self) -> datetime:
        """Exclusive end of the window."""
        return self.start + self.horizon * self.resolution

    @property
    def interval_periods(self) -> int:
        """Number of periods the window advances per execution."""
        return self.interval // self.resolution

    @property
    def look_ahead_periods(self) -> int:
        """Periods solved beyond the interval."""
        return max(0, self.horizon - self.interval_periods)

    @property
    def timestamps(self) -> list[datetime]:
        return [self.start + i * self.resolution for i in range(self.horizon)]

    def index(self) -> pd.DatetimeIndex:
        """Timestamps as a pandas index."""
        return pd.DatetimeIndex(self.timestamps, name="DateTime")

    def realized_timestamps(self) -> list[datetime]:
        """Timestamps kept in realized results (look-ahead trimmed)."""
        count = min(self.horizon, self.interval_periods)
        return self.timestamps[:count]

    def advance(self, executions: int = 1) -> "TimeWindow":
        """Window shifted forward by ``executions`` intervals."""
        return self.model_copy(
            update={"start": self.start + executions * self.interval}
        )

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= timestamp < self.end
