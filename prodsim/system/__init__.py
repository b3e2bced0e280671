"""Time-series backed system data sources."""

from prodsim.system.power_system import MAX_ACTIVE_POWER, PowerSystem

__all__ = ["MAX_ACTIVE_POWER", "PowerSystem"]
