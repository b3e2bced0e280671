"""Synthetic test systems for day-ahead / real-time simulations.

The day-ahead and real-time systems share devices and are built from the
same smooth profiles, so a day-ahead commitment is a sensible input to the
real-time dispatch.
"""

from datetime import datetime, timedelta

from prodsim.domain.models import (
    HydroDispatch,
    PowerLoad,
    RenewableDispatch,
    RenewableFix,
    ThermalStandard,
)
from prodsim.generators.profiles import ProfileGenerator
from prodsim.system.power_system import PowerSystem


def _thermal_fleet() -> list[ThermalStandard]:
    return [
        ThermalStandard(
            name="Coal_1",
            min_active_power=150.0,
            max_active_power=350.0,
            ramp_up=2.0,
            ramp_down=2.0,
            min_up_time=8.0,
            min_down_time=8.0,
            variable_cost=22.0,
            fixed_cost=300.0,
            start_up_cost=5000.0,
            status=True,
            active_power=250.0,
            time_at_status=24.0,
        ),
        ThermalStandard(
            name="CC_1",
            min_active_power=80.0,
            max_active_power=250.0,
            ramp_up=4.0,
            ramp_down=4.0,
            min_up_time=4.0,
            min_down_time=2.0,
            variable_cost=35.0,
            fixed_cost=200.0,
            start_up_cost=2000.0,
            status=True,
            active_power=120.0,
            time_at_status=24.0,
        ),
        ThermalStandard(
            name="CT_1",
            min_active_power=20.0,
            max_active_power=120.0,
            ramp_up=8.0,
            ramp_down=8.0,
            min_up_time=1.0,
            min_down_time=1.0,
            variable_cost=70.0,
            fixed_cost=50.0,
            start_up_cost=300.0,
        ),
        ThermalStandard(
            name="CT_2",
            min_active_power=20.0,
            max_active_power=120.0,
            ramp_up=8.0,
            ramp_down=8.0,
            min_up_time=1.0,
            min_down_time=1.0,
            variable_cost=75.0,
            fixed_cost=50.0,
            start_up_cost=300.0,
        ),
    ]


def build_test_system(
    name: str,
    initial_time: datetime,
    periods: int,
    resolution: timedelta,
    peak_load_mw: float = 700.0,
    noise_std: float = 0.0,
    seed: int | None = None,
) -> PowerSystem:
    """Build a small system with thermal, renewable, hydro and load devices.

    Args:
        name: System name.
        initial_time: First timestamp of every series.
        periods: Number of periods of data.
        resolution: Native resolution.
        peak_load_mw: Peak demand (MW).
        noise_std: Per-unit forecast noise.
        seed: Random seed for reproducibility.

    Returns:
        PowerSystem without a forecast structure.
    """
    system = PowerSystem(name, initial_time, resolution)
    profiles = ProfileGenerator(noise_std=noise_std, seed=seed)

    for unit in _thermal_fleet():
        system.add_component(unit)

    system.add_component(RenewableDispatch(name="Wind_1", rating=200.0))
    system.add_time_series("Wind_1", profiles.wind(initial_time, periods, resolution))

    system.add_component(RenewableDispatch(name="Solar_1", rating=150.0))
    system.add_time_series("Solar_1", profiles.solar(initial_time, periods, resolution))

    system.add_component(RenewableFix(name="RoofPV_1", rating=30.0))
    system.add_time_series(
        "RoofPV_1", profiles.solar(initial_time, periods, resolution)
    )

    system.add_component(HydroDispatch(name="Hydro_1", rating=50.0, variable_cost=5.0))
    system.add_time_series("Hydro_1", profiles.constant(periods, 0.8))

    system.add_component(PowerLoad(name="Load_1", max_active_power=peak_load_mw))
    system.add_time_series("Load_1", profiles.load(initial_time, periods, resolution))

    return system


def build_day_ahead_system(
    initial_time: datetime,
    days: int = 3,
    horizon_hours: int = 48,
    interval: timedelta = timedelta(hours=24),
    seed: int | None = 42,
) -> PowerSystem:
    """Hourly system with a rolling day-ahead forecast structure."""
    system = build_test_system(
        "DA",
        initial_time,
        periods=days * 24,
        resolution=timedelta(hours=1),
        seed=seed,
    )
    system.transform_single_time_series(horizon_hours, interval)
    return system


def build_real_time_system(
    initial_time: datetime,
    days: int = 3,
    horizon_periods: int = 12,
    interval: timedelta = timedelta(minutes=15),
    noise_std: float = 0.0,
    seed: int | None = 42,
) -> PowerSystem:
    """Five-minute system with a rolling real-time forecast structure."""
    system = build_test_system(
        "RT",
        initial_time,
        periods=days * 24 * 12,
        resolution=timedelta(minutes=5),
        noise_std=noise_std,
        seed=seed,
    )
    system.transform_single_time_series(horizon_periods, interval)
    return system
