"""Tests for feed-forward rules."""

from datetime import datetime, timedelta

import numpy as np
import pandas as pd
import pytest

from conftest import ScriptedSolver, semicontinuous_thermal
from prodsim.domain.models import DeviceCategory, VariableType
from prodsim.domain.timewindow import TimeWindow
from prodsim.errors import FeedForwardBindingError
from prodsim.optimization import DecisionModel
from prodsim.simulation.feedforward import (
    FixValueFeedforward,
    LowerBoundFeedforward,
    SemiContinuousFeedforward,
    UpperBoundFeedforward,
    align_to_window,
)
from prodsim.system import PowerSystem
from prodsim.templates import template_economic_dispatch

THERMAL = DeviceCategory.THERMAL_STANDARD


def _window(start: datetime, minutes: int, horizon: int) -> TimeWindow:
    resolution = timedelta(minutes=minutes)
    return TimeWindow(start=start, resolution=resolution, horizon=horizon, interval=resolution)


def _frame(start: datetime, minutes: int, values: list[float]) -> pd.DataFrame:
    index = pd.DatetimeIndex(
        [start + i * timedelta(minutes=minutes) for i in range(len(values))],
        name="DateTime",
    )
    return pd.DataFrame({"G1": values}, index=index)


class TestAlignment:
    """Tests for aligning source values to a target window."""

    def test_finer_target_holds_value(self, base_timestamp: datetime) -> None:
        """Test that 15-minute periods take the covering hourly value."""
        source = _frame(base_timestamp, 60, [1.0, 0.0])
        aligned = align_to_window(source, _window(base_timestamp, 15, 8))

        assert aligned["G1"].tolist() == [1.0] * 4 + [0.0] * 4

    def test_coarser_target_first(self, base_timestamp: datetime) -> None:
        """Test that coarser periods take the value at their start."""
        source = _frame(base_timestamp, 15, [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0])
        aligned = align_to_window(source, _window(base_timestamp, 60, 2), "first")

        assert aligned["G1"].tolist() == [1.0, 5.0]

    def test_coarser_target_mean(self, base_timestamp: datetime) -> None:
        """Test that coarser periods average the covered source periods."""
        source = _frame(base_timestamp, 15, [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0])
        aligned = align_to_window(source, _window(base_timestamp, 60, 2), "mean")

        assert aligned["G1"].tolist() == [2.5, 6.5]

    def test_beyond_source_holds_last(self, base_timestamp: datetime) -> None:
        """Test that periods past the source window hold the last value."""
        source = _frame(base_timestamp, 60, [3.0, 4.0])
        for aggregation in ("first", "mean"):
            aligned = align_to_window(source, _window(base_timestamp, 60, 4), aggregation)
            assert aligned["G1"].tolist() == [3.0, 4.0, 4.0, 4.0]

    def test_offset_target(self, base_timestamp: datetime) -> None:
        """Test a target window starting inside the source window."""
        source = _frame(base_timestamp, 60, [1.0, 2.0, 3.0])
        start = base_timestamp + timedelta(minutes=75)
        aligned = align_to_window(source, _window(start, 15, 4))

        assert aligned["G1"].tolist() == [2.0, 2.0, 2.0, 3.0]
        assert aligned.index[0] == start

    def test_unknown_aggregation(self, base_timestamp: datetime) -> None:
        """Test that only first and mean are accepted."""
        with pytest.raises(ValueError):
            align_to_window(
                _frame(base_timestamp, 60, [1.0]), _window(base_timestamp, 60, 1), "max"
            )


class TestBinding:
    """Tests for attaching rules to stages."""

    def test_resolves_source_stage(
        self, uc_model: DecisionModel, ed_model: DecisionModel
    ) -> None:
        """Test that the nearest preceding producer becomes the source."""
        rule = semicontinuous_thermal()
        bound = rule.attach("ED", {"UC": uc_model, "ED": ed_model})

        assert bound.source_stage == "UC"
        assert bound.target_stage == "ED"
        assert rule.target_stage is None
        assert bound.is_attached

    def test_source_without_variable(
        self, uc_model: DecisionModel, ed_model: DecisionModel
    ) -> None:
        """Test that the source must produce the source variable."""
        rule = SemiContinuousFeedforward(
            component_type=THERMAL,
            source=VariableType.ON,
            affected_values=(VariableType.ACTIVE_POWER,),
            source_stage="ED",
        )
        with pytest.raises(FeedForwardBindingError, match="does not produce"):
            rule.attach("UC", {"UC": uc_model, "ED": ed_model})

    def test_no_preceding_producer(
        self, uc_model: DecisionModel, ed_model: DecisionModel
    ) -> None:
        """Test that a missing source stage is reported."""
        with pytest.raises(FeedForwardBindingError, match="no stage"):
            semicontinuous_thermal().attach("ED", {"ED": ed_model, "UC": uc_model})

    def test_same_stage(self, uc_model: DecisionModel) -> None:
        """Test that source and target must differ."""
        rule = UpperBoundFeedforward(
            component_type=THERMAL,
            source=VariableType.ACTIVE_POWER,
            affected_values=(VariableType.ACTIVE_POWER,),
            source_stage="UC",
        )
        with pytest.raises(FeedForwardBindingError, match="same stage"):
            rule.attach("UC", {"UC": uc_model})

    def test_target_without_affected_variable(
        self, uc_model: DecisionModel, ed_model: DecisionModel
    ) -> None:
        """Test that the target must expose every affected variable."""
        rule = FixValueFeedforward(
            component_type=THERMAL,
            source=VariableType.ON,
            affected_values=(VariableType.ON,),
        )
        with pytest.raises(FeedForwardBindingError, match="does not expose"):
            rule.attach("ED", {"UC": uc_model, "ED": ed_model})

    def test_unknown_stage(self, ed_model: DecisionModel) -> None:
        """Test that unknown stage names are reported."""
        rule = UpperBoundFeedforward(
            component_type=THERMAL,
            source=VariableType.ACTIVE_POWER,
            affected_values=(VariableType.ACTIVE_POWER,),
            source_stage="DA",
        )
        with pytest.raises(FeedForwardBindingError, match="unknown source"):
            rule.attach("ED", {"ED": ed_model})

    def test_needs_affected_values(self) -> None:
        """Test that a rule must affect something."""
        with pytest.raises(ValueError):
            UpperBoundFeedforward(
                component_type=THERMAL,
                source=VariableType.ACTIVE_POWER,
                affected_values=(),
            )


class TestApply:
    """Tests for building and applying rules."""

    @pytest.fixture
    def bound(self, uc_model: DecisionModel, ed_model: DecisionModel):
        """Semi-continuous rule bound UC -> ED."""
        return semicontinuous_thermal().attach("ED", {"UC": uc_model, "ED": ed_model})

    def test_semicontinuous_replaces_lower_bound(
        self, bound, ed_model: DecisionModel
    ) -> None:
        """Test that the rule adds its parameter and bounds."""
        container = ed_model.build(feedforwards=[bound])

        assert "OnStatusParameter__ThermalStandard" in container.parameters
        assert not container.constraints["active_power_lb__ThermalStandard"].active
        assert "semicontinuous_ub__ActivePowerVariable__ThermalStandard" in (
            container.constraints
        )
        assert "semicontinuous_lb__ActivePowerVariable__ThermalStandard" in (
            container.constraints
        )

    def test_apply_is_idempotent(
        self, bound, uc_model: DecisionModel, ed_model: DecisionModel
    ) -> None:
        """Test that applying twice gives the same parameter values."""
        uc_model.solver = ScriptedSolver(on_value=0.0)
        snapshot = uc_model.optimize()
        container = ed_model.build(feedforwards=[bound])
        key = "OnStatusParameter__ThermalStandard"

        bound.apply(snapshot, container)
        first = container.parameter_values()[key]
        bound.apply(snapshot, container)
        second = container.parameter_values()[key]

        pd.testing.assert_frame_equal(first, second)
        assert (first.to_numpy() == 0.0).all()

    def test_apply_does_not_mutate_source(
        self, bound, uc_model: DecisionModel, ed_model: DecisionModel
    ) -> None:
        """Test that the source snapshot is left untouched."""
        snapshot = uc_model.optimize()
        key = "OnVariable__ThermalStandard"
        before = snapshot.variables[key].copy()

        bound.apply(snapshot, ed_model.build(feedforwards=[bound]))
        pd.testing.assert_frame_equal(snapshot.variables[key], before)

    def test_missing_source_variable(
        self, bound, ed_model: DecisionModel
    ) -> None:
        """Test that snapshots without the source variable are rejected."""
        container = ed_model.build(feedforwards=[bound])
        ed_snapshot = ed_model.solve(container)

        with pytest.raises(FeedForwardBindingError, match="has no"):
            bound.apply(ed_snapshot, container)

    def test_upper_bound_parameter(
        self, small_system: PowerSystem
    ) -> None:
        """Test that bound rules average the source periods."""
        solver = ScriptedSolver()
        source = DecisionModel(template_economic_dispatch(), small_system, "A", solver=solver)
        target = DecisionModel(template_economic_dispatch(), small_system, "B", solver=solver)
        rule = UpperBoundFeedforward(
            component_type=THERMAL,
            source=VariableType.ACTIVE_POWER,
            affected_values=(VariableType.ACTIVE_POWER,),
        ).attach("B", {"A": source, "B": target})

        snapshot = source.optimize()
        container = target.build(feedforwards=[rule])
        initial = container.parameter_values()["UpperBoundValueParameter__ThermalStandard"]
        assert initial["Base"].iloc[0] == 100.0

        rule.apply(snapshot, container)
        applied = container.parameter_values()["UpperBoundValueParameter__ThermalStandard"]
        np.testing.assert_allclose(applied.to_numpy(), 10.0)
        assert "feedforward_ub__ActivePowerVariable__ThermalStandard" in container.constraints

    def test_lower_bound_rule(self, small_system: PowerSystem) -> None:
        """Test that lower bound rules add their constraint."""
        solver = ScriptedSolver()
        source = DecisionModel(template_economic_dispatch(), small_system, "A", solver=solver)
        target = DecisionModel(template_economic_dispatch(), small_system, "B", solver=solver)
        rule = LowerBoundFeedforward(
            component_type=THERMAL,
            source=VariableType.ACTIVE_POWER,
            affected_values=(VariableType.ACTIVE_POWER,),
        ).attach("B", {"A": source, "B": target})

        container = target.build(feedforwards=[rule])
        assert "feedforward_lb__ActivePowerVariable__ThermalStandard" in container.constraints
        assert "LowerBoundValueParameter__ThermalStandard" in container.parameters
