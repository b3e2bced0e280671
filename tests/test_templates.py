"""Tests for model templates."""

import pytest

from prodsim.domain.models import DeviceCategory, DeviceFormulation, VariableType
from prodsim.errors import MissingFormulationError
from prodsim.system import PowerSystem
from prodsim.templates import (
    DeviceModel,
    ModelTemplate,
    NetworkModel,
    template_economic_dispatch,
    template_unit_commitment,
)


class TestModelTemplate:
    """Tests for ModelTemplate configuration."""

    def test_last_write_wins(self) -> None:
        """Test that setting a category twice keeps the latest formulation."""
        template = ModelTemplate()
        template.set_device_model(
            DeviceCategory.THERMAL_STANDARD, DeviceFormulation.THERMAL_BASIC_DISPATCH
        )
        template.set_formulation(
            DeviceCategory.THERMAL_STANDARD,
            DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT,
        )

        assert (
            template.get_formulation(DeviceCategory.THERMAL_STANDARD)
            == DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT
        )
        assert len(template.device_models) == 1

    def test_device_model_object(self) -> None:
        """Test assigning a prebuilt DeviceModel."""
        template = ModelTemplate()
        template.set_device_model(
            DeviceModel(DeviceCategory.POWER_LOAD, DeviceFormulation.STATIC_POWER_LOAD)
        )
        assert template.get_formulation(DeviceCategory.POWER_LOAD) is not None

    def test_inapplicable_formulation(self) -> None:
        """Test that formulations are checked against their category."""
        with pytest.raises(ValueError, match="cannot be applied"):
            DeviceModel(
                DeviceCategory.POWER_LOAD, DeviceFormulation.RENEWABLE_FULL_DISPATCH
            )

    def test_network_model(self) -> None:
        """Test replacing the network model."""
        template = ModelTemplate()
        template.set_network_model(NetworkModel(use_slacks=True, slack_penalty=500.0))
        assert template.network_model.use_slacks
        assert template.network_model.slack_penalty == 500.0

    def test_invalid_slack_penalty(self) -> None:
        """Test that slack penalties must be positive."""
        with pytest.raises(ValueError):
            NetworkModel(use_slacks=True, slack_penalty=0.0)


class TestInstantiate:
    """Tests for validating a template against a system."""

    def test_missing_formulation(self, small_system: PowerSystem) -> None:
        """Test that unmatched categories raise MissingFormulationError."""
        template = ModelTemplate()
        template.set_device_model(
            DeviceCategory.THERMAL_STANDARD, DeviceFormulation.THERMAL_BASIC_DISPATCH
        )

        with pytest.raises(MissingFormulationError) as excinfo:
            template.instantiate(small_system)
        assert excinfo.value.category == DeviceCategory.RENEWABLE_DISPATCH.value

    def test_instance_is_frozen(self, small_system: PowerSystem) -> None:
        """Test that later template edits do not change an instance."""
        template = template_unit_commitment()
        instance = template.instantiate(small_system)

        template.set_device_model(
            DeviceCategory.THERMAL_STANDARD, DeviceFormulation.THERMAL_BASIC_DISPATCH
        )
        assert (
            instance.formulation(DeviceCategory.THERMAL_STANDARD)
            == DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT
        )
        with pytest.raises(TypeError):
            instance.device_models[DeviceCategory.THERMAL_STANDARD] = None  # type: ignore[index]

    def test_instance_follows_system_categories(self, small_system: PowerSystem) -> None:
        """Test that only categories present in the system are kept."""
        instance = template_unit_commitment().instantiate(small_system)

        assert list(instance.device_models) == [
            DeviceCategory.THERMAL_STANDARD,
            DeviceCategory.RENEWABLE_DISPATCH,
            DeviceCategory.POWER_LOAD,
        ]

    def test_produces(self, small_system: PowerSystem) -> None:
        """Test variable availability queries."""
        uc = template_unit_commitment().instantiate(small_system)
        ed = template_economic_dispatch().instantiate(small_system)

        assert uc.produces(DeviceCategory.THERMAL_STANDARD, VariableType.ON)
        assert not ed.produces(DeviceCategory.THERMAL_STANDARD, VariableType.ON)
        assert uc.has_integer_variables
        assert not ed.has_integer_variables
