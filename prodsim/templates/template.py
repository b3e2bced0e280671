"""Problem templates: which formulation applies to which device category.

A ``ModelTemplate`` is plain configuration. ``instantiate`` checks it
against a data source and returns a frozen ``TemplateInstance`` that
decision models build from.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from prodsim.domain.models import (
    FORMULATION_CATEGORIES,
    FORMULATION_VARIABLES,
    INTEGER_FORMULATIONS,
    DeviceCategory,
    DeviceFormulation,
    NetworkFormulation,
    VariableType,
)
from prodsim.errors import MissingFormulationError
from prodsim.system.power_system import PowerSystem


@dataclass(frozen=True)
class DeviceModel:
    """Formulation assigned to a device category."""

    category: DeviceCategory
    formulation: DeviceFormulation

    def __post_init__(self) -> None:
        allowed = FORMULATION_CATEGORIES[self.formulation]
        if self.category not in allowed:
            raise ValueError(
                f"Formulation {self.formulation.value} cannot be applied to "
                f"{self.category.value}"
            )

    @property
    def variables(self) -> tuple[VariableType, ...]:
        return FORMULATION_VARIABLES[self.formulation]


@dataclass(frozen=True)
class NetworkModel:
    """Network formulation.

    Attributes:
        formulation: Network formulation.
        use_slacks: Add penalised slack variables to the balance constraint.
        slack_penalty: Cost of balance slack ($/MWh).
    """

    formulation: NetworkFormulation = NetworkFormulation.COPPER_PLATE
    use_slacks: bool = False
    slack_penalty: float = 1e5

    def __post_init__(self) -> None:
        if self.slack_penalty <= 0:
            raise ValueError("slack_penalty must be positive")


@dataclass(frozen=True)
class TemplateInstance:
    """Template validated against a data source. Immutable."""

    device_models: Mapping[DeviceCategory, DeviceModel]
    network_model: NetworkModel

    def formulation(self, category: DeviceCategory) -> DeviceFormulation | None:
        model = self.device_models.get(category)
        return model.formulation if model else None

    def produces(self, category: DeviceCategory, variable: VariableType) -> bool:
        """Whether the built program has ``variable`` for ``category``."""
        model = self.device_models.get(category)
        return model is not None and variable in model.variables

    @property
    def has_integer_variables(self) -> bool:
        return any(
            m.formulation in INTEGER_FORMULATIONS for m in self.device_models.values()
        )


@dataclass
class ModelTemplate:
    """Mapping from device categories to formulations plus a network model."""

    network_model: NetworkModel = field(default_factory=NetworkModel)
    _device_models: dict[DeviceCategory, DeviceModel] = field(
        default_factory=dict, init=False, repr=False
    )

    def set_device_model(
        self,
        category: DeviceCategory | DeviceModel,
        formulation: DeviceFormulation | None = None,
    ) -> None:
        """Assign a formulation to a category. Last write wins."""
        if isinstance(category, DeviceModel):
            model = category
        else:
            if formulation is None:
                raise ValueError("formulation is required")
            model = DeviceModel(DeviceCategory(category), DeviceFormulation(formulation))
        self._device_models[model.category] = model

    # Alias used by scripts that speak in terms of formulations.
    set_formulation = set_device_model

    def set_network_model(self, network_model: NetworkModel) -> None:
        self.network_model = network_model

    @property
    def device_models(self) -> dict[DeviceCategory, DeviceModel]:
        return dict(self._device_models)

    def get_formulation(self, category: DeviceCategory) -> DeviceFormulation | None:
        model = self._device_models.get(category)
        return model.formulation if model else None

    def instantiate(self, system: PowerSystem) -> TemplateInstance:
        """Validate the template against a system.

        Raises:
            MissingFormulationError: If a category present in the system has
                no formulation.
        """
        for category in system.device_categories():
            if category not in self._device_models:
                raise MissingFormulationError(
                    category.value,
                    f"No formulation assigned for device category "
                    f"'{category.value}' present in system '{system.name}'",
                )
        ordered = {c: self._device_models[c] for c in system.device_categories()}
        return TemplateInstance(
            device_models=MappingProxyType(ordered),
            network_model=self.network_model,
        )


def template_unit_commitment(network: NetworkModel | None = None) -> ModelTemplate:
    """Standard unit commitment template."""
    template = ModelTemplate(network_model=network or NetworkModel())
    template.set_device_model(
        DeviceCategory.THERMAL_STANDARD, DeviceFormulation.THERMAL_BASIC_UNIT_COMMITMENT
    )
    template.set_device_model(
        DeviceCategory.RENEWABLE_DISPATCH, DeviceFormulation.RENEWABLE_FULL_DISPATCH
    )
    template.set_device_model(
        DeviceCategory.RENEWABLE_FIX, DeviceFormulation.FIXED_OUTPUT
    )
    template.set_device_model(
        DeviceCategory.HYDRO_DISPATCH, DeviceFormulation.HYDRO_DISPATCH_RUN_OF_RIVER
    )
    template.set_device_model(
        DeviceCategory.POWER_LOAD, DeviceFormulation.STATIC_POWER_LOAD
    )
    return template


def template_economic_dispatch(network: NetworkModel | None = None) -> ModelTemplate:
    """Standard economic dispatch template."""
    template = template_unit_commitment(network)
    template.set_device_model(
        DeviceCategory.THERMAL_STANDARD, DeviceFormulation.THERMAL_BASIC_DISPATCH
    )
    return template
