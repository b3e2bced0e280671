"""Problem templates."""

from prodsim.templates.template import (
    DeviceModel,
    ModelTemplate,
    NetworkModel,
    TemplateInstance,
    template_economic_dispatch,
    template_unit_commitment,
)

__all__ = [
    "DeviceModel",
    "ModelTemplate",
    "NetworkModel",
    "TemplateInstance",
    "template_economic_dispatch",
    "template_unit_commitment",
]
