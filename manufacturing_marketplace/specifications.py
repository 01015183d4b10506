"""
Structured part specification payload.

A specification is stored as a fixed record of sub-sections rather than an
open-ended mapping so that the serialization boundary is explicit. The
serialized form is camelCase, which is what the order form submits, and
carries a ``version`` key. Fields are strictly typed: a string where a list
is expected, or ``true`` where a version number is expected, is rejected
rather than coerced.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .exceptions import ValidationError

SPECIFICATION_VERSION = 1


class SpecificationSection(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SpecificationMaterial(SpecificationSection):
    category: StrictStr = ""
    material: StrictStr = ""
    grade: Optional[StrictStr] = None
    certification_required: StrictBool = False


class SpecificationProcess(SpecificationSection):
    type: StrictStr = ""
    operations: List[StrictStr] = Field(default_factory=list)


class SpecificationTolerances(SpecificationSection):
    general: StrictStr = ""
    critical_dimensions: List[StrictStr] = Field(default_factory=list)
    gdandt: List[StrictStr] = Field(default_factory=list)


class SpecificationSurfaceFinish(SpecificationSection):
    roughness: StrictStr = ""
    coatings: List[StrictStr] = Field(default_factory=list)


class SpecificationHeatTreatment(SpecificationSection):
    required: StrictBool = False
    type: Optional[StrictStr] = None
    hardness: Optional[StrictStr] = None


class SpecificationSecondaryOps(SpecificationSection):
    edge_break: Optional[StrictStr] = None
    welding_notes: Optional[StrictStr] = None


class SpecificationInspection(SpecificationSection):
    methods: List[StrictStr] = Field(default_factory=list)
    standards: List[StrictStr] = Field(default_factory=list)


class SpecificationCompliance(SpecificationSection):
    regulatory: List[StrictStr] = Field(default_factory=list)
    documentation: List[StrictStr] = Field(default_factory=list)


class SpecificationMarking(SpecificationSection):
    required: StrictBool = False
    method: Optional[StrictStr] = None
    content: List[StrictStr] = Field(default_factory=list)


class PartSpecificationContent(SpecificationSection):
    """Complete manufacturing requirements for a single part.

    Every section must be present; fields inside a section fall back to
    empty values.
    """

    version: StrictInt = SPECIFICATION_VERSION
    material: SpecificationMaterial
    process: SpecificationProcess
    tolerances: SpecificationTolerances
    surface_finish: SpecificationSurfaceFinish
    heat_treatment: SpecificationHeatTreatment
    secondary_ops: SpecificationSecondaryOps
    inspection: SpecificationInspection
    compliance: SpecificationCompliance
    marking: SpecificationMarking

    @field_validator("version")
    @classmethod
    def _known_version(cls, value: int) -> int:
        if value < 1 or value > SPECIFICATION_VERSION:
            raise ValueError(f"unsupported specification version {value}")
        return value


def parse_specification(data: Any) -> PartSpecificationContent:
    """Validate a camelCase payload, raising the marketplace ValidationError.

    ``details["field"]`` is the dotted path of the first offending field and
    ``details["section"]`` the top-level key it belongs to.
    """
    if isinstance(data, PartSpecificationContent):
        return data
    if not isinstance(data, Mapping):
        raise ValidationError("Specification payload must be an object")
    try:
        return PartSpecificationContent.model_validate(dict(data))
    except PydanticValidationError as exc:
        errors = exc.errors()
        location = [str(part) for part in errors[0]["loc"]]
        raise ValidationError(
            f"Invalid specification: {errors[0]['msg']}",
            {
                "section": location[0] if location else None,
                "field": ".".join(location),
                "errors": len(errors),
            },
        ) from exc


__all__ = [
    "SPECIFICATION_VERSION",
    "SpecificationMaterial",
    "SpecificationProcess",
    "SpecificationTolerances",
    "SpecificationSurfaceFinish",
    "SpecificationHeatTreatment",
    "SpecificationSecondaryOps",
    "SpecificationInspection",
    "SpecificationCompliance",
    "SpecificationMarking",
    "PartSpecificationContent",
    "parse_specification",
]
