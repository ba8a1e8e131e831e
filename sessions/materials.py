"""Session materials as a tagged union, with the string codec used for storage.

A session's ``materials`` column is a list of strings. Older rows hold bare
labels; newer rows hold structured records serialized behind a marker prefix.
In memory both are explicit variants:

    LegacyMaterial(label="Chapter 5 notes")
    StructuredMaterial(name="Chapter 5", kind="document", url="https://...")

Only ``encode_material`` / ``decode_material`` know about the marker.
"""

import logging
from typing import Annotated, Literal, Union

import pydantic
from pydantic import BaseModel, Field, TypeAdapter, model_validator

from errors import ValidationError

logger = logging.getLogger(__name__)

MATERIAL_MARKER = "__MATERIAL_DATA__:"

MaterialKind = Literal["document", "video", "link", "image", "text", "presentation"]


class LegacyMaterial(BaseModel):
    variant: Literal["legacy"] = "legacy"
    label: str


class StructuredMaterial(BaseModel):
    variant: Literal["structured"] = "structured"
    name: str = Field(..., min_length=1, max_length=200)
    kind: MaterialKind
    url: str | None = None
    content: str | None = None
    description: str | None = None
    size: int | None = Field(None, ge=0)
    mime_type: str | None = None
    is_public: bool = False

    @model_validator(mode="after")
    def check_location(self):
        if self.kind == "text":
            if not self.content:
                raise ValueError("text materials need inline content")
        elif not self.url:
            raise ValueError(f"{self.kind} materials need a url")
        return self


Material = Annotated[Union[LegacyMaterial, StructuredMaterial], Field(discriminator="variant")]

material_adapter = TypeAdapter(Material)


def encode_material(material: LegacyMaterial | StructuredMaterial) -> str:
    if isinstance(material, LegacyMaterial):
        return material.label
    return MATERIAL_MARKER + material.model_dump_json(exclude={"variant"})


def decode_material(raw: str) -> LegacyMaterial | StructuredMaterial:
    """Decode a stored string. Never raises: bad payloads come back as legacy labels."""
    if not raw.startswith(MATERIAL_MARKER):
        return LegacyMaterial(label=raw)
    try:
        return StructuredMaterial.model_validate_json(raw[len(MATERIAL_MARKER):])
    except pydantic.ValidationError:
        logger.warning("Unreadable structured material payload, keeping it as a label")
        return LegacyMaterial(label=raw)


def encode_materials(materials: list) -> list[str]:
    return [encode_material(m) for m in materials]


def decode_materials(raw_materials: list[str] | None) -> list:
    return [decode_material(raw) for raw in raw_materials or []]


def validate_new_material(material: LegacyMaterial | StructuredMaterial) -> LegacyMaterial | StructuredMaterial:
    """Normalize a material about to be attached to a session."""
    if isinstance(material, LegacyMaterial):
        label = material.label.strip()
        if not label:
            raise ValidationError("Material label must be a non-empty string")
        if label.startswith(MATERIAL_MARKER):
            raise ValidationError("Material label uses a reserved prefix")
        return LegacyMaterial(label=label)
    return material


def append_material(raw_materials: list[str] | None, material) -> list[str]:
    materials = decode_materials(raw_materials)
    materials.append(validate_new_material(material))
    return encode_materials(materials)


def remove_material_at(raw_materials: list[str] | None, index: int) -> list[str]:
    """Drop the ``index``-th decoded material and re-encode the remainder."""
    materials = decode_materials(raw_materials)
    if index < 0 or index >= len(materials):
        raise ValidationError("Invalid material index")
    del materials[index]
    return encode_materials(materials)
