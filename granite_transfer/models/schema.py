from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Per-entity field schemas used by the validator and the payload builders.

Schemas are declared as data: each entity type lists its fields with the value
kind expected once the raw text is coerced, whether the field is required and
the messages reported when a rule fails. ``key_fields`` defines the natural
key used for duplicate detection.
"""

__all__ = [
    "FieldKind",
    "FieldSpec",
    "EntitySchema",
    "SCHEMAS",
    "get_schema",
    "KNOWN_ENTITY_TYPES",
]


class FieldKind(Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class FieldSpec:
    """Rule set for one field of an import row."""
    name: str
    kind: FieldKind = FieldKind.STRING
    required: bool = False
    required_message: str | None = None
    invalid_message: str | None = None

    @property
    def missing_message(self) -> str:
        return self.required_message or f"{self.name} is required"

    @property
    def type_message(self) -> str:
        return self.invalid_message or f"{self.name} must be a valid {self.kind.value}"


@dataclass(frozen=True)
class EntitySchema:
    entity_type: str
    fields: tuple[FieldSpec, ...] = ()
    key_fields: tuple[str, ...] = ("name",)

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


SCHEMAS: dict[str, EntitySchema] = {
    "variants": EntitySchema(
        entity_type="variants",
        fields=(
            FieldSpec("name", required=True, required_message="Name is required"),
            FieldSpec("description"),
            FieldSpec("image"),
        ),
    ),
    "specificVariants": EntitySchema(
        entity_type="specificVariants",
        fields=(
            FieldSpec("name", required=True, required_message="Name is required"),
            FieldSpec("description"),
            FieldSpec("image"),
            FieldSpec("variantId", required=True, required_message="Variant ID is required"),
        ),
    ),
    "products": EntitySchema(
        entity_type="products",
        fields=(
            FieldSpec("name", required=True, required_message="Product name is required"),
            FieldSpec(
                "basePrice",
                kind=FieldKind.NUMBER,
                invalid_message="Base price must be a valid number",
            ),
            FieldSpec(
                "stock",
                kind=FieldKind.INTEGER,
                invalid_message="Stock must be a valid number",
            ),
            FieldSpec("unit"),
            FieldSpec("status"),
            FieldSpec("specificVariantId"),
        ),
    ),
    "hierarchy": EntitySchema(
        entity_type="hierarchy",
        fields=(
            FieldSpec("variant_name", required=True, required_message="Variant name is required"),
            FieldSpec("variant_description"),
            FieldSpec("specific_name", required=True, required_message="Specific variant name is required"),
            FieldSpec("specific_description"),
            FieldSpec("product_name", required=True, required_message="Product name is required"),
            FieldSpec(
                "product_price",
                kind=FieldKind.NUMBER,
                invalid_message="Product price must be a valid number",
            ),
            FieldSpec(
                "product_stock",
                kind=FieldKind.INTEGER,
                invalid_message="Product stock must be a valid number",
            ),
            FieldSpec("product_unit"),
        ),
        key_fields=("variant_name", "specific_name", "product_name"),
    ),
}

KNOWN_ENTITY_TYPES = tuple(SCHEMAS)

# 未知の種別: ルールなし (全行 valid)、重複判定は name のみ
_EMPTY_SCHEMA_KEY = ("name",)


def get_schema(entity_type: str) -> EntitySchema:
    schema = SCHEMAS.get(entity_type)
    if schema is None:
        return EntitySchema(entity_type=entity_type, fields=(), key_fields=_EMPTY_SCHEMA_KEY)
    return schema
