from __future__ import annotations

"""Starter CSV templates handed to operators (header + example rows)."""

__all__ = [
    "TEMPLATES",
    "generate_template",
]

TEMPLATES: dict[str, str] = {
    "variants": (
        "name,description,image\n"
        '"Black Galaxy","Premium black granite",""\n'
        '"Kashmir White","White granite with veining",""'
    ),
    "specificVariants": (
        "name,description,image,variantId\n"
        '"Premium Grade","High quality grade","",""\n'
        '"Standard Grade","Standard quality grade","",""'
    ),
    "products": (
        "name,basePrice,stock,unit,status,specificVariantId\n"
        '"Black Galaxy Slab",5000,10,"sq_ft","active",""\n'
        '"White Granite Tile",1200,25,"sq_ft","active",""'
    ),
    "hierarchy": (
        "variant_name,variant_description,specific_name,specific_description,"
        "product_name,product_price,product_stock,product_unit\n"
        '"Black Galaxy","Premium black granite","Premium Grade","High quality","Slab 60x30",5000,10,"sq_ft"'
    ),
}


def generate_template(entity_type: str) -> str:
    """Return the template for ``entity_type`` ('' for unknown types)."""
    return TEMPLATES.get(entity_type, "")
