# catalog_sync/mapping/product.py
# ===================================================
# Product draft / variant payloads for commercetools
# ===================================================
# Every variant we write carries two identity attributes:
#   akeneo_id          → the Akeneo product uuid (one per variant)
#   akeneo_parent_code → the Akeneo product-model code, or the uuid when the
#                        product has no parent (one per commercetools product)
from __future__ import annotations

from typing import Any, Dict, List, Optional

from catalog_sync.errors import MappingError
from catalog_sync.mapping.attributes import map_attributes
from catalog_sync.mapping.categories import map_categories
from catalog_sync.models.mapping_config import FamilyRule, MappingConfig
from catalog_sync.models.pim_models import ResolvedItem

AKENEO_ID_ATTRIBUTE = "akeneo_id"
AKENEO_PARENT_CODE_ATTRIBUTE = "akeneo_parent_code"


def family_rule_for(resolved: ResolvedItem, config: MappingConfig) -> FamilyRule:
    rule = config.family_rule(resolved.item.family)
    if rule is None:
        raise MappingError(f'Family "{resolved.item.family}" is not defined in the config.')
    return rule


def identity_attributes(resolved: ResolvedItem) -> List[Dict[str, Any]]:
    return [
        {"name": AKENEO_ID_ATTRIBUTE, "value": resolved.uuid},
        {"name": AKENEO_PARENT_CODE_ATTRIBUTE, "value": resolved.parent_code or resolved.uuid},
    ]


def map_product_draft(resolved: ResolvedItem, sku: Optional[str], config: MappingConfig) -> Dict[str, Any]:
    """ProductDraft for a product that does not exist yet (parent values merged in)."""
    rule = family_rule_for(resolved, config)
    mapped = map_attributes(resolved.merged_values(), config, rule)

    draft: Dict[str, Any] = dict(mapped.core_fields)
    draft["productType"] = {"id": rule.product_type_id, "typeId": "product-type"}
    draft["categories"] = map_categories(resolved.item.categories, config)
    draft["masterVariant"] = {
        "sku": sku or resolved.item.identifier,
        "attributes": mapped.attributes + identity_attributes(resolved),
    }
    return draft


def map_variant(resolved: ResolvedItem, sku: Optional[str], config: MappingConfig) -> Dict[str, Any]:
    """ProductVariantDraft from the item's own values only."""
    rule = family_rule_for(resolved, config)
    mapped = map_attributes(resolved.item.values, config, rule)
    return {
        "sku": sku or resolved.item.identifier,
        "attributes": mapped.attributes + identity_attributes(resolved),
    }


def add_variant_actions(resolved: ResolvedItem, sku: Optional[str], config: MappingConfig) -> List[Dict[str, Any]]:
    return [{"action": "addVariant", **map_variant(resolved, sku, config)}]


def record_variants(record: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Master variant first, then the others. Accepts a projection or a full Product."""
    data = record.get("masterData", {}).get("staged") if "masterData" in record else record
    data = data or {}
    variants = [data["masterVariant"]] if data.get("masterVariant") else []
    return variants + list(data.get("variants") or [])


def find_variant(record: Dict[str, Any], variant_id: Optional[int]) -> Optional[Dict[str, Any]]:
    if not variant_id:
        return None
    for variant in record_variants(record):
        if variant.get("id") == variant_id:
            return variant
    return None


def diff_sku(existing_record: Dict[str, Any], sku: str, variant_id: Optional[int]) -> List[Dict[str, Any]]:
    variant = find_variant(existing_record, variant_id)
    if variant is None or variant.get("sku") == sku:
        return []
    return [{"action": "setSku", "sku": sku, "variantId": variant_id}]
