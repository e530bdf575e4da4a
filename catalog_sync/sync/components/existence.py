# catalog_sync/sync/components/existence.py
# ===================================================
# Does this Akeneo item already exist in commercetools?
# ===================================================
# Products are grouped by `akeneo_parent_code` on the master variant, and each
# variant is identified by its `akeneo_id` attribute.
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from catalog_sync.mapping.product import AKENEO_ID_ATTRIBUTE, family_rule_for, record_variants
from catalog_sync.models.mapping_config import MappingConfig
from catalog_sync.models.pim_models import ResolvedItem

SKIP = "skip"
NEW = "new"
EXISTING_VARIANT = "existing-variant"
NEW_VARIANT = "existing-product-new-variant"


@dataclass(frozen=True)
class ReconciliationOutcome:
    exists: bool
    sku: str
    skip: bool = False
    variant_exists: bool = False
    variant_id: Optional[int] = None
    existing_record: Optional[Dict[str, Any]] = None

    @property
    def kind(self) -> str:
        if self.skip:
            return SKIP
        if not self.exists:
            return NEW
        return EXISTING_VARIANT if self.variant_exists else NEW_VARIANT


def resolve_sku(resolved: ResolvedItem, config: MappingConfig) -> str:
    rule = family_rule_for(resolved, config)
    if rule.sku_field:
        values = resolved.item.values.get(rule.sku_field) or []
        if values and values[0].data:
            return str(values[0].data)
    return resolved.item.identifier


def _has_akeneo_id(variant: Dict[str, Any], uuid: str) -> bool:
    return any(
        a.get("name") == AKENEO_ID_ATTRIBUTE and a.get("value") == uuid
        for a in variant.get("attributes") or []
    )


async def check_existence(resolved: ResolvedItem, config: MappingConfig, commerce) -> ReconciliationOutcome:
    sku = resolve_sku(resolved, config)
    existing = await commerce.find_existing(resolved.uuid, resolved.parent_code)

    if existing is None:
        return ReconciliationOutcome(exists=False, sku=sku)

    if not resolved.item.enabled:
        return ReconciliationOutcome(exists=True, skip=True, sku=sku, existing_record=existing)

    variants = record_variants(existing)
    match = next((v for v in variants if _has_akeneo_id(v, resolved.uuid)), None)
    master_id = variants[0].get("id") if variants else None

    return ReconciliationOutcome(
        exists=True,
        sku=sku,
        variant_exists=match is not None,
        variant_id=match.get("id") if match else master_id,
        existing_record=existing,
    )
