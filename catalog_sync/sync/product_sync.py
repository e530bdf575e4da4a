# catalog_sync/sync/product_sync.py
# =======================================================
# Akeneo → commercetools per-product reconciliation
# - Resolve parent model
# - Existence / variant match
# - Create draft, add-variant, or minimal update diff
# - Create-or-update (+ re-publish policy)
# - Image sync (additive, never fatal)
# =======================================================
# Any exception raised here fails only the current item; the batch loop
# records it and moves on.
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from catalog_sync.config import settings
from catalog_sync.mapping.attributes import diff_attributes, map_attributes
from catalog_sync.mapping.categories import (
    category_actions,
    diff_categories,
    existing_category_ids,
    map_category_ids,
)
from catalog_sync.mapping.product import (
    add_variant_actions,
    diff_sku,
    family_rule_for,
    find_variant,
    map_product_draft,
)
from catalog_sync.models.mapping_config import MappingConfig
from catalog_sync.models.pim_models import ResolvedItem, SourceItem
from catalog_sync.sync.components.existence import (
    EXISTING_VARIANT,
    NEW,
    NEW_VARIANT,
    SKIP,
    ReconciliationOutcome,
    check_existence,
)
from catalog_sync.sync.components.images import sync_product_images
from catalog_sync.sync.components.parent import fetch_parent
from catalog_sync.sync.components.upsert import upsert_product

logger = logging.getLogger("uvicorn.error")


@dataclass
class ProductSyncResult:
    uuid: str
    outcome: str
    record: Optional[Dict[str, Any]] = None
    actions: List[Dict[str, Any]] = field(default_factory=list)
    images: Dict[str, Any] = field(default_factory=lambda: {"success": True, "uploaded": 0})


def map_update_actions(resolved: ResolvedItem, outcome: ReconciliationOutcome, config: MappingConfig) -> List[Dict[str, Any]]:
    """Attribute diff, then category diff, then SKU diff, for a variant that already exists."""
    existing = outcome.existing_record or {}
    rule = family_rule_for(resolved, config)
    variant = find_variant(existing, outcome.variant_id)

    candidate = map_attributes(resolved.item.values, config, rule)
    actions = diff_attributes(candidate, existing, variant, outcome.variant_id)

    categories = diff_categories(
        map_category_ids(resolved.item.categories, config),
        existing_category_ids(existing),
    )
    actions += category_actions(categories)
    actions += diff_sku(existing, outcome.sku, outcome.variant_id)
    return actions


async def sync_product(
    item: SourceItem,
    config: MappingConfig,
    pim,
    commerce,
    publish_flag: Optional[str] = settings.SET_PUBLISHED_TO_MODIFIED,
) -> ProductSyncResult:
    resolved = await fetch_parent(item, pim)
    outcome = await check_existence(resolved, config, commerce)

    if outcome.kind == SKIP:
        logger.info("[SYNC] %s is disabled in Akeneo; skipped", item.uuid)
        return ProductSyncResult(uuid=item.uuid, outcome=SKIP, record=outcome.existing_record)

    draft: Optional[Dict[str, Any]] = None
    actions: List[Dict[str, Any]] = []
    if outcome.kind == NEW:
        draft = map_product_draft(resolved, outcome.sku, config)
    elif outcome.kind == NEW_VARIANT:
        actions = add_variant_actions(resolved, outcome.sku, config)
    elif outcome.kind == EXISTING_VARIANT:
        actions = map_update_actions(resolved, outcome, config)

    record = await upsert_product(commerce, draft, actions, outcome.existing_record, publish_flag)
    logger.info("[SYNC] %s: %s (%d action(s))", item.uuid, outcome.kind, len(actions))

    images = await sync_product_images(item, record, config, outcome.sku, pim, commerce)
    return ProductSyncResult(uuid=item.uuid, outcome=outcome.kind, record=record, actions=actions, images=images)
