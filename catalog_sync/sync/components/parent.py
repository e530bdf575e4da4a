# catalog_sync/sync/components/parent.py
from __future__ import annotations

import logging

from catalog_sync.models.pim_models import ResolvedItem, SourceItem

logger = logging.getLogger("uvicorn.error")


async def fetch_parent(item: SourceItem, pim) -> ResolvedItem:
    """Attach the product model the item inherits from (if any)."""
    if not item.parent:
        return ResolvedItem(item=item)
    parent = await pim.get_product_model(item.parent)
    logger.debug("[SYNC] %s: parent model %s", item.uuid, parent.code)
    return ResolvedItem(item=item, parent=parent)
