# catalog_sync/sync/components/upsert.py
# Create-or-update against commercetools, plus the re-publish policy.
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from catalog_sync.config import settings

logger = logging.getLogger("uvicorn.error")

PUBLISH_ACTION = {"action": "publish"}


def should_publish(existing: Optional[Dict[str, Any]], flag: Optional[str] = None) -> bool:
    """
    Re-publish a product we modify only when it was published before and
    SET_PUBLISHED_TO_MODIFIED is the literal string "false". Any other value,
    including unset, leaves the product in its modified (staged) state.
    """
    if not existing or not existing.get("published"):
        return False
    return flag == "false"


async def upsert_product(
    commerce,
    draft: Optional[Dict[str, Any]],
    actions: List[Dict[str, Any]],
    existing: Optional[Dict[str, Any]],
    publish_flag: Optional[str] = settings.SET_PUBLISHED_TO_MODIFIED,
) -> Optional[Dict[str, Any]]:
    publish = [dict(PUBLISH_ACTION)] if should_publish(existing, publish_flag) else []

    if actions and existing:
        return await commerce.update_product(existing["id"], existing["version"], actions + publish)

    if draft:
        created = await commerce.create_product(draft)
        if publish:
            await commerce.update_product(created["id"], created["version"], publish)
        return created

    if existing:
        return await commerce.get_product(existing["id"])

    return None
