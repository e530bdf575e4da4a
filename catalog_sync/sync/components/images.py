# catalog_sync/sync/components/images.py
# ===================================================
# Akeneo assets → commercetools variant images
# ===================================================
# Additive only: images already on the variant (matched by the truncated
# filename) are left alone, nothing is ever removed.
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from catalog_sync.mapping.images import (
    existing_image_names,
    map_image_assets,
    normalize_extension,
    truncate_filename,
)
from catalog_sync.models.mapping_config import MappingConfig
from catalog_sync.models.pim_models import SourceItem

logger = logging.getLogger("uvicorn.error")


async def sync_product_images(
    item: SourceItem,
    record: Optional[Dict[str, Any]],
    config: MappingConfig,
    sku: Optional[str],
    pim,
    commerce,
) -> Dict[str, Any]:
    """Returns {"success": bool, "uploaded": int}. Failures never raise."""
    uploaded = 0
    try:
        rule = config.family_rule(item.family)
        assets = map_image_assets(item, config, rule.images_attribute if rule else "")
        if not assets or not record:
            return {"success": True, "uploaded": 0}

        current = existing_image_names(record, sku)
        for asset in assets:
            filename = truncate_filename(asset.file_name)
            if filename in current:
                continue
            url = await pim.get_asset_download_url(asset.asset_family, asset.file_name)
            data = await pim.get_file_bytes(url)
            await commerce.add_product_image(
                record["id"],
                data,
                filename=filename,
                extension=normalize_extension(url, asset.file_name),
                sku=sku,
            )
            current.add(filename)
            uploaded += 1
    except Exception as e:
        logger.warning("[SYNC] image sync failed for %s: %s", item.uuid, e)
        return {"success": False, "uploaded": uploaded}

    if uploaded:
        logger.info("[SYNC] %s: uploaded %d image(s)", item.uuid, uploaded)
    return {"success": True, "uploaded": uploaded}
