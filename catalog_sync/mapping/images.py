# catalog_sync/mapping/images.py
# Akeneo asset references for a product + filename helpers for commercetools images.
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlparse

from catalog_sync.models.mapping_config import MappingConfig
from catalog_sync.models.pim_models import SourceItem
from catalog_sync.mapping.product import record_variants

# commercetools keeps only this many characters of an uploaded filename
IMAGE_FILENAME_LIMIT = 20

_EXTENSION_ALIASES = {"jpg": "jpeg"}


@dataclass(frozen=True)
class ImageAsset:
    asset_family: str
    file_name: str


def map_image_assets(item: SourceItem, config: MappingConfig, images_attribute: str) -> List[ImageAsset]:
    if not images_attribute:
        return []
    assets: List[ImageAsset] = []
    for value in item.values.get(images_attribute) or []:
        if value.scope is not None and value.scope != config.scope:
            continue
        if not isinstance(value.data, list):
            continue
        for name in value.data:
            assets.append(ImageAsset(asset_family=value.reference_data_name or "", file_name=str(name)))
    return assets


def truncate_filename(name: str) -> str:
    return name[:IMAGE_FILENAME_LIMIT]


def normalize_extension(url: str, fallback_name: str = "") -> str:
    """
    Image type for the upload's Content-Type, from the last path segment that
    has one ('…/photo.JPG/download' → 'jpeg').
    """
    path = urlparse(url).path if "://" in url else url
    segments = [s for s in path.split("/") if s]
    for segment in list(reversed(segments)) + [fallback_name]:
        if "." in segment:
            ext = segment.rsplit(".", 1)[-1].lower()
            return _EXTENSION_ALIASES.get(ext, ext)
    return ""


def existing_image_names(record: Dict[str, Any], sku: Optional[str]) -> Set[str]:
    """
    Filename prefixes of the images on the variant with this sku. commercetools
    stores uploads as "<name>-<random>.<ext>", so the part before the first
    dash is what we uploaded.
    """
    names: Set[str] = set()
    for variant in record_variants(record):
        if variant.get("sku") != sku:
            continue
        for image in variant.get("images") or []:
            url = image.get("url") or ""
            names.add(url.rsplit("/", 1)[-1].split("-", 1)[0])
    return names
