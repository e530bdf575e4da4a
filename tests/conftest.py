import copy
import itertools
from typing import Any, Dict, List, Optional

import pytest

from catalog_sync.errors import ConcurrentUpdateError
from catalog_sync.models.mapping_config import MappingConfig
from catalog_sync.models.pim_models import AttributeValue, ParentModel, ProductPage, SourceItem
from catalog_sync.store.object_store import StoredObject

CONTAINER = "ct-connect-akeneo"


class MemoryStore:
    """In-memory stand-in for ObjectStore with the same version semantics."""

    def __init__(self):
        self.data: Dict[tuple, StoredObject] = {}
        self.puts: List[tuple] = []

    async def get(self, container, key):
        obj = self.data.get((container, key))
        return copy.deepcopy(obj) if obj else None

    async def put(self, container, key, value, expected_version=None):
        current = self.data.get((container, key))
        current_version = current.version if current else 0
        if expected_version is not None and expected_version != current_version:
            raise ConcurrentUpdateError(container, key, expected_version, current_version)
        obj = StoredObject(container, key, copy.deepcopy(value), current_version + 1)
        self.data[(container, key)] = obj
        self.puts.append((key, copy.deepcopy(value)))
        return obj

    async def delete(self, container, key):
        return self.data.pop((container, key), None) is not None

    # test helpers
    def seed(self, key, value, container=CONTAINER):
        self.data[(container, key)] = StoredObject(container, key, copy.deepcopy(value), 1)

    def value(self, key, container=CONTAINER):
        obj = self.data.get((container, key))
        return obj.value if obj else None


class FakePim:
    def __init__(self, pages: Optional[List[ProductPage]] = None, models: Optional[Dict[str, ParentModel]] = None):
        self.pages = list(pages or [])
        self.models = models or {}
        self.assets: Dict[tuple, str] = {}
        self.files: Dict[str, bytes] = {}
        self.list_calls: List[Dict[str, Any]] = []
        self.total = None
        self.on_list = None  # optional hook(call_index)

    async def list_products(self, **kwargs):
        self.list_calls.append(kwargs)
        if self.on_list:
            await self.on_list(len(self.list_calls))
        if not self.pages:
            return ProductPage(items=[], next_cursor=None)
        return self.pages.pop(0)

    async def count_products(self, **kwargs):
        return self.total

    async def get_product_model(self, code):
        return self.models[code]

    async def get_asset_download_url(self, family, name):
        return self.assets[(family, name)]

    async def get_file_bytes(self, url):
        return self.files[url]


class FakeCommerce:
    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self.records = {r["id"]: r for r in (records or [])}
        self.created: List[Dict[str, Any]] = []
        self.updates: List[tuple] = []
        self.images: List[Dict[str, Any]] = []
        self.fetched: List[str] = []
        self._ids = itertools.count(1)

    async def find_existing(self, uuid, parent_code=None):
        code = parent_code or uuid
        for record in self.records.values():
            for attr in record.get("masterVariant", {}).get("attributes", []):
                if attr["name"] == "akeneo_parent_code" and attr["value"] == code:
                    return copy.deepcopy(record)
        return None

    async def create_product(self, draft):
        self.created.append(draft)
        record = {"id": f"new-{next(self._ids)}", "version": 1, **copy.deepcopy(draft)}
        record["masterVariant"] = {"id": 1, **record["masterVariant"]}
        self.records[record["id"]] = record
        return copy.deepcopy(record)

    async def update_product(self, product_id, version, actions):
        self.updates.append((product_id, version, actions))
        record = self.records[product_id]
        record["version"] = version + 1
        return copy.deepcopy(record)

    async def get_product(self, product_id):
        self.fetched.append(product_id)
        return copy.deepcopy(self.records[product_id])

    async def add_product_image(self, product_id, data, filename, extension, sku=None):
        self.images.append({"id": product_id, "data": data, "filename": filename, "extension": extension, "sku": sku})
        return copy.deepcopy(self.records.get(product_id, {}))


def make_value(data, locale=None, scope=None, attribute_type="pim_catalog_text", **extra):
    return AttributeValue.model_validate(
        {"locale": locale, "scope": scope, "data": data, "attribute_type": attribute_type, **extra}
    )


def make_item(uuid="uuid-1", identifier="p1", family="shirt", parent=None, categories=None, values=None, enabled=True):
    return SourceItem.model_validate({
        "uuid": uuid,
        "identifier": identifier,
        "family": family,
        "parent": parent,
        "enabled": enabled,
        "categories": categories or [],
        "values": values or {},
    })


def config_dict(**overrides):
    cfg = {
        "familyMapping": {
            "shirt": {
                "commercetoolsProductTypeId": "pt-1",
                "akeneoImagesAttribute": "images",
                "coreAttributeMapping": {"title": "name", "slug_src": "slug"},
                "attributeMapping": {
                    "material": "material",
                    "size": {"commercetoolsAttribute": "ct_size", "small": "S", "large": "L"},
                },
            }
        },
        "localeMapping": {"en_US": "en-US", "de_DE": "de-DE"},
        "categoryMapping": {
            "cat-a": {"commercetoolsCategoryid": "ct-cat-a"},
            "cat-1": {"commercetoolsCategoryid": "cat-1"},
            "cat-2": {"commercetoolsCategoryid": "cat-2"},
            "cat-3": {"commercetoolsCategoryid": "cat-3"},
        },
        "akeneoScope": "ecommerce",
    }
    cfg.update(overrides)
    return cfg


@pytest.fixture
def config() -> MappingConfig:
    return MappingConfig.model_validate(config_dict())


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()
