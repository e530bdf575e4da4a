# catalog_sync/models/mapping_config.py
# ===================================================
# Akeneo → commercetools data-mapping configuration
# ===================================================
# Saved as JSON by the admin "save" action and read once per job run. The
# JSON keeps the connector's original camelCase keys; Python code uses the
# snake_case attribute names.
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

CoreField = Literal["name", "description", "slug"]


class EnumMapping(BaseModel):
    """
    Maps an Akeneo simple-select attribute onto a commercetools List (enum)
    attribute. Stored flat, e.g.

        {"commercetoolsAttribute": "size", "small": "S", "medium": "M"}
    """
    model_config = ConfigDict(frozen=True)

    destination_attribute: str
    options: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _from_flat(cls, data: Any) -> Any:
        if isinstance(data, dict) and "commercetoolsAttribute" in data:
            options = {k: v for k, v in data.items() if k != "commercetoolsAttribute"}
            return {"destination_attribute": data["commercetoolsAttribute"], "options": options}
        return data

    @model_serializer
    def _to_flat(self) -> Dict[str, str]:
        return {"commercetoolsAttribute": self.destination_attribute, **self.options}

    def lookup(self, option: Any) -> Optional[str]:
        return self.options.get(str(option)) if option is not None else None


class FamilyRule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_type_id: str = Field(alias="commercetoolsProductTypeId")
    product_type_label: Optional[str] = Field(None, alias="commercetoolsProductTypeLabel")
    images_attribute: str = Field("", alias="akeneoImagesAttribute")
    sku_field: Optional[str] = Field(None, alias="akeneoSkuField")
    core_attribute_mapping: Dict[str, CoreField] = Field(default_factory=dict, alias="coreAttributeMapping")
    attribute_mapping: Dict[str, Union[str, EnumMapping]] = Field(default_factory=dict, alias="attributeMapping")


class CategoryTarget(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="commercetoolsCategoryid")
    label: Optional[str] = None


class MappingConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    family_mapping: Dict[str, FamilyRule] = Field(default_factory=dict, alias="familyMapping")
    locale_mapping: Dict[str, str] = Field(default_factory=dict, alias="localeMapping")
    category_mapping: Dict[str, CategoryTarget] = Field(default_factory=dict, alias="categoryMapping")
    scope: str = Field("", alias="akeneoScope")

    def families(self) -> List[str]:
        return list(self.family_mapping.keys())

    def family_rule(self, family: str) -> Optional[FamilyRule]:
        return self.family_mapping.get(family)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SyncConfigRecord(BaseModel):
    """The "all" document: the mapping config plus where to forward admin calls."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    config: Optional[MappingConfig] = None
    forward_url: Optional[str] = Field(None, alias="forwardUrl")
