# catalog_sync/models/pim_models.py
# Akeneo product payloads as received from the REST API (one page at a time).
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AttributeValue(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    locale: Optional[str] = None
    scope: Optional[str] = None
    data: Any = None
    attribute_type: str = ""
    reference_data_name: Optional[str] = None


Values = Dict[str, List[AttributeValue]]


class ParentModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    code: str
    family: Optional[str] = None
    family_variant: Optional[str] = None
    parent: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    values: Values = Field(default_factory=dict)
    updated: Optional[str] = None


class SourceItem(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    uuid: str
    identifier: str = ""
    enabled: bool = True
    family: str
    parent: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    values: Values = Field(default_factory=dict)
    created: Optional[str] = None
    updated: Optional[str] = None


@dataclass(frozen=True)
class ResolvedItem:
    """A source item together with its (optional) parent product model."""

    item: SourceItem
    parent: Optional[ParentModel] = None

    @property
    def uuid(self) -> str:
        return self.item.uuid

    @property
    def parent_code(self) -> Optional[str]:
        return self.parent.code if self.parent else None

    def merged_values(self) -> Values:
        """Parent values first, the item's own values win on conflict."""
        merged: Values = dict(self.parent.values) if self.parent else {}
        merged.update(self.item.values)
        return merged


@dataclass(frozen=True)
class ProductPage:
    items: List[SourceItem]
    next_cursor: Optional[str]
    total: Optional[int] = None
