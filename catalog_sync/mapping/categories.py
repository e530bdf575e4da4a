# catalog_sync/mapping/categories.py
# Akeneo category codes → commercetools category references + add/remove diff.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from catalog_sync.models.mapping_config import MappingConfig


@dataclass(frozen=True)
class CategoryDiff:
    to_add: List[str] = field(default_factory=list)
    to_remove: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.to_add or self.to_remove)


def map_category_ids(codes: Iterable[str], config: MappingConfig) -> List[str]:
    """Unmapped codes are dropped."""
    ids: List[str] = []
    for code in codes or []:
        target = config.category_mapping.get(code)
        if target and target.id and target.id not in ids:
            ids.append(target.id)
    return ids


def category_reference(category_id: str) -> Dict[str, str]:
    return {"id": category_id, "typeId": "category"}


def map_categories(codes: Iterable[str], config: MappingConfig) -> List[Dict[str, str]]:
    return [category_reference(cid) for cid in map_category_ids(codes, config)]


def existing_category_ids(record: Dict[str, Any]) -> List[str]:
    return [c.get("id") for c in (record.get("categories") or []) if c.get("id")]


def diff_categories(candidate_ids: Iterable[str], existing_ids: Iterable[str]) -> CategoryDiff:
    candidate = list(dict.fromkeys(candidate_ids))
    existing = list(dict.fromkeys(existing_ids))
    if set(candidate) == set(existing):
        return CategoryDiff()
    existing_set, candidate_set = set(existing), set(candidate)
    return CategoryDiff(
        to_add=[c for c in candidate if c not in existing_set],
        to_remove=[c for c in existing if c not in candidate_set],
    )


def category_actions(diff: CategoryDiff) -> List[Dict[str, Any]]:
    actions = [{"action": "addToCategory", "category": category_reference(cid)} for cid in diff.to_add]
    actions += [{"action": "removeFromCategory", "category": category_reference(cid)} for cid in diff.to_remove]
    return actions
