# catalog_sync/mapping/attributes.py
# ===================================================
# Akeneo attribute values → commercetools fields/attributes
# ===================================================
# Pure functions, no I/O. A commercetools "record" here is the plain dict the
# API returns (ProductProjection or Product.masterData.staged).
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from catalog_sync.errors import MappingError
from catalog_sync.models.mapping_config import EnumMapping, FamilyRule, MappingConfig
from catalog_sync.models.pim_models import AttributeValue, Values

logger = logging.getLogger("uvicorn.error")

DestinationAttr = Union[str, EnumMapping]

# Sentinel for "no value survived the scope/locale filters"
_MISSING = object()


@dataclass
class MappedAttributes:
    core_fields: Dict[str, Any] = field(default_factory=dict)   # {"name": {"en-US": "..."}}
    attributes: List[Dict[str, Any]] = field(default_factory=list)  # [{"name", "value"}]


# ---- decoders ---------------------------------------------------------------

def _to_bool(value: Any, _dest: DestinationAttr) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _to_number(value: Any, _dest: DestinationAttr) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise MappingError(f"Cannot read {value!r} as a number") from e


def _to_text(value: Any, _dest: DestinationAttr) -> Any:
    return value


def _to_enum(value: Any, dest: DestinationAttr) -> Any:
    if isinstance(dest, EnumMapping):
        return dest.lookup(value)
    # mapped to a plain attribute name: keep the option code as-is
    return value


def _to_list(value: Any, _dest: DestinationAttr) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    if value is None or value == "":
        return []
    return str(value).split(",")


ATTRIBUTE_DECODERS: Dict[str, Callable[[Any, DestinationAttr], Any]] = {
    "pim_catalog_boolean": _to_bool,
    "pim_catalog_number": _to_number,
    "pim_catalog_text": _to_text,
    "pim_catalog_simpleselect": _to_enum,
    "pim_catalog_multiselect": _to_list,
}


def decode_value(attr: AttributeValue, dest: DestinationAttr) -> Any:
    decoder = ATTRIBUTE_DECODERS.get(attr.attribute_type)
    if decoder is None:
        return attr.data
    return decoder(attr.data, dest)


# ---- filters ----------------------------------------------------------------

def _in_scope(attr: AttributeValue, config: MappingConfig) -> bool:
    return attr.scope is None or attr.scope == config.scope


def _in_locales(attr: AttributeValue, config: MappingConfig) -> bool:
    return attr.locale is None or attr.locale in config.locale_mapping


def filter_values(values: List[AttributeValue], config: MappingConfig) -> List[AttributeValue]:
    return [v for v in values if _in_scope(v, config) and _in_locales(v, config)]


def _fold_values(values: List[AttributeValue], config: MappingConfig, dest: DestinationAttr) -> Any:
    """
    Localized values accumulate into {ct_locale: value}; a non-localized value
    replaces whatever was accumulated so far. Returns _MISSING when nothing
    survives the filters.
    """
    acc: Any = _MISSING
    for attr in filter_values(values, config):
        decoded = decode_value(attr, dest)
        if attr.locale is None:
            acc = decoded
            continue
        if not isinstance(acc, dict):
            acc = {}
        acc[config.locale_mapping[attr.locale]] = decoded
    return acc


# ---- mapping ----------------------------------------------------------------

def map_core_fields(values: Values, config: MappingConfig, rule: FamilyRule) -> Dict[str, Any]:
    core: Dict[str, Any] = {}
    for source_attr, ct_field in rule.core_attribute_mapping.items():
        data = values.get(source_attr)
        if not data:
            continue
        folded = _fold_values(data, config, ct_field)
        if folded is not _MISSING:
            core[ct_field] = folded
    return core


def map_attribute_entries(values: Values, config: MappingConfig, rule: FamilyRule) -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    for source_attr, dest in rule.attribute_mapping.items():
        data = values.get(source_attr)
        if not data:
            continue

        if isinstance(dest, str):
            folded = _fold_values(data, config, dest)
            if folded is not _MISSING:
                entries.append({"name": dest, "value": folded})
            continue

        # List (enum) attribute: one value, taken from the first usable entry
        usable = filter_values(data, config)
        if not usable:
            continue
        enum_key = decode_value(usable[0], dest)
        if enum_key is None:
            logger.debug("[MAP] %s: option %r has no enum mapping; skipped", source_attr, usable[0].data)
            continue
        entries.append({"name": dest.destination_attribute, "value": enum_key})
    return entries


def map_attributes(values: Values, config: MappingConfig, rule: FamilyRule) -> MappedAttributes:
    return MappedAttributes(
        core_fields=map_core_fields(values, config, rule),
        attributes=map_attribute_entries(values, config, rule),
    )


# ---- diff -------------------------------------------------------------------

_CORE_ACTIONS = {
    "name": ("changeName", "name"),
    "description": ("setDescription", "description"),
    "slug": ("changeSlug", "slug"),
}


def _variant_attribute(variant: Dict[str, Any], name: str) -> Any:
    for attr in variant.get("attributes") or []:
        if attr.get("name") == name:
            return attr.get("value", _MISSING)
    return _MISSING


def diff_attributes(
    candidate: MappedAttributes,
    existing_record: Dict[str, Any],
    variant: Optional[Dict[str, Any]],
    variant_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Update actions turning `existing_record`/`variant` into `candidate`.

    Core fields are compared with the record's own field. Attributes are only
    compared against attributes the variant already carries; an attribute the
    variant does not have is left alone.
    """
    actions: List[Dict[str, Any]] = []

    for ct_field, value in candidate.core_fields.items():
        if existing_record.get(ct_field) == value:
            continue
        action_name, payload_key = _CORE_ACTIONS[ct_field]
        actions.append({"action": action_name, payload_key: value})

    for attr in candidate.attributes:
        current = _variant_attribute(variant or {}, attr["name"])
        if current is _MISSING or current == attr["value"]:
            continue
        action = {"action": "setAttribute", "name": attr["name"], "value": attr["value"]}
        if variant_id is not None:
            action["variantId"] = variant_id
        actions.append(action)

    return actions
