"""
Field-mapping transformation engine.

Rules are applied in order. Each rule reads the payload at a dot-delimited
source path and writes the (optionally converted) value at a dot-delimited
target path of a fresh result dict. A missing source skips the rule; when
two rules write the same target the later one wins.
"""
import copy
import logging
from typing import Any, Optional

from hookrelay.exceptions import TransformationError
from hookrelay.schemas.client_config import ClientConfig, TransformationRule
from hookrelay.services import value_transforms

logger = logging.getLogger(__name__)

PROPERTY_SYSTEM_A = "propertysysA"

_MISSING = object()


def get_nested(data: Any, path: str) -> Any:
    """Value at a dot path, or _MISSING if any segment is absent."""
    current = data
    for key in path.split("."):
        if isinstance(current, dict):
            if key not in current:
                return _MISSING
            current = current[key]
        elif isinstance(current, list) and key.isdigit():
            index = int(key)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def set_nested(target: dict, path: str, value: Any) -> None:
    """Write value at a dot path, creating (or replacing non-dict) intermediates."""
    keys = path.split(".")
    current = target
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


def transform(payload: dict, rules: list[TransformationRule]) -> dict:
    """Apply rules to payload and return a new dict. payload is not mutated."""
    result: dict = {}

    for rule in rules:
        value = get_nested(payload, rule.source)
        if value is _MISSING:
            continue

        if rule.transform is not None:
            try:
                value = rule.transform(value)
            except Exception as e:
                raise TransformationError(rule.source, rule.target, e) from e

        set_nested(result, rule.target, copy.deepcopy(value))

    return result


def property_system_rules() -> list[TransformationRule]:
    """Default mapping for propertysysA payloads."""
    return [
        TransformationRule(
            source="unit_id", target="unitNumber", transform=value_transforms.unit_number,
        ),
        TransformationRule(
            source="unit_id", target="buildingId", transform=value_transforms.building_id,
        ),
        TransformationRule(source="tenant_name", target="resident.fullName"),
        TransformationRule(
            source="lease_start", target="resident.leaseStartDate",
            transform=value_transforms.iso_datetime,
        ),
        TransformationRule(
            source="monthly_rent", target="resident.rentAmount", transform=value_transforms.round2,
        ),
    ]


DEFAULT_RULES = {
    PROPERTY_SYSTEM_A: property_system_rules,
}


def resolve_rules(
    client_config: Optional[ClientConfig],
    source_system: str,
) -> Optional[list[TransformationRule]]:
    """
    Configured rules win. Otherwise the built-in rules for the source system,
    or None when the payload should pass through unchanged.
    """
    if client_config and client_config.transformations:
        return list(client_config.transformations)

    factory = DEFAULT_RULES.get(source_system)
    if factory:
        return factory()
    return None


def transform_event(
    payload: dict,
    client_config: Optional[ClientConfig],
    source_system: str,
) -> dict:
    """Transform a job payload for its client and source system."""
    rules = resolve_rules(client_config, source_system)
    if rules is None:
        logger.debug("No rules for source %s - passing payload through", source_system)
        return copy.deepcopy(payload)
    return transform(payload, rules)
