"""
Named value transforms usable from the clients YAML file.

    transformations:
      - source: lease_start
        target: resident.leaseStartDate
        transform: iso_datetime

Each transform is a pure single-argument function. Unknown names fail the
config load.
"""
import re
from datetime import datetime, timezone
from typing import Any, Callable

from dateutil import parser as date_parser

_UNIT_PATTERN = re.compile(r"unit-(\d+)$")
_BUILDING_PATTERN = re.compile(r"bldg-(\d+)")


def unit_number(value: Any) -> Any:
    """'bldg-123-unit-45' -> '45'. Unmatched values pass through."""
    if not isinstance(value, str):
        return value
    match = _UNIT_PATTERN.search(value)
    return match.group(1) if match else value


def building_id(value: Any) -> Any:
    """'bldg-123-unit-45' -> '123'. Unmatched values pass through."""
    if not isinstance(value, str):
        return value
    match = _BUILDING_PATTERN.search(value)
    return match.group(1) if match else value


def iso_datetime(value: Any) -> str:
    """
    Parse a date or datetime and emit an ISO-8601 UTC instant with
    millisecond precision: '2024-01-01' -> '2024-01-01T00:00:00.000Z'.
    Naive values are taken as UTC. Raises ValueError if unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        try:
            parsed = date_parser.isoparse(value)
        except ValueError:
            parsed = date_parser.parse(value)
    else:
        raise ValueError(f"Cannot parse date from {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def round2(value: Any) -> float:
    """Round to 2 decimal places as a float."""
    if isinstance(value, bool):
        raise ValueError("Cannot round a boolean")
    return round(float(value), 2)


def to_string(value: Any) -> str:
    return str(value)


def to_integer(value: Any) -> int:
    return int(value)


def to_float(value: Any) -> float:
    return float(value)


def uppercase(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


def lowercase(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


TRANSFORMS: dict[str, Callable[[Any], Any]] = {
    "unit_number": unit_number,
    "building_id": building_id,
    "iso_datetime": iso_datetime,
    "round2": round2,
    "string": to_string,
    "integer": to_integer,
    "float": to_float,
    "uppercase": uppercase,
    "lowercase": lowercase,
    "strip": strip,
}


def get_transform(name: str) -> Callable[[Any], Any]:
    """Look up a named transform. Raises ValueError for unknown names."""
    try:
        return TRANSFORMS[name]
    except KeyError:
        known = ", ".join(sorted(TRANSFORMS))
        raise ValueError(f"Unknown transform '{name}' (known: {known})") from None
