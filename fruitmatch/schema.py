import math
from typing import Any, Dict, List

from .models import (
    SLOTS,
    Attributes,
    FruitKind,
    FruitProfile,
    Preferences,
    ShineFactor,
    SlotType,
)

SHINE_VALUES = {s.value for s in ShineFactor}
KIND_VALUES = {k.value for k in FruitKind}
_KNOWN_KEYS = {slot.wire for slot in SLOTS}


class SchemaError(ValueError):
    """Raised by the parse_* helpers when validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))


def _is_number(v: Any) -> bool:
    # bool is an int subclass; true/false is never a size.
    # json.load accepts NaN and Infinity, which would defeat range checks.
    return isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)


def _is_shine(v: Any) -> bool:
    return isinstance(v, str) and v in SHINE_VALUES


def validate_attributes(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Every slot may be null; missing keys are treated as null.
    """
    if not isinstance(data, dict):
        return ["Attributes must be an object"]

    errors: List[str] = []
    for key in sorted(set(data) - _KNOWN_KEYS):
        errors.append(f"Unknown attribute: {key}")

    for slot in SLOTS:
        value = data.get(slot.wire)
        if value is None:
            continue
        if slot.type is SlotType.NUMERIC and not _is_number(value):
            errors.append(f"Attribute '{slot.wire}' must be a number or null")
        elif slot.type is SlotType.BOOLEAN and not isinstance(value, bool):
            errors.append(f"Attribute '{slot.wire}' must be a boolean or null")
        elif slot.type is SlotType.CATEGORICAL and not _is_shine(value):
            errors.append(f"Attribute '{slot.wire}' must be one of {sorted(SHINE_VALUES)} or null")
    return errors


def _validate_range(key: str, value: Any) -> List[str]:
    if not isinstance(value, dict):
        return [f"Preference '{key}' must be an object with min and/or max"]
    errors = []
    for bound in sorted(set(value) - {"min", "max"}):
        errors.append(f"Preference '{key}' has unknown bound: {bound}")
    for bound in ("min", "max"):
        if value.get(bound) is not None and not _is_number(value[bound]):
            errors.append(f"Preference '{key}.{bound}' must be a number")
    lo, hi = value.get("min"), value.get("max")
    if _is_number(lo) and _is_number(hi) and lo > hi:
        errors.append(f"Preference '{key}' has min greater than max")
    return errors


def validate_preferences(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Missing or null keys mean "no preference".
    """
    if not isinstance(data, dict):
        return ["Preferences must be an object"]

    errors: List[str] = []
    for key in sorted(set(data) - _KNOWN_KEYS):
        errors.append(f"Unknown preference: {key}")

    for slot in SLOTS:
        value = data.get(slot.wire)
        if value is None:
            continue
        if slot.type is SlotType.NUMERIC:
            errors.extend(_validate_range(slot.wire, value))
        elif slot.type is SlotType.BOOLEAN and not isinstance(value, bool):
            errors.append(f"Preference '{slot.wire}' must be a boolean")
        elif slot.type is SlotType.CATEGORICAL:
            levels = value if isinstance(value, list) else [value]
            if not levels:
                errors.append(f"Preference '{slot.wire}' must list at least one level")
            elif not all(_is_shine(level) for level in levels):
                errors.append(f"Preference '{slot.wire}' levels must be in {sorted(SHINE_VALUES)}")
    return errors


def validate_fruit(data: Any) -> List[str]:
    """Validate a whole fruit object: type, attributes and preferences."""
    if not isinstance(data, dict):
        return ["Fruit must be an object"]

    errors: List[str] = []
    kind = data.get("type")
    if not isinstance(kind, str) or kind not in KIND_VALUES:
        errors.append(f"Field 'type' must be one of {sorted(KIND_VALUES)}")
    errors.extend(validate_attributes(data.get("attributes", {})))
    errors.extend(validate_preferences(data.get("preferences", {})))
    return errors


def parse_attributes(data: Any) -> Attributes:
    errors = validate_attributes(data)
    if errors:
        raise SchemaError(errors)
    return Attributes.from_dict(data)


def parse_preferences(data: Any) -> Preferences:
    errors = validate_preferences(data)
    if errors:
        raise SchemaError(errors)
    return Preferences.from_dict(data)


def parse_fruit(data: Dict[str, Any]) -> FruitProfile:
    """
    Build a FruitProfile from its wire form.

    Raises:
        SchemaError: With every validation message when invalid
    """
    errors = validate_fruit(data)
    if errors:
        raise SchemaError(errors)
    return FruitProfile(
        kind=FruitKind(data["type"]),
        attributes=Attributes.from_dict(data.get("attributes", {})),
        preferences=Preferences.from_dict(data.get("preferences", {})),
    )
