"""
Fruit, preference and match record types.

Attributes are the ground truth of a fruit; preferences describe what it
looks for in the other kind. Both use the same seven slots. On the wire
(JSON in the database, input files, result payloads) the slots use the
camelCase names below.

Unknown attributes are None. Absent preferences are None as well and are
left out of the wire form entirely.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union


class FruitKind(str, Enum):
    APPLE = "apple"
    ORANGE = "orange"

    @property
    def counterpart(self) -> "FruitKind":
        return FruitKind.ORANGE if self is FruitKind.APPLE else FruitKind.APPLE


class ShineFactor(str, Enum):
    """Shine levels, declared in ascending order."""
    DULL = "dull"
    NEUTRAL = "neutral"
    SHINY = "shiny"
    EXTRA_SHINY = "extraShiny"

    @property
    def rank(self) -> int:
        return list(ShineFactor).index(self)


class SlotType(str, Enum):
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Slot:
    name: str  # dataclass field name
    wire: str  # JSON key
    type: SlotType


SLOTS: Tuple[Slot, ...] = (
    Slot("size", "size", SlotType.NUMERIC),
    Slot("weight", "weight", SlotType.NUMERIC),
    Slot("has_stem", "hasStem", SlotType.BOOLEAN),
    Slot("has_leaf", "hasLeaf", SlotType.BOOLEAN),
    Slot("has_worm", "hasWorm", SlotType.BOOLEAN),
    Slot("shine_factor", "shineFactor", SlotType.CATEGORICAL),
    Slot("has_chemicals", "hasChemicals", SlotType.BOOLEAN),
)

ShinePreference = Union[ShineFactor, FrozenSet[ShineFactor]]


@dataclass(frozen=True)
class NumberRange:
    """Inclusive range; either bound may be missing."""
    min: Optional[float] = None
    max: Optional[float] = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def to_dict(self) -> Dict[str, float]:
        out = {}
        if self.min is not None:
            out["min"] = self.min
        if self.max is not None:
            out["max"] = self.max
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NumberRange":
        return cls(min=data.get("min"), max=data.get("max"))


@dataclass(frozen=True)
class Attributes:
    size: Optional[float] = None
    weight: Optional[float] = None
    has_stem: Optional[bool] = None
    has_leaf: Optional[bool] = None
    has_worm: Optional[bool] = None
    shine_factor: Optional[ShineFactor] = None
    has_chemicals: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for slot in SLOTS:
            value = getattr(self, slot.name)
            out[slot.wire] = value.value if isinstance(value, ShineFactor) else value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attributes":
        values = {slot.name: data.get(slot.wire) for slot in SLOTS}
        if values["shine_factor"] is not None:
            values["shine_factor"] = ShineFactor(values["shine_factor"])
        return cls(**values)


@dataclass(frozen=True)
class Preferences:
    size: Optional[NumberRange] = None
    weight: Optional[NumberRange] = None
    has_stem: Optional[bool] = None
    has_leaf: Optional[bool] = None
    has_worm: Optional[bool] = None
    shine_factor: Optional[ShinePreference] = None
    has_chemicals: Optional[bool] = None

    def is_empty(self) -> bool:
        return all(getattr(self, slot.name) is None for slot in SLOTS)

    def accepted_shine_factors(self) -> Optional[FrozenSet[ShineFactor]]:
        """The shine preference as a set, or None when there is none."""
        if self.shine_factor is None:
            return None
        if isinstance(self.shine_factor, ShineFactor):
            return frozenset({self.shine_factor})
        return frozenset(self.shine_factor)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for slot in SLOTS:
            value = getattr(self, slot.name)
            if value is None:
                continue
            if isinstance(value, NumberRange):
                out[slot.wire] = value.to_dict()
            elif isinstance(value, ShineFactor):
                out[slot.wire] = value.value
            elif isinstance(value, frozenset):
                out[slot.wire] = [s.value for s in sorted(value, key=lambda s: s.rank)]
            else:
                out[slot.wire] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preferences":
        values: Dict[str, Any] = {}
        for slot in SLOTS:
            raw = data.get(slot.wire)
            if raw is None:
                continue
            if slot.type is SlotType.NUMERIC:
                values[slot.name] = NumberRange.from_dict(raw)
            elif slot.type is SlotType.CATEGORICAL:
                if isinstance(raw, (list, tuple, set, frozenset)):
                    values[slot.name] = frozenset(ShineFactor(v) for v in raw)
                else:
                    values[slot.name] = ShineFactor(raw)
            else:
                values[slot.name] = raw
        return cls(**values)


@dataclass(frozen=True)
class FruitProfile:
    """A fruit before it has been stored."""
    kind: FruitKind
    attributes: Attributes = field(default_factory=Attributes)
    preferences: Preferences = field(default_factory=Preferences)


@dataclass(frozen=True)
class Fruit:
    """A stored fruit."""
    id: str
    kind: FruitKind
    attributes: Attributes
    preferences: Preferences
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "attributes": self.attributes.to_dict(),
            "preferences": self.preferences.to_dict(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class MatchingAlgorithm:
    key: str
    name: str
    version: str
    description: str = ""
    status: str = "active"
    default_config: Optional[Dict[str, Any]] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "status": self.status,
            "defaultConfig": self.default_config,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


SOFT_CRITERIA_V1 = MatchingAlgorithm(
    key="soft-criteria-v1",
    name="Soft criteria",
    version="1.0.0",
    description=(
        "Equal-weight mean of seven per-attribute checks in each direction. "
        "Missing preferences score 1, unknown attributes score 0."
    ),
)


@dataclass(frozen=True)
class MatchRecord:
    id: str
    incoming_fruit_id: str
    incoming_kind: FruitKind
    apple_id: str
    orange_id: str
    algorithm_key: str
    algorithm_name: str
    algorithm_version: str
    score_apple_on_orange: float
    score_orange_on_apple: float
    overall_score: float
    breakdown: Dict[str, Dict[str, float]]
    best_match: bool = False
    message_to_incoming: Optional[str] = None
    message_to_existing: Optional[str] = None
    status: str = "proposed"
    created_at: Optional[datetime] = None

    @property
    def existing_fruit_id(self) -> str:
        """The counterpart that was already waiting."""
        return self.orange_id if self.incoming_kind is FruitKind.APPLE else self.apple_id

    def scores_dict(self) -> Dict[str, Any]:
        return {
            "scoreAppleOnOrange": self.score_apple_on_orange,
            "scoreOrangeOnApple": self.score_orange_on_apple,
            "overallScore": self.overall_score,
            "breakdown": self.breakdown,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "incomingFruitId": self.incoming_fruit_id,
            "incomingKind": self.incoming_kind.value,
            "appleId": self.apple_id,
            "orangeId": self.orange_id,
            "matchingAlgorithmKey": self.algorithm_key,
            "matchingAlgorithmName": self.algorithm_name,
            "matchingAlgorithmVersion": self.algorithm_version,
            **self.scores_dict(),
            "bestMatch": self.best_match,
            "messageToIncoming": self.message_to_incoming,
            "messageToExisting": self.message_to_existing,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
