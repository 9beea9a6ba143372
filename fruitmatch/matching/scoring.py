"""
Compatibility Scoring (soft-criteria-v1).

Responsibilities:
- Score one fruit's preferences against the other fruit's attributes.
- Combine both directions into an overall pair score.
- Emit a per-attribute breakdown for each direction.

Non-Responsibilities:
- No database access.
- No best-match selection.
- No text generation.

Invariant:
Given identical inputs, this module must always return the same scores.
A missing preference never costs points; an unknown attribute can never
satisfy a stated preference.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

from ..models import (
    SLOTS,
    Attributes,
    NumberRange,
    Preferences,
    ShineFactor,
    SlotType,
)


@dataclass(frozen=True)
class DirectionalScore:
    score: float
    breakdown: Dict[str, float]


@dataclass(frozen=True)
class MatchScores:
    score_apple_on_orange: float  # apple's preferences vs orange's attributes
    score_orange_on_apple: float  # orange's preferences vs apple's attributes
    overall_score: float
    apple_on_orange: Dict[str, float]
    orange_on_apple: Dict[str, float]

    @property
    def breakdown(self) -> Dict[str, Dict[str, float]]:
        return {
            "appleOnOrange": dict(self.apple_on_orange),
            "orangeOnApple": dict(self.orange_on_apple),
        }


def score_numeric(preference: Optional[NumberRange], value: Optional[float]) -> float:
    if preference is None:
        return 1.0
    if value is None:
        return 0.0
    return 1.0 if preference.contains(value) else 0.0


def score_boolean(preference: Optional[bool], value: Optional[bool]) -> float:
    if preference is None:
        return 1.0
    if value is None:
        return 0.0
    return 1.0 if preference == value else 0.0


def score_categorical(
    accepted: Optional[FrozenSet[ShineFactor]],
    value: Optional[ShineFactor],
) -> float:
    if accepted is None:
        return 1.0
    if value is None:
        return 0.0
    return 1.0 if value in accepted else 0.0


def score_preferences(preferences: Preferences, attributes: Attributes) -> DirectionalScore:
    """
    Score every preference slot against the matching attribute.

    Returns the equal-weight mean of the seven slot scores together with
    the slot scores keyed by wire name.
    """
    breakdown: Dict[str, float] = {}
    for slot in SLOTS:
        value = getattr(attributes, slot.name)
        if slot.type is SlotType.NUMERIC:
            breakdown[slot.wire] = score_numeric(getattr(preferences, slot.name), value)
        elif slot.type is SlotType.BOOLEAN:
            breakdown[slot.wire] = score_boolean(getattr(preferences, slot.name), value)
        else:
            breakdown[slot.wire] = score_categorical(preferences.accepted_shine_factors(), value)

    score = sum(breakdown.values()) / len(SLOTS)
    return DirectionalScore(score=score, breakdown=breakdown)


def compute_match_scores(apple, orange) -> MatchScores:
    """
    Compute both directional scores and their mean for an apple-orange pair.

    Args:
        apple: Anything with `attributes` and `preferences` (Fruit or FruitProfile)
        orange: Same, for the orange side
    """
    apple_on_orange = score_preferences(apple.preferences, orange.attributes)
    orange_on_apple = score_preferences(orange.preferences, apple.attributes)

    return MatchScores(
        score_apple_on_orange=apple_on_orange.score,
        score_orange_on_apple=orange_on_apple.score,
        overall_score=(apple_on_orange.score + orange_on_apple.score) / 2,
        apple_on_orange=apple_on_orange.breakdown,
        orange_on_apple=orange_on_apple.breakdown,
    )
