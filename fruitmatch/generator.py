"""
Random fruit generation.

Attributes are normally distributed around per-kind means; preferences are
relaxed (most slots left open, ranges generous). Every draw goes through the
random.Random passed in so runs can be reproduced from a seed.
"""

import random
from typing import Optional

from .models import (
    Attributes,
    FruitKind,
    FruitProfile,
    NumberRange,
    Preferences,
    ShineFactor,
)

SIZE_MEAN = 7.0
SIZE_STD_DEV = 2.0
SIZE_MIN = 2.0
SIZE_MAX = 14.0

WEIGHT_MEAN = 180.0
WEIGHT_STD_DEV = 50.0
WEIGHT_MIN = 50.0
WEIGHT_MAX = 350.0

# Probability of each attribute being unknown
NULL_PROBABILITY = 0.05

# neutral and shiny are the common finishes
SHINE_WEIGHTS = {
    ShineFactor.DULL: 1,
    ShineFactor.NEUTRAL: 2,
    ShineFactor.SHINY: 3,
    ShineFactor.EXTRA_SHINY: 1,
}


def _clamped_normal(rng: random.Random, mean: float, std_dev: float, lo: float, hi: float) -> float:
    value = rng.gauss(mean, std_dev)
    return round(max(lo, min(hi, value)), 1)


def _chance(rng: random.Random, probability: float) -> bool:
    return rng.random() < probability


def _maybe(rng: random.Random, value_fn):
    """Return value_fn() unless the attribute comes out unknown."""
    return None if _chance(rng, NULL_PROBABILITY) else value_fn()


def generate_attributes(kind: FruitKind, rng: random.Random) -> Attributes:
    # Apples are slightly smaller and lighter on average
    offset = -1 if kind is FruitKind.APPLE else 1
    size_mean = SIZE_MEAN + 0.5 * offset
    weight_mean = WEIGHT_MEAN + 10 * offset
    stem_rate = 0.7 if kind is FruitKind.APPLE else 0.1

    return Attributes(
        size=_maybe(rng, lambda: _clamped_normal(rng, size_mean, SIZE_STD_DEV, SIZE_MIN, SIZE_MAX)),
        weight=_maybe(rng, lambda: _clamped_normal(rng, weight_mean, WEIGHT_STD_DEV, WEIGHT_MIN, WEIGHT_MAX)),
        has_stem=_maybe(rng, lambda: _chance(rng, stem_rate)),
        has_leaf=_maybe(rng, lambda: _chance(rng, 0.25)),
        has_worm=_maybe(rng, lambda: _chance(rng, 0.08)),
        shine_factor=_maybe(
            rng,
            lambda: rng.choices(list(SHINE_WEIGHTS), weights=list(SHINE_WEIGHTS.values()))[0],
        ),
        has_chemicals=_maybe(rng, lambda: _chance(rng, 0.35)),
    )


def _range_around(
    rng: random.Random,
    center: float,
    margin: float,
    lo: float,
    hi: float,
    digits: Optional[int],
) -> NumberRange:
    """Open or two-sided range around center; which bounds is random."""
    shape = rng.choice(["both", "min", "max"])
    low = round(max(lo, center - margin), digits) if shape in ("both", "min") else None
    high = round(min(hi, center + margin), digits) if shape in ("both", "max") else None
    if low is not None and high is not None and low > high:
        low = high
    return NumberRange(min=low, max=high)


def generate_preferences(attributes: Attributes, rng: random.Random) -> Preferences:
    size = weight = has_stem = has_leaf = has_worm = shine = has_chemicals = None

    if _chance(rng, 0.4) and attributes.size is not None:
        margin = _clamped_normal(rng, 2.5, 1.0, 1.5, 5.0)
        center = attributes.size + rng.gauss(0, 1)
        size = _range_around(rng, center, margin, SIZE_MIN, SIZE_MAX, 1)

    if _chance(rng, 0.35) and attributes.weight is not None:
        margin = _clamped_normal(rng, 40, 15, 20, 80)
        center = attributes.weight + rng.gauss(0, 20)
        weight = _range_around(rng, center, margin, WEIGHT_MIN, WEIGHT_MAX, None)

    if _chance(rng, 0.25):
        has_stem = _chance(rng, 0.6)

    if _chance(rng, 0.2):
        has_leaf = _chance(rng, 0.5)

    # Not wanting a worm is the common preference
    if _chance(rng, 0.6):
        has_worm = False

    if _chance(rng, 0.45):
        count = rng.choice([1, 2, 2, 3])
        if count == 1:
            shine = rng.choice(list(ShineFactor))
        else:
            shine = frozenset(rng.sample(list(ShineFactor), count))

    if _chance(rng, 0.4):
        has_chemicals = _chance(rng, 0.2)

    return Preferences(
        size=size,
        weight=weight,
        has_stem=has_stem,
        has_leaf=has_leaf,
        has_worm=has_worm,
        shine_factor=shine,
        has_chemicals=has_chemicals,
    )


def generate_fruit(kind: FruitKind, rng: Optional[random.Random] = None) -> FruitProfile:
    """
    Generate a random fruit of the given kind.

    Args:
        kind: FruitKind.APPLE or FruitKind.ORANGE
        rng: Random source; a fresh unseeded one when omitted
    """
    rng = rng if rng is not None else random.Random()
    attributes = generate_attributes(kind, rng)
    return FruitProfile(
        kind=kind,
        attributes=attributes,
        preferences=generate_preferences(attributes, rng),
    )


def generate_apple(rng: Optional[random.Random] = None) -> FruitProfile:
    return generate_fruit(FruitKind.APPLE, rng)


def generate_orange(rng: Optional[random.Random] = None) -> FruitProfile:
    return generate_fruit(FruitKind.ORANGE, rng)
