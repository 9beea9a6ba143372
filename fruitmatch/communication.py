"""
First-person profile text for a fruit.

Each function asks the LLM for a short dating-profile style blurb and falls
back to a plain description when generation is unavailable. These never
fail the pipeline.
"""

from typing import List

from .models import FruitProfile, NumberRange

PROFILE_TEMPERATURE = 0.9
PROFILE_MAX_TOKENS = 200

ATTRIBUTES_SYSTEM_PROMPT = (
    "You are a fruit in a matchmaking system. Write a short, casual, first-person "
    "introduction describing your physical attributes. Be playful and personable, "
    "like a dating profile. Mention all known attributes naturally. For unknown "
    "attributes, either skip them or mention you're unsure. Keep it to 3-5 sentences. "
    "Do not use bullet points or lists."
)

PREFERENCES_SYSTEM_PROMPT = (
    "You are a fruit in a matchmaking system. Write a short, casual, first-person "
    "description of what you're looking for in a match. Be playful and personable, "
    "like a dating profile. Mention all stated preferences naturally. If you have no "
    "preferences, say you're open-minded. Keep it to 2-4 sentences. Do not use bullet "
    "points or lists."
)


def _fmt(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return f"{value:g}" if isinstance(value, float) else str(value)


def _known(label: str, value, suffix: str = "") -> str:
    return f"{label}: unknown" if value is None else f"{label}: {_fmt(value)}{suffix}"


def format_attributes_for_prompt(fruit: FruitProfile) -> str:
    a = fruit.attributes
    lines = [
        f"Fruit type: {fruit.kind.value}",
        _known("Size", a.size, " units (range: 2-14)"),
        _known("Weight", a.weight, " grams (range: 50-350)"),
        _known("Has stem", a.has_stem),
        _known("Has leaf", a.has_leaf),
        _known("Has worm", a.has_worm),
        _known("Shine factor", a.shine_factor.value if a.shine_factor else None),
        _known("Has chemicals", a.has_chemicals),
    ]
    return "\n".join(lines)


def _shine_levels(fruit: FruitProfile) -> List[str]:
    accepted = fruit.preferences.accepted_shine_factors() or frozenset()
    return [s.value for s in sorted(accepted, key=lambda s: s.rank)]


def _bounds(rng: NumberRange, unit: str = "") -> List[str]:
    parts = []
    if rng.min is not None:
        parts.append(f"min {_fmt(rng.min)}{unit}")
    if rng.max is not None:
        parts.append(f"max {_fmt(rng.max)}{unit}")
    return parts


def format_preferences_for_prompt(fruit: FruitProfile) -> str:
    p = fruit.preferences
    other = fruit.kind.counterpart.value
    lines = [f"Fruit type: {fruit.kind.value} (looking for an {other})"]

    if p.is_empty():
        lines.append("Preferences: none (completely open-minded)")
        return "\n".join(lines)

    if p.size is not None:
        lines.append(f"Size preference: {', '.join(_bounds(p.size))}")
    if p.weight is not None:
        lines.append(f"Weight preference: {', '.join(_bounds(p.weight, 'g'))}")
    if p.has_stem is not None:
        lines.append(f"Wants stem: {_fmt(p.has_stem)}")
    if p.has_leaf is not None:
        lines.append(f"Wants leaf: {_fmt(p.has_leaf)}")
    if p.has_worm is not None:
        lines.append(f"Wants worm: {_fmt(p.has_worm)}")
    if p.shine_factor is not None:
        lines.append(f"Shine preference: {', '.join(_shine_levels(fruit))}")
    if p.has_chemicals is not None:
        lines.append(f"Wants chemicals: {_fmt(p.has_chemicals)}")

    return "\n".join(lines)


def _flag(value, yes: str, no: str) -> List[str]:
    if value is None:
        return []
    return [yes if value else no]


def fallback_attributes(fruit: FruitProfile) -> str:
    a = fruit.attributes
    parts = [f"Hi, I'm an {fruit.kind.value}."]
    if a.size is not None:
        parts.append(f"I measure {_fmt(a.size)} units.")
    if a.weight is not None:
        parts.append(f"I weigh {_fmt(a.weight)}g.")
    parts += _flag(a.has_stem, "I have a stem.", "No stem here.")
    parts += _flag(a.has_leaf, "I've got a leaf.", "No leaf on me.")
    parts += _flag(a.has_worm, "I do have a worm.", "Worm-free.")
    if a.shine_factor is not None:
        parts.append(f"My shine is {a.shine_factor.value}.")
    parts += _flag(a.has_chemicals, "I've been treated with chemicals.", "Chemical-free.")
    return " ".join(parts)


def fallback_preferences(fruit: FruitProfile) -> str:
    p = fruit.preferences
    other = fruit.kind.counterpart.value
    if p.is_empty():
        return f"I'm open-minded about my {other} match. No strict requirements."

    parts = [f"Here's what I'm looking for in an {other}."]
    for label, rng, unit in (("Size", p.size, ""), ("Weight", p.weight, "g")):
        if rng is None:
            continue
        if rng.min is not None and rng.max is not None:
            parts.append(f"{label} between {_fmt(rng.min)}{unit} and {_fmt(rng.max)}{unit}.")
        elif rng.min is not None:
            parts.append(f"{label} at least {_fmt(rng.min)}{unit}.")
        elif rng.max is not None:
            parts.append(f"{label} at most {_fmt(rng.max)}{unit}.")
    parts += _flag(p.has_stem, "I'd like a stem.", "No stem preferred.")
    parts += _flag(p.has_leaf, "A leaf would be nice.", "No leaf needed.")
    parts += _flag(p.has_worm, "A worm is fine.", "No worms please.")
    if p.shine_factor is not None:
        parts.append(f"Shine: {' or '.join(_shine_levels(fruit))}.")
    parts += _flag(p.has_chemicals, "Chemicals are fine.", "Chemical-free preferred.")
    return " ".join(parts)


def communicate_attributes(fruit: FruitProfile, llm) -> str:
    """Self-introduction text; templated when the LLM is unavailable."""
    text = llm.generate(
        ATTRIBUTES_SYSTEM_PROMPT,
        f"Here are your attributes:\n{format_attributes_for_prompt(fruit)}\n\nWrite your self-introduction.",
        temperature=PROFILE_TEMPERATURE,
        max_tokens=PROFILE_MAX_TOKENS,
    )
    return text if text is not None else fallback_attributes(fruit)


def communicate_preferences(fruit: FruitProfile, llm) -> str:
    """What-I'm-looking-for text; templated when the LLM is unavailable."""
    text = llm.generate(
        PREFERENCES_SYSTEM_PROMPT,
        f"Here are your preferences:\n{format_preferences_for_prompt(fruit)}\n\nDescribe what you're looking for.",
        temperature=PROFILE_TEMPERATURE,
        max_tokens=PROFILE_MAX_TOKENS,
    )
    return text if text is not None else fallback_preferences(fruit)
