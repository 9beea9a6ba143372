"""
Pytest configuration and shared fixtures.
"""

import random

import pytest

from fruitmatch.logger import get_logger

# Module-level loggers grab the global instance at import; keep it quiet and off disk
get_logger(enable_file=False, enable_console=False)

from fruitmatch.models import (  # noqa: E402
    Attributes,
    FruitKind,
    FruitProfile,
    NumberRange,
    Preferences,
    ShineFactor,
)
from fruitmatch.storage import FruitStore  # noqa: E402


class FakeLLM:
    """Stands in for LLMClient; returns canned text or None."""

    def __init__(self, text=None):
        self.text = text
        self.calls = []

    def generate(self, system_prompt, user_prompt, temperature=0.7, max_tokens=256):
        self.calls.append({"system": system_prompt, "user": user_prompt})
        return self.text


@pytest.fixture
def store(tmp_path):
    """FruitStore over a temporary SQLite file."""
    s = FruitStore(tmp_path / "test.db")
    yield s
    s.close()


@pytest.fixture
def unavailable_llm() -> FakeLLM:
    return FakeLLM(text=None)


@pytest.fixture
def talking_llm() -> FakeLLM:
    return FakeLLM(text="What a juicy pairing!")


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def full_attributes() -> Attributes:
    """An apple with every attribute known."""
    return Attributes(
        size=7.5,
        weight=180,
        has_stem=True,
        has_leaf=False,
        has_worm=False,
        shine_factor=ShineFactor.SHINY,
        has_chemicals=False,
    )


@pytest.fixture
def picky_preferences() -> Preferences:
    """Preferences on every slot."""
    return Preferences(
        size=NumberRange(min=5, max=10),
        weight=NumberRange(min=150, max=250),
        has_stem=True,
        has_leaf=False,
        has_worm=False,
        shine_factor=frozenset({ShineFactor.SHINY, ShineFactor.EXTRA_SHINY}),
        has_chemicals=False,
    )


@pytest.fixture
def make_profile():
    """Factory: make_profile(kind, attributes=None, preferences=None)."""

    def _make(kind: FruitKind, attributes=None, preferences=None) -> FruitProfile:
        return FruitProfile(
            kind=kind,
            attributes=attributes if attributes is not None else Attributes(),
            preferences=preferences if preferences is not None else Preferences(),
        )

    return _make


@pytest.fixture
def add_fruit(store):
    """Factory: store a fruit and return it."""

    def _add(kind: FruitKind, attributes=None, preferences=None):
        return store.create_fruit(
            kind,
            attributes if attributes is not None else Attributes(),
            preferences if preferences is not None else Preferences(),
        )

    return _add
