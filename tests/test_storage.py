"""
Tests for storage.py - FruitStore persistence gateway.
"""

import pytest

from fruitmatch.matching.scoring import compute_match_scores
from fruitmatch.models import (
    SOFT_CRITERIA_V1,
    Attributes,
    FruitKind,
    NumberRange,
    Preferences,
    ShineFactor,
)
from fruitmatch.storage import DuplicateAlgorithmError, FruitStore, StorageError


def _store_match(store, apple, orange, incoming=None, best=False):
    incoming = incoming or apple
    scores = compute_match_scores(apple, orange)
    return store.create_match(
        incoming_fruit_id=incoming.id,
        incoming_kind=incoming.kind,
        apple_id=apple.id,
        orange_id=orange.id,
        algorithm=SOFT_CRITERIA_V1,
        score_apple_on_orange=scores.score_apple_on_orange,
        score_orange_on_apple=scores.score_orange_on_apple,
        overall_score=scores.overall_score,
        breakdown=scores.breakdown,
        best_match=best,
    )


class TestFruits:

    def test_create_and_get(self, store, full_attributes, picky_preferences):
        fruit = store.create_fruit(FruitKind.APPLE, full_attributes, picky_preferences)

        assert fruit.id.startswith("apple:")
        assert fruit.created_at is not None

        loaded = store.get_fruit(fruit.id)
        assert loaded.kind is FruitKind.APPLE
        assert loaded.attributes == full_attributes
        assert loaded.preferences == picky_preferences

    def test_unknown_and_open_slots_round_trip(self, store):
        attrs = Attributes(size=None, weight=201.5, shine_factor=ShineFactor.EXTRA_SHINY)
        prefs = Preferences(size=NumberRange(max=8), shine_factor=ShineFactor.DULL)

        loaded = store.get_fruit(store.create_fruit(FruitKind.ORANGE, attrs, prefs).id)

        assert loaded.attributes == attrs
        assert loaded.preferences == prefs
        assert loaded.preferences.weight is None

    def test_get_missing(self, store):
        assert store.get_fruit("apple:nope") is None

    def test_list_by_kind_in_insertion_order(self, store, add_fruit):
        first = add_fruit(FruitKind.ORANGE)
        add_fruit(FruitKind.APPLE)
        second = add_fruit(FruitKind.ORANGE)

        oranges = store.list_fruits(FruitKind.ORANGE)

        assert [f.id for f in oranges] == [first.id, second.id]
        assert all(f.kind is FruitKind.ORANGE for f in oranges)


class TestMatches:

    def test_scores_round_trip_exactly(self, store, add_fruit, full_attributes):
        apple = add_fruit(FruitKind.APPLE, full_attributes, Preferences(has_worm=True, has_leaf=True))
        orange = add_fruit(FruitKind.ORANGE, full_attributes, Preferences(has_stem=False))

        created = _store_match(store, apple, orange)
        loaded = store.get_match(created.id)

        assert loaded.score_apple_on_orange == 5 / 7
        assert loaded.score_orange_on_apple == 6 / 7
        assert loaded.overall_score == (5 / 7 + 6 / 7) / 2
        assert loaded.breakdown == created.breakdown
        assert loaded.algorithm_key == SOFT_CRITERIA_V1.key
        assert loaded.algorithm_version == SOFT_CRITERIA_V1.version
        assert loaded.best_match is False
        assert loaded.status == "proposed"

    def test_update_match(self, store, add_fruit):
        apple, orange = add_fruit(FruitKind.APPLE), add_fruit(FruitKind.ORANGE)
        match = _store_match(store, apple, orange)

        store.update_match(match.id, best_match=True)
        updated = store.update_match(match.id, message_to_incoming="hello")

        assert updated.best_match is True
        assert updated.message_to_incoming == "hello"
        assert updated.message_to_existing is None

    def test_update_unknown_match(self, store):
        with pytest.raises(StorageError):
            store.update_match("match:missing", best_match=True)

    def test_list_matches_filters(self, store, add_fruit):
        orange = add_fruit(FruitKind.ORANGE)
        apple_a, apple_b = add_fruit(FruitKind.APPLE), add_fruit(FruitKind.APPLE)
        _store_match(store, apple_a, orange)
        best = _store_match(store, apple_b, orange, best=True)

        assert len(store.list_matches()) == 2
        assert [m.id for m in store.list_matches(best_only=True)] == [best.id]
        assert len(store.list_matches(incoming_fruit_id=apple_a.id)) == 1
        assert len(store.list_matches(limit=1)) == 1

    def test_list_matches_newest_first(self, store, add_fruit):
        orange = add_fruit(FruitKind.ORANGE)
        apples = [add_fruit(FruitKind.APPLE) for _ in range(3)]
        stored = [_store_match(store, a, orange, best=True) for a in apples]

        newest = store.list_matches(best_only=True, newest_first=True, limit=2)

        assert [m.id for m in newest] == [stored[2].id, stored[1].id]

    def test_existing_fruit_id(self, store, add_fruit):
        apple, orange = add_fruit(FruitKind.APPLE), add_fruit(FruitKind.ORANGE)
        assert _store_match(store, apple, orange, incoming=apple).existing_fruit_id == orange.id
        assert _store_match(store, apple, orange, incoming=orange).existing_fruit_id == apple.id


class TestAlgorithms:

    def test_add_and_get(self, store):
        algorithm = store.add_algorithm(
            key="strict-v2",
            name="Strict",
            version="2.0.0",
            description="Hard filters",
            default_config={"threshold": 0.8},
        )

        assert algorithm.id.startswith("matching_algorithm:")
        loaded = store.get_algorithm("strict-v2")
        assert loaded.name == "Strict"
        assert loaded.default_config == {"threshold": 0.8}

    def test_duplicate_key(self, store):
        store.add_algorithm(key="soft", name="Soft", version="1", description="")

        with pytest.raises(DuplicateAlgorithmError) as exc_info:
            store.add_algorithm(key="soft", name="Other", version="2", description="")

        assert exc_info.value.existing.name == "Soft"
        assert isinstance(exc_info.value, StorageError)

    def test_deprecated_hidden_by_default(self, store):
        store.add_algorithm(key="old", name="Old", version="0.1", description="", status="deprecated")

        assert store.get_algorithm("old") is None
        assert store.get_algorithm("old", active_only=False).status == "deprecated"
        assert store.list_algorithms() == []
        assert len(store.list_algorithms(active_only=False)) == 1


class TestSummary:

    def test_empty(self, store):
        assert store.summary() == {
            "total_apples": 0,
            "total_oranges": 0,
            "total_matches": 0,
            "success_rate": 0,
        }

    def test_counts_and_success_rate(self, store, add_fruit):
        orange = add_fruit(FruitKind.ORANGE)
        apple_a = add_fruit(FruitKind.APPLE)
        apple_b = add_fruit(FruitKind.APPLE, preferences=Preferences(has_worm=True))
        _store_match(store, apple_a, orange, best=True)  # 1.0
        _store_match(store, apple_b, orange, best=True)  # (6/7 + 1) / 2
        _store_match(store, apple_b, orange, best=False)

        summary = store.summary()

        assert summary["total_apples"] == 2
        assert summary["total_oranges"] == 1
        assert summary["total_matches"] == 2
        assert summary["success_rate"] == round((1.0 + (6 / 7 + 1) / 2) / 2 * 100, 1)


class TestFailures:

    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            FruitStore(blocker / "sub" / "test.db")
