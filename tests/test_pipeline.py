"""
Tests for pipeline.py - one incoming fruit end to end.
"""

import random
import threading
import time

import pytest

from fruitmatch.models import SOFT_CRITERIA_V1, Attributes, FruitKind, Preferences
from fruitmatch.narrative import NarrativePolicy
from fruitmatch.pipeline import IncomingFruitPipeline, PipelineError, resolve_algorithm
from fruitmatch.storage import StorageError


class TestResolveAlgorithm:

    def test_builtin_default_when_unregistered(self, store):
        assert resolve_algorithm(store, SOFT_CRITERIA_V1.key) is SOFT_CRITERIA_V1

    def test_unknown_key_falls_back(self, store):
        assert resolve_algorithm(store, "nope-v9") is SOFT_CRITERIA_V1

    def test_registered_algorithm_wins(self, store):
        store.add_algorithm(key="soft-criteria-v1", name="Soft (tuned)", version="1.1.0", description="")
        assert resolve_algorithm(store, "soft-criteria-v1").version == "1.1.0"

    def test_deprecated_ignored(self, store):
        store.add_algorithm(key="old", name="Old", version="0.1", description="", status="deprecated")
        assert resolve_algorithm(store, "old") is SOFT_CRITERIA_V1


class TestIncomingFruitPipeline:

    def test_first_fruit_has_no_matches(self, store, unavailable_llm, make_profile):
        pipeline = IncomingFruitPipeline(store, unavailable_llm, rng=random.Random(0))

        result = pipeline.process(make_profile(FruitKind.APPLE))

        assert result.match_count == 0
        assert result.best is None
        assert store.get_fruit(result.fruit_id) is not None
        payload = result.to_dict()
        assert payload["bestMatch"] is None
        assert payload["matches"] == []
        assert payload["message"] == "Apple received and stored"

    def test_matches_against_waiting_counterparts(self, store, add_fruit, unavailable_llm, make_profile, full_attributes):
        waiting = [add_fruit(FruitKind.APPLE, attributes=full_attributes) for _ in range(3)]
        add_fruit(FruitKind.ORANGE)
        pipeline = IncomingFruitPipeline(store, unavailable_llm, rng=random.Random(0))

        result = pipeline.process(make_profile(FruitKind.ORANGE, preferences=Preferences(has_worm=False)))

        assert result.match_count == 3
        assert {m.existing_fruit_id for m in result.matches} == {a.id for a in waiting}
        assert result.best.best_match is True
        assert result.best.message_to_incoming.startswith("Welcome, orange!")

        payload = result.to_dict()
        assert payload["kind"] == "orange"
        assert payload["algorithm"] == {"key": "soft-criteria-v1", "name": "Soft criteria", "version": "1.0.0"}
        assert payload["matchCount"] == 3
        assert payload["bestMatch"]["matchId"] == result.best.id
        assert payload["bestMatch"]["overallScore"] == 1.0
        assert set(payload["matches"][0]["scores"]) == {
            "scoreAppleOnOrange", "scoreOrangeOnApple", "overallScore", "breakdown",
        }
        assert payload["communication"]["attributes"].startswith("Hi, I'm an orange.")
        assert [m for m in result.matches if m.best_match] == [result.best]

    def test_uses_llm_text(self, store, add_fruit, talking_llm, make_profile):
        add_fruit(FruitKind.APPLE)
        pipeline = IncomingFruitPipeline(store, talking_llm, rng=random.Random(0))

        result = pipeline.process(make_profile(FruitKind.ORANGE))

        assert result.attributes_text == "What a juicy pairing!"
        assert result.best.message_to_existing == "What a juicy pairing!"

    def test_algorithm_recorded_on_matches(self, store, add_fruit, unavailable_llm, make_profile):
        store.add_algorithm(key="strict-v2", name="Strict", version="2.0.0", description="")
        add_fruit(FruitKind.ORANGE)
        pipeline = IncomingFruitPipeline(store, unavailable_llm, algorithm_key="strict-v2", rng=random.Random(0))

        result = pipeline.process(make_profile(FruitKind.APPLE))

        assert result.algorithm.key == "strict-v2"
        assert store.get_match(result.best.id).algorithm_version == "2.0.0"

    def test_run_generates_and_stores(self, store, unavailable_llm):
        pipeline = IncomingFruitPipeline(store, unavailable_llm, rng=random.Random(11))

        first = pipeline.run(FruitKind.APPLE)
        second = pipeline.run(FruitKind.ORANGE)

        assert first.kind is FruitKind.APPLE
        assert second.match_count == 1
        assert second.best.apple_id == first.fruit_id
        assert len(store.list_fruits(FruitKind.APPLE)) == 1

    def test_strict_policy_wraps_error(self, store, add_fruit, unavailable_llm, make_profile):
        add_fruit(FruitKind.ORANGE)
        pipeline = IncomingFruitPipeline(
            store, unavailable_llm, narrative_policy=NarrativePolicy.STRICT, rng=random.Random(0)
        )

        with pytest.raises(PipelineError) as exc_info:
            pipeline.process(make_profile(FruitKind.APPLE))

        err = exc_info.value
        assert err.kind is FruitKind.APPLE
        assert err.fruit_id is not None
        assert "LLM call failed" in str(err)
        # The fruit and its best flag stay stored
        assert len(store.list_matches(incoming_fruit_id=err.fruit_id, best_only=True)) == 1

    def test_storage_failure_wraps_error(self, store, unavailable_llm, make_profile, monkeypatch):
        def broken(*args, **kwargs):
            raise StorageError("create fruit failed: locked")

        monkeypatch.setattr(store, "create_fruit", broken)
        pipeline = IncomingFruitPipeline(store, unavailable_llm, rng=random.Random(0))

        with pytest.raises(PipelineError) as exc_info:
            pipeline.process(make_profile(FruitKind.ORANGE))

        assert exc_info.value.fruit_id is None
        assert isinstance(exc_info.value.__cause__, StorageError)

    def _run_pair(self, store, unavailable_llm, make_profile, serialize):
        pipeline = IncomingFruitPipeline(
            store, unavailable_llm, rng=random.Random(0), serialize_arrivals=serialize
        )
        in_flight = []
        overlap = []
        results = []
        real_list = store.list_fruits

        def slow_list(kind):
            in_flight.append(kind)
            if len(in_flight) > 1:
                overlap.append(list(in_flight))
            time.sleep(0.05)
            in_flight.remove(kind)
            return real_list(kind)

        def arrive(profile):
            results.append(pipeline.process(profile))

        store.list_fruits = slow_list
        profiles = [make_profile(FruitKind.APPLE), make_profile(FruitKind.ORANGE)]
        threads = [threading.Thread(target=arrive, args=(p,)) for p in profiles]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, overlap

    def test_serialize_arrivals_scores_each_pair_once(self, store, unavailable_llm, make_profile):
        results, overlap = self._run_pair(store, unavailable_llm, make_profile, serialize=True)

        assert overlap == []
        assert sorted(r.match_count for r in results) == [0, 1]
        assert store.summary()["total_matches"] == 1

    def test_unserialized_apple_and_orange_see_each_other(self, store, unavailable_llm, make_profile):
        results, _ = self._run_pair(store, unavailable_llm, make_profile, serialize=False)

        assert sorted(r.match_count for r in results) == [1, 1]
        assert store.summary()["total_matches"] == 2
