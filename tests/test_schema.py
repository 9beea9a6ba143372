"""
Tests for schema.py - fruit JSON validation.
"""

import json

import pytest

from fruitmatch.models import FruitKind, NumberRange, ShineFactor
from fruitmatch.schema import (
    SchemaError,
    parse_fruit,
    parse_preferences,
    validate_attributes,
    validate_fruit,
    validate_preferences,
)


@pytest.fixture
def valid_fruit():
    return {
        "type": "apple",
        "attributes": {
            "size": 7.2,
            "weight": 165,
            "hasStem": True,
            "hasLeaf": False,
            "hasWorm": None,
            "shineFactor": "shiny",
            "hasChemicals": False,
        },
        "preferences": {
            "size": {"min": 5, "max": 10},
            "hasWorm": False,
            "shineFactor": ["shiny", "extraShiny"],
        },
    }


class TestValidateAttributes:

    def test_valid(self, valid_fruit):
        assert validate_attributes(valid_fruit["attributes"]) == []

    def test_empty_is_valid(self):
        assert validate_attributes({}) == []

    def test_not_an_object(self):
        assert validate_attributes(["size"]) == ["Attributes must be an object"]

    def test_unknown_key(self):
        errors = validate_attributes({"colour": "red"})
        assert errors == ["Unknown attribute: colour"]

    def test_wrong_types(self):
        errors = validate_attributes({"size": "big", "hasStem": 1, "shineFactor": "glowing"})
        assert len(errors) == 3
        assert any("'size'" in e for e in errors)
        assert any("'hasStem'" in e for e in errors)
        assert any("'shineFactor'" in e for e in errors)

    def test_bool_is_not_a_number(self):
        assert validate_attributes({"weight": True}) != []

    def test_unhashable_shine_value(self):
        assert validate_attributes({"shineFactor": ["shiny"]}) != []

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_number(self, value):
        errors = validate_attributes({"size": value})
        assert errors == ["Attribute 'size' must be a number or null"]

    def test_nan_from_json(self):
        assert validate_attributes(json.loads('{"weight": NaN}')) != []


class TestValidatePreferences:

    def test_valid(self, valid_fruit):
        assert validate_preferences(valid_fruit["preferences"]) == []

    def test_open_ranges(self):
        assert validate_preferences({"size": {"min": 3}, "weight": {"max": 200}}) == []

    def test_range_must_be_object(self):
        assert validate_preferences({"size": 7}) != []

    def test_range_min_above_max(self):
        errors = validate_preferences({"weight": {"min": 300, "max": 100}})
        assert errors == ["Preference 'weight' has min greater than max"]

    def test_range_unknown_bound(self):
        errors = validate_preferences({"size": {"low": 3}})
        assert errors == ["Preference 'size' has unknown bound: low"]

    def test_range_non_numeric_bound(self):
        assert validate_preferences({"size": {"min": "3"}}) != []

    @pytest.mark.parametrize("bound", ["min", "max"])
    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_range_non_finite_bound(self, bound, value):
        errors = validate_preferences({"size": {bound: value}})
        assert errors == [f"Preference 'size.{bound}' must be a number"]

    def test_range_infinity_from_json(self):
        assert validate_preferences(json.loads('{"weight": {"min": 1, "max": Infinity}}')) != []

    def test_empty_shine_list(self):
        errors = validate_preferences({"shineFactor": []})
        assert errors == ["Preference 'shineFactor' must list at least one level"]

    def test_bad_shine_level(self):
        assert validate_preferences({"shineFactor": ["shiny", "sparkly"]}) != []

    def test_boolean_preference(self):
        assert validate_preferences({"hasWorm": "no"}) != []


class TestValidateFruit:

    def test_valid(self, valid_fruit):
        assert validate_fruit(valid_fruit) == []

    def test_missing_sections_default_to_empty(self):
        assert validate_fruit({"type": "orange"}) == []

    @pytest.mark.parametrize("kind", [None, "pear", 3, ["apple"]])
    def test_bad_type(self, kind):
        errors = validate_fruit({"type": kind})
        assert len(errors) == 1
        assert "'type'" in errors[0]

    def test_not_an_object(self):
        assert validate_fruit("apple") == ["Fruit must be an object"]


class TestParse:

    def test_parse_fruit(self, valid_fruit):
        profile = parse_fruit(valid_fruit)

        assert profile.kind is FruitKind.APPLE
        assert profile.attributes.size == 7.2
        assert profile.attributes.has_worm is None
        assert profile.attributes.shine_factor is ShineFactor.SHINY
        assert profile.preferences.size == NumberRange(min=5, max=10)
        assert profile.preferences.weight is None
        assert profile.preferences.shine_factor == frozenset({ShineFactor.SHINY, ShineFactor.EXTRA_SHINY})

    def test_parse_single_shine_level(self):
        prefs = parse_preferences({"shineFactor": "dull"})
        assert prefs.shine_factor is ShineFactor.DULL
        assert prefs.accepted_shine_factors() == frozenset({ShineFactor.DULL})

    def test_parse_collects_all_errors(self):
        with pytest.raises(SchemaError) as exc_info:
            parse_fruit({"type": "pear", "attributes": {"size": "big"}, "preferences": {"hasStem": 1}})

        assert len(exc_info.value.errors) == 3

    def test_parse_rejects_non_finite(self):
        data = json.loads('{"type": "orange", "attributes": {"size": NaN}, "preferences": {"weight": {"min": -Infinity}}}')

        with pytest.raises(SchemaError) as exc_info:
            parse_fruit(data)

        assert len(exc_info.value.errors) == 2

    def test_schema_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_fruit({})
