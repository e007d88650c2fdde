"""Tests for override criteria parsing and rule sets."""

import pytest

from plugcord.configuration.config_schema import ConfigSchema
from plugcord.configuration.overrides import (
    AllOf,
    AnyOf,
    Comparison,
    LevelPredicate,
    Not,
    OverrideRuleSet,
    parse_criteria,
    parse_level,
)
from plugcord.datatypes.evaluation_context import EvaluationContext
from plugcord.errors import ConfigValidationError, MalformedPredicateError


@pytest.fixture
def schema():
    return ConfigSchema({
        "type": "object",
        "properties": {
            "can_use": {"type": "boolean", "default": False},
            "log_channel": {"type": ["string", "null"], "default": None},
        },
    }, name="ctx")


def ctx(level=0, **attributes):
    return EvaluationContext.create(level=level, **attributes)


class TestParseLevel:
    """Tests for the level pattern mini-language."""

    @pytest.mark.parametrize("pattern, comparison, value", [
        (">=50", Comparison.GTE, 50),
        (">50", Comparison.GT, 50),
        ("<=50", Comparison.LTE, 50),
        ("<50", Comparison.LT, 50),
        ("=50", Comparison.EQ, 50),
        ("==50", Comparison.EQ, 50),
        ("!=50", Comparison.NE, 50),
        ("50", Comparison.GTE, 50),
        (50, Comparison.GTE, 50),
        (" >= 25 ", Comparison.GTE, 25),
    ])
    def test_patterns_parse_to_tagged_predicates(self, pattern, comparison, value):
        assert parse_level(pattern) == LevelPredicate(comparison, value)

    def test_closed_range(self):
        predicate = parse_level("10..20")
        assert isinstance(predicate, AllOf)
        assert [predicate.matches(ctx(level)) for level in (9, 10, 15, 20, 21)] == [False, True, True, True, False]

    def test_open_ranges(self):
        assert parse_level("10..").matches(ctx(100))
        assert not parse_level("10..").matches(ctx(9))
        assert parse_level("..10").matches(ctx(-5))
        assert not parse_level("..10").matches(ctx(11))

    def test_list_of_patterns_must_all_match(self):
        predicate = parse_level([">=10", "!=15"])
        assert predicate.matches(ctx(10))
        assert not predicate.matches(ctx(15))

    @pytest.mark.parametrize("pattern", ["abc", ">=x", "..", "20..10", True, 1.5, None, [], "=>5"])
    def test_malformed_patterns(self, pattern):
        with pytest.raises(MalformedPredicateError):
            parse_level(pattern)


class TestParseCriteria:
    """Tests for criteria parsing and predicate evaluation."""

    def test_user_and_channel_membership(self):
        predicate = parse_criteria({"user": ["1", 2], "channel": 10})
        assert predicate.matches(ctx(user_id=2, channel_id=10))
        assert not predicate.matches(ctx(user_id=3, channel_id=10))
        assert not predicate.matches(ctx(user_id=1))

    def test_category_and_thread(self):
        assert parse_criteria({"category": 5}).matches(ctx(category_id=5))
        assert parse_criteria({"thread": "7"}).matches(ctx(thread_id=7, is_thread=True))
        assert not parse_criteria({"thread": 7}).matches(ctx())

    def test_role_requires_every_listed_role(self):
        predicate = parse_criteria({"role": [1, 2]})
        assert predicate.matches(ctx(role_ids=[1, 2, 3]))
        assert not predicate.matches(ctx(role_ids=[1]))

    def test_is_thread(self):
        assert parse_criteria({"is_thread": True}).matches(ctx(is_thread=True))
        assert parse_criteria({"is_thread": False}).matches(ctx())

    def test_extra_attributes(self):
        predicate = parse_criteria({"extra": {"locale": ["en", "fr"]}})
        assert predicate.matches(ctx(locale="fr"))
        assert not predicate.matches(ctx(locale="de"))
        assert not predicate.matches(ctx())

    def test_extra_set_valued_attribute_intersects(self):
        predicate = parse_criteria({"extra": {"tags": "staff"}})
        assert predicate.matches(ctx(tags=["staff", "veteran"]))
        assert not predicate.matches(ctx(tags=["guest"]))

    def test_combinators(self):
        predicate = parse_criteria({"any": [{"user": 1}, {"level": ">=50"}]})
        assert isinstance(predicate, AnyOf)
        assert predicate.matches(ctx(0, user_id=1))
        assert predicate.matches(ctx(60))
        assert not predicate.matches(ctx(10, user_id=2))

        negated = parse_criteria({"not": {"channel": 3}})
        assert isinstance(negated, Not)
        assert negated.matches(ctx(channel_id=4))
        assert not negated.matches(ctx(channel_id=3))

        both = parse_criteria({"all": [{"level": "10..20"}, {"role": 9}]})
        assert both.matches(ctx(15, role_ids=[9]))
        assert not both.matches(ctx(15))

    def test_missing_attribute_never_matches_or_raises(self):
        predicate = parse_criteria({"channel": 1, "level": ">=0"})
        assert predicate.matches(ctx()) is False

    @pytest.mark.parametrize("criteria", [
        {},
        {"colour": "red"},
        {"user": []},
        {"user": "not-a-number"},
        {"is_thread": "yes"},
        {"extra": {}},
        {"extra": {"x": [[1]]}},
        {"any": []},
        {"all": {"level": 1}},
        {"not": {}},
        "level>=50",
        None,
    ])
    def test_malformed_criteria(self, criteria):
        with pytest.raises(MalformedPredicateError):
            parse_criteria(criteria)


class TestOverrideRuleSet:
    """Tests for rule registration and matching."""

    def test_zero_rules_match_nothing(self, schema):
        assert OverrideRuleSet(schema).matches(ctx(100)) == []

    def test_matches_in_declaration_order(self, schema):
        rules = OverrideRuleSet(schema)
        rules.add_rule({"level": ">=10"}, {"log_channel": "a"})
        rules.add_rule({"level": ">=50"}, {"can_use": True})
        rules.add_rule({"level": ">=20"}, {"log_channel": "b"})

        assert rules.matches(ctx(60)) == [{"log_channel": "a"}, {"can_use": True}, {"log_channel": "b"}]
        assert rules.matches(ctx(15)) == [{"log_channel": "a"}]

    def test_add_override_declarative_form(self, schema):
        rules = OverrideRuleSet(schema)
        rule = rules.add_override({"level": ">=50", "config": {"can_use": True}})
        assert rule.criteria == {"level": ">=50"}
        assert rules.matches(ctx(50)) == [{"can_use": True}]

    def test_invalid_partial_rejected_at_registration(self, schema):
        rules = OverrideRuleSet(schema)
        with pytest.raises(ConfigValidationError):
            rules.add_rule({"level": 1}, {"unknown_key": True})
        with pytest.raises(ConfigValidationError):
            rules.add_rule({"level": 1}, {"can_use": "yes"})
        assert len(rules) == 0

    def test_malformed_criteria_rejected_at_registration(self, schema):
        rules = OverrideRuleSet(schema)
        with pytest.raises(MalformedPredicateError):
            rules.add_override({"level": "banana", "config": {"can_use": True}})
        with pytest.raises(MalformedPredicateError):
            rules.add_override({"config": {"can_use": True}})
        with pytest.raises(MalformedPredicateError):
            rules.add_override(["level", 1])
        assert rules.revision == 0

    def test_revision_bumps_on_every_mutation(self, schema):
        rules = OverrideRuleSet(schema)
        rules.add_rule({"level": 1}, {"can_use": True})
        rules.extend([{"level": 2, "config": {}}, {"user": 1, "config": {"log_channel": "x"}}])
        assert rules.revision == 3
        rules.clear()
        assert rules.revision == 4
        assert len(rules) == 0

    def test_copy_is_independent(self, schema):
        rules = OverrideRuleSet(schema)
        rules.add_rule({"level": 1}, {"can_use": True})
        clone = rules.copy()
        clone.add_rule({"level": 2}, {"can_use": False})
        assert len(rules) == 1
        assert len(clone) == 2
