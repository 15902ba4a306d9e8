"""Tests for goal inference and configuration generation."""

from dataclasses import replace

import pytest

from rule_advisor.config.models import BlockingAggressiveness, GoalType, Thresholds
from rule_advisor.core.goals import (
    EMAIL_BLOCKING,
    NAME_BLOCKING,
    adjust_configuration_for_schema,
    explain_configuration,
    generate_rule_configuration,
    get_configuration_for_goal,
    get_recommended_rule_types,
    infer_goal_from_description
)
from rule_advisor.errors import InvalidGoalConfiguration


class TestGoalInference:
    @pytest.mark.parametrize('description, expected', [
        ('Find exact matches only', GoalType.HIGH_PRECISION),
        ('I want high confidence links', GoalType.HIGH_PRECISION),
        ('find all possible duplicates', GoalType.HIGH_RECALL),
        ("Don't miss anything", GoalType.HIGH_RECALL),
        ('I need it fast', GoalType.PERFORMANCE),
        ('custom settings', GoalType.CUSTOM),
        ('link the two tables', GoalType.BALANCED),
    ])
    def test_keywords(self, description, expected):
        assert infer_goal_from_description(description) == expected

    def test_precision_keywords_take_precedence(self):
        """Earlier goals in the cascade win when several keywords appear."""
        assert infer_goal_from_description('fast and precise') == GoalType.HIGH_PRECISION

    @pytest.mark.parametrize('description', ['', None, 42])
    def test_empty_or_non_string_is_balanced(self, description):
        assert infer_goal_from_description(description) == GoalType.BALANCED


class TestPresets:
    @pytest.mark.parametrize('goal_type', [
        GoalType.HIGH_PRECISION, GoalType.HIGH_RECALL,
        GoalType.PERFORMANCE, GoalType.BALANCED
    ])
    def test_presets_have_ordered_thresholds(self, goal_type):
        config = get_configuration_for_goal(goal_type)
        assert config.goal_type == goal_type
        assert config.thresholds.high >= config.thresholds.medium >= config.thresholds.low

    def test_custom_has_no_preset(self):
        assert get_configuration_for_goal(GoalType.CUSTOM) is None

    def test_preset_values(self):
        precision = get_configuration_for_goal(GoalType.HIGH_PRECISION)
        assert precision.thresholds == Thresholds(0.9, 0.75, 0.6)
        assert precision.blocking_strategy == BlockingAggressiveness.AGGRESSIVE
        assert not precision.transitive_matching

        recall = get_configuration_for_goal(GoalType.HIGH_RECALL)
        assert recall.blocking_strategy == BlockingAggressiveness.MINIMAL
        assert recall.transitive_matching

        performance = get_configuration_for_goal(GoalType.PERFORMANCE)
        assert performance.extras['batch_size'] == 10000

    def test_presets_are_read_only(self):
        """A returned configuration cannot be changed through its mappings."""
        first = get_configuration_for_goal(GoalType.PERFORMANCE)
        with pytest.raises(TypeError):
            first.extras['batch_size'] = 1
        with pytest.raises(TypeError):
            first.field_weight_multipliers['names'] = 9.0

        second = get_configuration_for_goal(GoalType.PERFORMANCE)
        assert second.extras['batch_size'] == 10000
        assert second.field_weight_multipliers['names'] == 1.0


class TestSchemaAdjustment:
    @pytest.mark.parametrize('goal_type, ratio, expected', [
        (GoalType.BALANCED, 0.2, Thresholds(0.9, 0.7, 0.5)),
        (GoalType.HIGH_PRECISION, 0.2, Thresholds(0.95, 0.8, 0.65)),
        (GoalType.BALANCED, 0.9, Thresholds(0.82, 0.62, 0.42)),
        (GoalType.BALANCED, 0.5, Thresholds(0.85, 0.65, 0.45)),
    ])
    def test_thresholds_follow_uniqueness(self, customer_analysis, goal_type, ratio, expected):
        """Few unique fields raise thresholds, many unique fields lower them."""
        analysis = replace(customer_analysis, unique_field_ratio=ratio)
        adjusted = adjust_configuration_for_schema(get_configuration_for_goal(goal_type), analysis)
        assert adjusted.thresholds == expected

    def test_missing_ratio_leaves_thresholds(self, customer_analysis):
        analysis = replace(customer_analysis, unique_field_ratio=None)
        config = get_configuration_for_goal(GoalType.BALANCED)
        assert adjust_configuration_for_schema(config, analysis).thresholds == config.thresholds

    def test_email_blocking_unless_minimal(self, customer_analysis):
        balanced = adjust_configuration_for_schema(
            get_configuration_for_goal(GoalType.BALANCED), customer_analysis
        )
        recall = adjust_configuration_for_schema(
            get_configuration_for_goal(GoalType.HIGH_RECALL), customer_analysis
        )
        assert balanced.recommended_blocking == EMAIL_BLOCKING
        assert recall.recommended_blocking == NAME_BLOCKING

    def test_adjustment_is_pure(self, customer_analysis):
        """The input configuration is untouched and repeated calls agree."""
        analysis = replace(customer_analysis, unique_field_ratio=0.1)
        config = get_configuration_for_goal(GoalType.BALANCED)

        first = adjust_configuration_for_schema(config, analysis)
        second = adjust_configuration_for_schema(config, analysis)

        assert first == second
        assert config.thresholds == Thresholds(0.85, 0.65, 0.45)
        assert config.recommended_blocking == ()

    def test_missing_inputs_pass_through(self, customer_analysis):
        config = get_configuration_for_goal(GoalType.BALANCED)
        assert adjust_configuration_for_schema(config, None) is config
        assert adjust_configuration_for_schema(None, customer_analysis) is None


class TestRuleConfiguration:
    def test_goal_and_configuration(self, customer_analysis):
        rule_config = generate_rule_configuration('Find exact matches only', customer_analysis)
        assert rule_config.goal_type == GoalType.HIGH_PRECISION
        assert rule_config.configuration.goal_type == GoalType.HIGH_PRECISION
        assert rule_config.configuration.recommended_blocking == EMAIL_BLOCKING

    def test_custom_goal_requires_parameters(self):
        with pytest.raises(InvalidGoalConfiguration):
            generate_rule_configuration('custom settings')

    def test_custom_goal_starts_from_balanced(self):
        """Partial threshold overrides merge and unknown keys land in extras."""
        rule_config = generate_rule_configuration(
            'custom settings',
            custom_params={'thresholds': {'high': 0.92}, 'batch_size': 500}
        )
        config = rule_config.configuration
        assert rule_config.goal_type == GoalType.CUSTOM
        assert config.goal_type == GoalType.CUSTOM
        assert config.thresholds == Thresholds(0.92, 0.65, 0.45)
        assert config.extras['batch_size'] == 500

    def test_overrides_win_over_adjustment(self, customer_analysis):
        analysis = replace(customer_analysis, unique_field_ratio=0.2)
        rule_config = generate_rule_configuration(
            'Find exact matches only', analysis, {'thresholds': {'high': 0.91}}
        )
        assert rule_config.configuration.thresholds == Thresholds(0.91, 0.8, 0.65)

    def test_override_can_change_blocking_strategy(self):
        rule_config = generate_rule_configuration(
            'link the two tables', custom_params={'blocking_strategy': 'minimal'}
        )
        assert rule_config.configuration.blocking_strategy == BlockingAggressiveness.MINIMAL

    @pytest.mark.parametrize('overrides', [
        {'blocking_strategy': 'extreme'},
        {'thresholds': {'high': 0.1}},
    ])
    def test_invalid_overrides(self, overrides):
        with pytest.raises(InvalidGoalConfiguration):
            generate_rule_configuration('link the two tables', custom_params=overrides)


class TestRuleTypes:
    def test_rule_types_from_schema(self, customer_analysis):
        assert get_recommended_rule_types(GoalType.HIGH_PRECISION, customer_analysis) == [
            'exact_match', 'email_match', 'phone_match', 'name_match',
            'address_match', 'composite_key_match'
        ]

    def test_rule_types_without_schema(self):
        assert get_recommended_rule_types(GoalType.BALANCED) == [
            'exact_match', 'fuzzy_match', 'prefix_match'
        ]


class TestExplanation:
    def test_explain_configuration(self):
        config = get_configuration_for_goal(GoalType.HIGH_PRECISION)
        text = explain_configuration(GoalType.HIGH_PRECISION, config)

        assert text.startswith('Configuration optimized for: high precision')
        assert 'Detailed settings:' in text
        assert 'Transitive matching: Disabled' in text
        assert 'High (0.9)' in text
