"""Goal interpretation: free-text goal to matching configuration."""

from dataclasses import fields, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
import logging

from rule_advisor.config.models import (
    BlockingAggressiveness,
    GoalConfiguration,
    GoalType,
    RuleConfiguration,
    SchemaAnalysis,
    Thresholds
)
from rule_advisor.config.rules import (
    DEFAULT_UNIQUE_FIELD_RATIO,
    GOAL_KEYWORDS,
    GOAL_PRESETS,
    HIGH_UNIQUENESS_RATIO,
    LOW_UNIQUENESS_RATIO,
    NAME_TYPES,
    THRESHOLD_LOWER,
    THRESHOLD_LOWER_FLOORS,
    THRESHOLD_RAISE,
    THRESHOLD_RAISE_CAPS
)
from rule_advisor.errors import InvalidGoalConfiguration

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = frozenset(f.name for f in fields(GoalConfiguration))

EMAIL_BLOCKING = ('email_domain', 'email_prefix')
NAME_BLOCKING = ('name_first_char', 'last_name_soundex')


def infer_goal_from_description(goal_description: Any) -> GoalType:
    """
    Map a free-text goal to a goal type.

    Precision phrases are checked first, then recall, performance and custom.
    Empty or non-string input yields BALANCED.
    """
    if not goal_description or not isinstance(goal_description, str):
        return GoalType.BALANCED

    normalized = goal_description.lower()
    for goal_type, keywords in GOAL_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return goal_type
    return GoalType.BALANCED


def get_configuration_for_goal(goal_type: GoalType) -> Optional[GoalConfiguration]:
    """
    Build the fixed configuration for a goal type.

    Args:
        goal_type: Goal to configure

    Returns:
        Optional[GoalConfiguration]: Preset configuration, None for CUSTOM
    """
    if goal_type == GoalType.CUSTOM:
        return None

    preset = dict(GOAL_PRESETS[goal_type])
    preset['thresholds'] = Thresholds(*preset['thresholds'])
    preset['field_weight_multipliers'] = dict(preset['field_weight_multipliers'])
    preset['extras'] = dict(preset.get('extras', {}))
    return GoalConfiguration(goal_type=goal_type, **preset)


def _unique_field_ratio(schema_info: SchemaAnalysis) -> float:
    if schema_info.unique_field_ratio is None:
        return DEFAULT_UNIQUE_FIELD_RATIO
    return schema_info.unique_field_ratio


def adjust_configuration_for_schema(
    config: Optional[GoalConfiguration],
    schema_info: Optional[SchemaAnalysis]
) -> Optional[GoalConfiguration]:
    """
    Tune a configuration to the fields and field quality of a table pair.

    Never mutates its input; the same inputs always give the same output.

    Args:
        config: Base configuration
        schema_info: Schema analysis of the table pair

    Returns:
        Optional[GoalConfiguration]: Adjusted copy, or config unchanged if
        either argument is missing
    """
    if config is None or schema_info is None:
        return config

    changes: Dict[str, Any] = {}

    has_email = bool(schema_info.fields_of_type('email'))
    has_names = bool(schema_info.fields_of_type(*NAME_TYPES))

    if has_email and config.blocking_strategy != BlockingAggressiveness.MINIMAL:
        changes['recommended_blocking'] = EMAIL_BLOCKING
    elif has_names:
        changes['recommended_blocking'] = NAME_BLOCKING

    ratio = _unique_field_ratio(schema_info)
    if ratio < LOW_UNIQUENESS_RATIO:
        changes['thresholds'] = config.thresholds.shifted(THRESHOLD_RAISE, THRESHOLD_RAISE_CAPS)
    elif ratio > HIGH_UNIQUENESS_RATIO:
        changes['thresholds'] = config.thresholds.shifted(THRESHOLD_LOWER, THRESHOLD_LOWER_FLOORS)

    if 'thresholds' in changes:
        logger.debug(
            f"Unique field ratio {ratio:.2f} moved thresholds to {changes['thresholds']}"
        )
    return replace(config, **changes)


def _coerce_thresholds(value: Any, current: Thresholds) -> Thresholds:
    if isinstance(value, Thresholds):
        return value
    if isinstance(value, Mapping):
        # Partial overrides keep the current values for missing keys
        return Thresholds(
            high=value.get('high', current.high),
            medium=value.get('medium', current.medium),
            low=value.get('low', current.low)
        )
    return Thresholds(*value)


def _apply_overrides(
    config: GoalConfiguration,
    overrides: Mapping[str, Any]
) -> GoalConfiguration:
    """Shallow-merge overrides onto a configuration; unknown keys go to extras."""
    changes: Dict[str, Any] = {}
    extras = dict(config.extras)

    try:
        for key, value in overrides.items():
            if key == 'goal_type':
                continue
            if key == 'thresholds':
                changes[key] = _coerce_thresholds(value, config.thresholds)
            elif key == 'blocking_strategy':
                changes[key] = BlockingAggressiveness(value)
            elif key == 'recommended_blocking':
                changes[key] = tuple(value)
            elif key == 'extras':
                extras.update(value)
            elif key in _CONFIG_FIELDS:
                changes[key] = value
            else:
                extras[key] = value
    except (TypeError, ValueError) as e:
        raise InvalidGoalConfiguration(f"Invalid override '{key}': {e}") from e

    changes['extras'] = extras
    try:
        return replace(config, **changes)
    except (TypeError, ValueError) as e:
        raise InvalidGoalConfiguration(f"Invalid overrides: {e}") from e


def generate_rule_configuration(
    goal_description: Any,
    schema_info: Optional[SchemaAnalysis] = None,
    custom_params: Optional[Mapping[str, Any]] = None
) -> RuleConfiguration:
    """
    Compose goal inference, preset lookup and schema adjustment.

    Explicit custom parameters are applied last and always win.

    Args:
        goal_description: Free-text goal
        schema_info: Optional schema analysis for adjustment
        custom_params: Overrides for configuration fields

    Returns:
        RuleConfiguration: Goal type and final configuration

    Raises:
        InvalidGoalConfiguration: If a CUSTOM goal has no overrides, or an
            override is invalid
    """
    custom_params = custom_params or {}
    goal_type = infer_goal_from_description(goal_description)

    if goal_type == GoalType.CUSTOM:
        if not custom_params:
            raise InvalidGoalConfiguration(
                "A custom goal requires non-empty custom parameters"
            )
        base = replace(get_configuration_for_goal(GoalType.BALANCED), goal_type=GoalType.CUSTOM)
        config = _apply_overrides(base, custom_params)
    else:
        config = get_configuration_for_goal(goal_type)

    config = adjust_configuration_for_schema(config, schema_info)

    if custom_params:
        config = _apply_overrides(config, custom_params)

    logger.info(f"Generated {goal_type.value} configuration")
    return RuleConfiguration(
        goal_type=goal_type,
        configuration=config,
        generated_at=datetime.now()
    )


def get_recommended_rule_types(
    goal_type: GoalType,
    schema_info: Optional[SchemaAnalysis] = None
) -> List[str]:
    """List rule types worth considering for a goal and schema, deduplicated."""
    rule_types = ['exact_match']

    if schema_info is not None:
        present = {common.semantic_type_name for common in schema_info.common_fields}
        if 'email' in present:
            rule_types.append('email_match')
        if 'phoneNumber' in present:
            rule_types.append('phone_match')
        if present & set(NAME_TYPES):
            rule_types.append('name_match')
        if present & {'streetAddress', 'city', 'postalCode'}:
            rule_types.append('address_match')
        if 'dateOfBirth' in present:
            rule_types.append('dob_match')

    if goal_type == GoalType.HIGH_PRECISION:
        rule_types.append('composite_key_match')
    elif goal_type == GoalType.HIGH_RECALL:
        rule_types.extend(['fuzzy_match', 'transitive_match', 'partial_match'])
    elif goal_type == GoalType.PERFORMANCE:
        rule_types.append('prefix_match')
    else:
        rule_types.extend(['fuzzy_match', 'prefix_match'])

    return list(dict.fromkeys(rule_types))


GOAL_EXPLANATIONS: Dict[GoalType, str] = {
    GoalType.HIGH_PRECISION: (
        "This configuration prioritizes accuracy over completeness. It will find "
        "fewer matches overall, but the matches it finds will be highly reliable. "
        "It uses:\n\n"
        "- Higher match thresholds to require stronger evidence\n"
        "- Weighted scoring that emphasizes unique identifiers\n"
        "- Conservative fuzzy matching to reduce false positives\n"
        "- Disabled transitive matching to prevent error propagation\n"
    ),
    GoalType.HIGH_RECALL: (
        "This configuration prioritizes finding as many potential matches as "
        "possible, even if some are lower confidence. It uses:\n\n"
        "- Lower match thresholds to capture more potential matches\n"
        "- Minimal blocking to compare more record pairs\n"
        "- Aggressive fuzzy matching to find non-obvious similarities\n"
        "- Enabled transitive matching to find indirect relationships\n"
    ),
    GoalType.PERFORMANCE: (
        "This configuration optimizes for processing speed and efficiency. "
        "It uses:\n\n"
        "- Aggressive blocking to reduce comparisons\n"
        "- Prioritization of fields that are computationally efficient to compare\n"
        "- Disabled complex features like transitive matching\n"
        "- Batch processing and parallel execution\n"
    ),
    GoalType.BALANCED: (
        "This configuration provides a balanced approach between accuracy and "
        "completeness. It uses:\n\n"
        "- Moderate thresholds suitable for most use cases\n"
        "- Balanced blocking strategy\n"
        "- Even field weights across different types\n"
        "- Standard fuzzy matching parameters\n"
    ),
    GoalType.CUSTOM: (
        "This configuration starts from the balanced defaults and applies your "
        "custom parameters on top.\n"
    ),
}


def explain_configuration(goal_type: GoalType, config: GoalConfiguration) -> str:
    """Render a human-readable explanation of a goal configuration."""
    thresholds = config.thresholds
    lines = [
        f"Configuration optimized for: {goal_type.value.replace('_', ' ')}",
        "",
        GOAL_EXPLANATIONS[goal_type],
        "Detailed settings:",
        f"- Match thresholds: High ({thresholds.high}), Medium ({thresholds.medium}), "
        f"Low ({thresholds.low})",
        f"- Blocking strategy: {config.blocking_strategy.value}",
        f"- Transitive matching: {'Enabled' if config.transitive_matching else 'Disabled'}",
    ]
    return '\n'.join(lines) + '\n'
