"""Candidate rule generation from the semantic types of common fields."""

from typing import List, Optional
import logging

from rule_advisor.config.models import (
    CandidateRule,
    CommonField,
    Confidence,
    GoalType,
    RuleField,
    SchemaAnalysis
)
from rule_advisor.config.rules import (
    BLOCKING_ALGORITHMS,
    BLOCKING_TYPES,
    DEFAULT_ALGORITHM_RULES,
    DEFAULT_ALGORITHMS,
    IDENTIFIER_TYPES,
    RECOMMENDED_ALGORITHMS,
    AlgorithmRules
)

logger = logging.getLogger(__name__)

COMPOSITE_ALGORITHM = 'weighted_fields'


def get_recommended_algorithms(semantic_type: str) -> List[str]:
    """Algorithms suited to a semantic type, exact match when unlisted."""
    return list(RECOMMENDED_ALGORITHMS.get(semantic_type, DEFAULT_ALGORITHMS))


def can_use_for_blocking(common: CommonField, algorithm: str) -> bool:
    """
    Check whether a field/algorithm pair can serve as a blocking key.

    Only exact or prefix comparison on identifier-like types qualifies.
    """
    if common.semantic_type is None:
        return False
    if algorithm not in BLOCKING_ALGORITHMS:
        return False
    return common.semantic_type.type in BLOCKING_TYPES


def _single_field_rules(
    common: CommonField,
    goal_type: GoalType,
    algorithm_rules: AlgorithmRules
) -> List[CandidateRule]:
    semantic_type = common.semantic_type_name
    rules = []
    for algorithm in get_recommended_algorithms(semantic_type):
        if not algorithm_rules.allows(algorithm, semantic_type, goal_type):
            continue
        rules.append(CandidateRule(
            type=f"{algorithm}_match",
            name=f"{semantic_type}_{algorithm}",
            fields=(RuleField(common.name, 1.0),),
            algorithm=algorithm,
            confidence=Confidence.HIGH if algorithm == 'exact' else Confidence.MEDIUM,
            blocking=can_use_for_blocking(common, algorithm)
        ))
    return rules


def _first_of_type(schema_info: SchemaAnalysis, semantic_type: str) -> Optional[CommonField]:
    matches = schema_info.fields_of_type(semantic_type)
    return matches[0] if matches else None


def add_composite_rules(
    rules: List[CandidateRule],
    schema_info: SchemaAnalysis,
    goal_type: GoalType
) -> List[CandidateRule]:
    """
    Append multi-field rules for fields that commonly belong together.

    Args:
        rules: Rule list to extend in place
        schema_info: Schema analysis with typed common fields
        goal_type: Current matching goal

    Returns:
        List[CandidateRule]: The extended list
    """
    first_name = _first_of_type(schema_info, 'firstName')
    last_name = _first_of_type(schema_info, 'lastName')
    if first_name and last_name:
        rules.append(CandidateRule(
            type='composite_match',
            name='full_name_match',
            fields=(RuleField(first_name.name, 0.4), RuleField(last_name.name, 0.6)),
            algorithm=COMPOSITE_ALGORITHM,
            confidence=Confidence.HIGH,
            blocking=True
        ))

    city = _first_of_type(schema_info, 'city')
    postal = _first_of_type(schema_info, 'postalCode')
    if city and postal:
        rules.append(CandidateRule(
            type='composite_match',
            name='location_match',
            fields=(RuleField(city.name, 0.4), RuleField(postal.name, 0.6)),
            algorithm=COMPOSITE_ALGORITHM,
            confidence=Confidence.HIGH,
            blocking=True
        ))

    if goal_type == GoalType.HIGH_PRECISION:
        id_fields = schema_info.fields_of_type(*IDENTIFIER_TYPES)
        if len(id_fields) >= 2:
            rules.append(CandidateRule(
                type='composite_match',
                name='unique_id_match',
                fields=tuple(RuleField(common.name, 0.5) for common in id_fields[:2]),
                algorithm='all_fields_match',
                confidence=Confidence.VERY_HIGH,
                blocking=True
            ))

    return rules


def create_potential_rules(
    schema_info: SchemaAnalysis,
    goal_type: GoalType,
    algorithm_rules: AlgorithmRules = DEFAULT_ALGORITHM_RULES
) -> List[CandidateRule]:
    """
    Enumerate every plausible rule for a table pair under a goal.

    Fields without a semantic type, or typed 'unknown', produce no rules.

    Args:
        schema_info: Schema analysis with typed common fields
        goal_type: Current matching goal
        algorithm_rules: Goal-dependent algorithm filters

    Returns:
        List[CandidateRule]: Unscored candidates in generation order
    """
    rules: List[CandidateRule] = []
    for common in schema_info.common_fields:
        if common.semantic_type_name == 'unknown':
            continue
        rules.extend(_single_field_rules(common, goal_type, algorithm_rules))

    add_composite_rules(rules, schema_info, goal_type)

    if goal_type == GoalType.HIGH_RECALL:
        rules.append(CandidateRule(
            type='transitive_match',
            name='transitive_closure',
            fields=(),
            algorithm='transitive',
            confidence=Confidence.MEDIUM,
            blocking=False
        ))

    logger.info(f"Generated {len(rules)} candidate rules for {goal_type.value} goal")
    return rules
