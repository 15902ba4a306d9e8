"""Rule scoring and greedy selection of a low-redundancy rule set."""

from typing import List, Optional, Sequence
import logging

import numpy as np

from rule_advisor.config.models import (
    CandidateRule,
    Confidence,
    GoalType,
    OptimizationOptions,
    RuleCombination,
    RuleSetEstimate,
    SchemaAnalysis,
    Thresholds
)
from rule_advisor.config.rules import BASE_PERFORMANCE_SCORES, DEFAULT_PERFORMANCE_SCORE
from rule_advisor.errors import NoRulesAvailable

logger = logging.getLogger(__name__)

# Minimum marginal effectiveness a rule must add to be selected
MIN_MARGINAL_GAIN = 0.05
# Above this weight the optimizer stops as soon as the target is met
EARLY_STOP_PERFORMANCE_WEIGHT = 0.3

LARGE_VOLUME = 1_000_000
VERY_LARGE_VOLUME = 10_000_000
MANY_FIELDS = 3

FIELD_OVERLAP_WEIGHT = 0.7
ALGORITHM_OVERLAP_WEIGHT = 0.3

DEFAULT_RULE_THRESHOLD = 0.7


def _clamp(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


def _contains_any(text: str, *parts: str) -> bool:
    return any(part in text for part in parts)


def _field_quality(name: str, schema_info: SchemaAnalysis) -> float:
    if schema_info.common_field(name) is None:
        return 0.0
    stats = schema_info.field_stats.get(name)
    if stats is None:
        return 0.5
    return (stats.unique_ratio + (1 - stats.null_ratio)) / 2


def _goal_factor(rule_type: str, goal_type: GoalType) -> float:
    if goal_type == GoalType.HIGH_PRECISION:
        if _contains_any(rule_type, 'exact', 'id_match'):
            return 1.3
        if _contains_any(rule_type, 'fuzzy', 'partial'):
            return 0.7
    elif goal_type == GoalType.HIGH_RECALL:
        if _contains_any(rule_type, 'fuzzy', 'partial', 'transitive'):
            return 1.3
    elif goal_type == GoalType.PERFORMANCE:
        if _contains_any(rule_type, 'exact', 'prefix'):
            return 1.2
        if _contains_any(rule_type, 'transitive', 'complex'):
            return 0.6
    return 1.0


def calculate_rule_effectiveness(
    rule: CandidateRule,
    schema_info: SchemaAnalysis,
    goal_type: GoalType
) -> float:
    """
    Estimate how well a rule will match for this schema and goal.

    Each field scores the mean of its uniqueness and completeness; fields
    missing from the schema score 0 and fields without statistics 0.5. The
    field average is scaled by a goal-dependent factor and clamped.

    Args:
        rule: Candidate rule
        schema_info: Schema analysis with field statistics
        goal_type: Current matching goal

    Returns:
        float: Effectiveness in [0, 1]
    """
    base_score = 0.0
    if rule.fields:
        base_score = float(np.mean([
            _field_quality(rule_field.name, schema_info) for rule_field in rule.fields
        ]))
    return _clamp(base_score * _goal_factor(rule.type, goal_type))


def base_performance_score(rule_type: str) -> float:
    """Base cost estimate for a rule type; the first listed substring wins."""
    for known_type, score in BASE_PERFORMANCE_SCORES:
        if known_type in rule_type:
            return score
    return DEFAULT_PERFORMANCE_SCORE


def calculate_rule_performance(
    rule: CandidateRule,
    schema_info: Optional[SchemaAnalysis] = None
) -> float:
    """
    Estimate how cheap a rule is to run, higher meaning cheaper.

    Args:
        rule: Candidate rule
        schema_info: Schema analysis carrying row counts

    Returns:
        float: Performance in [0, 1]
    """
    score = base_performance_score(rule.type)

    volume = schema_info.data_volume if schema_info is not None else None
    if volume:
        # Exclusive: the 10M penalty only reaches bases in [0.7, 0.8)
        if volume > LARGE_VOLUME and score < 0.7:
            score *= 0.8
        elif volume > VERY_LARGE_VOLUME and score < 0.8:
            score *= 0.6
        if rule.blocking and volume > LARGE_VOLUME:
            score *= 1.3

    if len(rule.fields) > MANY_FIELDS:
        score *= 0.9

    return _clamp(score)


def calculate_rule_overlap(
    candidate: CandidateRule,
    existing_rules: Sequence[CandidateRule]
) -> float:
    """
    Measure how much a candidate duplicates rules already selected.

    Against each selected rule the overlap is 0.7 times the share of the
    candidate's fields it already covers plus 0.3 times the algorithm
    similarity (1 for the same type, 0.5 when one type contains the other).

    Args:
        candidate: Rule being considered
        existing_rules: Rules already selected

    Returns:
        float: Highest overlap with any selected rule, in [0, 1]
    """
    if not existing_rules:
        return 0.0

    candidate_fields = candidate.field_names
    overlaps = []
    for existing in existing_rules:
        existing_fields = set(existing.field_names)
        field_overlap = 0.0
        if candidate_fields:
            shared = sum(1 for name in candidate_fields if name in existing_fields)
            field_overlap = shared / len(candidate_fields)

        if candidate.type == existing.type:
            algorithm_similarity = 1.0
        elif candidate.type in existing.type or existing.type in candidate.type:
            algorithm_similarity = 0.5
        else:
            algorithm_similarity = 0.0

        overlaps.append(
            field_overlap * FIELD_OVERLAP_WEIGHT + algorithm_similarity * ALGORITHM_OVERLAP_WEIGHT
        )
    return max(overlaps)


def _weighted_score(effectiveness: float, performance: float, performance_weight: float) -> float:
    return effectiveness * (1 - performance_weight) + performance * performance_weight


def score_rules(
    rules: Sequence[CandidateRule],
    schema_info: SchemaAnalysis,
    goal_type: GoalType
) -> List[CandidateRule]:
    """Attach effectiveness and performance scores to every rule."""
    scored = []
    for rule in rules:
        effectiveness = calculate_rule_effectiveness(rule, schema_info, goal_type)
        performance = calculate_rule_performance(rule, schema_info)
        logger.debug(
            f"Scored {rule.name}: effectiveness={effectiveness:.3f}, "
            f"performance={performance:.3f}"
        )
        scored.append(rule.with_scores(effectiveness, performance))
    return scored


def optimize_rule_combination(
    scored_rules: Sequence[CandidateRule],
    options: Optional[OptimizationOptions] = None
) -> RuleCombination:
    """
    Greedily select a bounded, low-redundancy subset of scored rules.

    Rules are ranked by weighted score. The best rule seeds the selection;
    each further rule joins only if its effectiveness discounted by overlap
    exceeds 0.05. When the target effectiveness is still unmet, the next
    unselected rules by rank are appended until it is met or capacity runs out.

    Args:
        scored_rules: Rules with effectiveness and performance set
        options: Selection bounds

    Returns:
        RuleCombination: Selected rules with aggregate scores

    Raises:
        NoRulesAvailable: If no rules are supplied
        ValueError: If a rule has not been scored
    """
    if not scored_rules:
        raise NoRulesAvailable()
    options = options or OptimizationOptions()

    for rule in scored_rules:
        if not rule.is_scored:
            raise ValueError(f"Rule {rule.name} must be scored before optimization")

    weight = options.performance_weight
    order = sorted(
        range(len(scored_rules)),
        key=lambda i: _weighted_score(
            scored_rules[i].effectiveness, scored_rules[i].performance, weight
        ),
        reverse=True
    )

    selected_indexes = [order[0]]
    selected = [scored_rules[order[0]]]
    total_effectiveness = selected[0].effectiveness

    for index in order[1:]:
        if len(selected) >= options.max_rule_count:
            break
        candidate = scored_rules[index]
        marginal_gain = candidate.effectiveness * (1 - calculate_rule_overlap(candidate, selected))
        if marginal_gain > MIN_MARGINAL_GAIN:
            selected_indexes.append(index)
            selected.append(candidate)
            total_effectiveness += marginal_gain
        if (total_effectiveness >= options.min_effectiveness
                and weight > EARLY_STOP_PERFORMANCE_WEIGHT):
            break

    for index in order:
        if (total_effectiveness >= options.min_effectiveness
                or len(selected) >= options.max_rule_count):
            break
        candidate = scored_rules[index]
        if index in selected_indexes or candidate in selected:
            continue
        total_effectiveness += candidate.effectiveness * (1 - calculate_rule_overlap(candidate, selected))
        selected_indexes.append(index)
        selected.append(candidate)

    effectiveness = _clamp(total_effectiveness)
    performance = _clamp(float(np.mean([rule.performance for rule in selected])))

    logger.info(
        f"Selected {len(selected)} of {len(scored_rules)} rules "
        f"(effectiveness={effectiveness:.2f}, performance={performance:.2f})"
    )
    return RuleCombination(
        rules=tuple(selected),
        effectiveness=effectiveness,
        performance=performance,
        combined_score=_weighted_score(effectiveness, performance, weight)
    )


def find_optimal_rule_combination(
    available_rules: Sequence[CandidateRule],
    schema_info: SchemaAnalysis,
    goal_type: GoalType,
    options: Optional[OptimizationOptions] = None
) -> RuleCombination:
    """
    Score candidate rules and select the best combination.

    Raises:
        NoRulesAvailable: If no candidate rules are supplied
    """
    if not available_rules:
        raise NoRulesAvailable()
    scored = score_rules(available_rules, schema_info, goal_type)
    return optimize_rule_combination(scored, options)


def evaluate_rule_set(
    rules: Sequence[CandidateRule],
    schema_info: SchemaAnalysis
) -> RuleSetEstimate:
    """
    Rough precision/recall estimate for a rule set.

    A ranking heuristic from rule confidence and field coverage, not a
    measurement against ground truth.
    """
    if not rules:
        return RuleSetEstimate(0.0, 0.0, 0.0)

    high_quality = sum(
        1 for rule in rules
        if rule.confidence in (Confidence.HIGH, Confidence.VERY_HIGH)
    )
    field_count = max(1, len(schema_info.common_fields))

    precision = _clamp(0.7 + 0.3 * high_quality / len(rules))
    recall = _clamp(0.6 + 0.3 * len(rules) / field_count)
    f1 = 2 * precision * recall / (precision + recall)
    return RuleSetEstimate(
        estimated_precision=precision,
        estimated_recall=recall,
        estimated_f1=f1
    )


def get_threshold_for_rule(
    rule: Optional[CandidateRule],
    thresholds: Optional[Thresholds]
) -> float:
    """Pick the threshold tier for a rule from its type and confidence."""
    if rule is None or thresholds is None:
        return DEFAULT_RULE_THRESHOLD

    if 'exact_match' in rule.type or rule.confidence == Confidence.VERY_HIGH:
        return thresholds.high
    if 'fuzzy' in rule.type or rule.confidence == Confidence.MEDIUM:
        return thresholds.medium
    if 'partial' in rule.type or rule.confidence == Confidence.LOW:
        return thresholds.low
    return thresholds.medium
