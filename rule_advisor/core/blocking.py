"""Blocking strategy recommendation."""

from dataclasses import replace
from typing import List, Sequence, Tuple
import logging

from rule_advisor.config.models import (
    BlockingStrategy,
    CandidateRule,
    GoalType,
    SchemaAnalysis
)

logger = logging.getLogger(__name__)

MAX_STRATEGIES = 3
RECALL_EFFECTIVENESS_FACTOR = 0.8
SOUNDEX_EFFECTIVENESS = 0.6


def collect_blocking_fields(rules: Sequence[CandidateRule]) -> Tuple[str, ...]:
    """Distinct field names of blocking-eligible rules, in rule order."""
    names: List[str] = []
    for rule in rules:
        if not rule.blocking:
            continue
        for name in rule.field_names:
            if name not in names:
                names.append(name)
    return tuple(names)


def generate_blocking_recommendations(
    schema_info: SchemaAnalysis,
    selected_rules: Sequence[CandidateRule],
    goal_type: GoalType
) -> List[BlockingStrategy]:
    """
    Propose up to three blocking strategies for a table pair.

    Strategies are keyed off the presence of email, name, postal code and
    phone fields. Recall-oriented goals discount every strategy and add a
    Soundex name strategy.

    Args:
        schema_info: Schema analysis with typed common fields
        selected_rules: Rules chosen by the optimizer
        goal_type: Current matching goal

    Returns:
        List[BlockingStrategy]: Strategies sorted by effectiveness, best first
    """
    strategies: List[BlockingStrategy] = []

    email_fields = schema_info.fields_of_type('email')
    name_fields = schema_info.fields_of_type('firstName', 'lastName')
    postal_fields = schema_info.fields_of_type('postalCode')
    phone_fields = schema_info.fields_of_type('phoneNumber')

    if email_fields:
        name = email_fields[0].name
        strategies.append(BlockingStrategy(
            name='email_domain_blocking',
            description='Block by email domain',
            fields=(name,),
            transform_expression=f"SPLIT_PART({name}, '@', 2)",
            effectiveness=0.9
        ))

    if name_fields:
        name = name_fields[0].name
        strategies.append(BlockingStrategy(
            name='name_first_char_blocking',
            description='Block by first character of name',
            fields=(name,),
            transform_expression=f"LEFT({name}, 1)",
            effectiveness=0.7
        ))

    if postal_fields:
        name = postal_fields[0].name
        strategies.append(BlockingStrategy(
            name='postal_prefix_blocking',
            description='Block by postal code prefix',
            fields=(name,),
            transform_expression=f"LEFT({name}, 3)",
            effectiveness=0.85
        ))

    if phone_fields:
        name = phone_fields[0].name
        strategies.append(BlockingStrategy(
            name='phone_prefix_blocking',
            description='Block by phone number prefix',
            fields=(name,),
            transform_expression=f"LEFT({name}, 3)",
            effectiveness=0.8
        ))

    if goal_type == GoalType.HIGH_RECALL:
        strategies = [
            replace(
                strategy,
                effectiveness=round(strategy.effectiveness * RECALL_EFFECTIVENESS_FACTOR, 4)
            )
            for strategy in strategies
        ]
        if name_fields:
            name = name_fields[0].name
            strategies.append(BlockingStrategy(
                name='name_soundex_blocking',
                description='Block by Soundex code of name',
                fields=(name,),
                transform_expression=f"SOUNDEX({name})",
                effectiveness=SOUNDEX_EFFECTIVENESS
            ))

    strategies.sort(key=lambda strategy: strategy.effectiveness, reverse=True)
    top = strategies[:MAX_STRATEGIES]

    blocking_fields = collect_blocking_fields(selected_rules)
    logger.info(
        f"Recommended {len(top)} blocking strategies; "
        f"blocking-eligible rule fields: {', '.join(blocking_fields) or 'none'}"
    )
    return top
