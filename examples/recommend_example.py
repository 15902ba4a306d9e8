"""Example usage of the rule recommendation system with CSV files."""

import pandas as pd
import logging
from pathlib import Path
from typing import Optional

from rule_advisor.config.models import RecommendationOptions
from rule_advisor.core.recommender import RuleRecommender
from rule_advisor.core.schema import DataFrameSchemaProvider
from rule_advisor.core.tracker import PerformanceTracker
from rule_advisor.interfaces import ExecutionResult, RuleExecutionResult


def create_sample_tables() -> DataFrameSchemaProvider:
    """
    Build a provider holding two small customer tables.

    Returns:
        DataFrameSchemaProvider: Provider with 'crm_customers' and 'billing_accounts'
    """
    customers = pd.DataFrame({
        'customer_id': ['C001', 'C002', 'C003', 'C004', 'C005'],
        'first_name': ['Anna', 'Bram', 'Carla', 'Dirk', 'Eva'],
        'last_name': ['Jansen', 'de Vries', 'Bakker', 'Visser', 'Smit'],
        'email': [
            'anna.jansen@example.com', 'bram@vries.nl', 'carla.bakker@mail.com',
            'dirk.visser@example.com', 'eva.smit@mail.com'
        ],
        'city': ['Amsterdam', 'Utrecht', 'Rotterdam', 'Leiden', 'Delft'],
        'postal_code': ['10115', '35111', '30111', '23111', '26111'],
    })
    accounts = pd.DataFrame({
        'account_id': ['A10', 'A11', 'A12', 'A13'],
        'first_name': ['Anna', 'Bram', 'Karla', 'Dirk'],
        'last_name': ['Jansen', 'Vries', 'Bakker', 'Visser'],
        'email_address': [
            'anna.jansen@example.com', 'bram@vries.nl', 'karla.bakker@mail.com',
            'dirk.visser@example.com'
        ],
        'city': ['Amsterdam', 'Utrecht', 'Rotterdam', 'Leiden'],
        'zip': ['10115', '35111', '30111', '23111'],
    })
    return DataFrameSchemaProvider({
        'crm_customers': customers,
        'billing_accounts': accounts,
    })


class LoggingExecutor:
    """Stand-in execution engine that reports a fixed outcome per rule."""

    def execute(self, rule_config):
        logging.info(f"Executing {len(rule_config['rules'])} rules")
        return ExecutionResult(
            rule_results=[
                RuleExecutionResult(
                    rule_name=rule['name'],
                    execution_time_ms=120.0,
                    match_count=3,
                    comparison_count=20,
                    precision=0.9,
                    recall=0.8,
                    field_contributions={f['name']: 0.8 for f in rule['fields']}
                )
                for rule in rule_config['rules']
            ],
            total_matches=3,
            total_comparisons=20
        )


def recommend_for_csv_files(
    source_file: Optional[Path] = None,
    reference_file: Optional[Path] = None,
    goal: str = "Find exact matches only",
    max_rule_count: int = 5
) -> str:
    """
    Recommend matching rules for two CSV files, or the built-in sample tables.

    Args:
        source_file: Path to source CSV file
        reference_file: Path to reference CSV file
        goal: Free-text matching goal
        max_rule_count: Maximum number of rules to recommend

    Returns:
        str: Markdown explanation of the recommendation
    """
    try:
        # Configure logging
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s'
        )

        if source_file and reference_file:
            logging.info(f"Reading source file: {source_file}")
            logging.info(f"Reading reference file: {reference_file}")
            provider = DataFrameSchemaProvider({
                'source': pd.read_csv(source_file),
                'reference': pd.read_csv(reference_file),
            })
            source_id, reference_id = 'source', 'reference'
        else:
            provider = create_sample_tables()
            source_id, reference_id = 'crm_customers', 'billing_accounts'

        tracker = PerformanceTracker()
        recommender = RuleRecommender(tracker=tracker, schema_provider=provider)

        options = RecommendationOptions(max_rule_count=max_rule_count)
        recommendation = recommender.recommend_for_tables(source_id, reference_id, goal, options)

        logging.info("\nRecommended Rules:")
        for rule in recommendation.rules:
            logging.info(
                f"{rule.name}: {rule.type} on {', '.join(rule.field_names) or '-'} "
                f"(effectiveness {rule.effectiveness:.2f}, performance {rule.performance:.2f})"
            )

        # Feed a simulated execution back so the next run sees history
        recommender.apply_recommended_rules(recommendation, LoggingExecutor())
        rerun = recommender.recommend_for_tables(source_id, reference_id, goal, options)

        report = tracker.generate_performance_report()
        logging.info(f"\nTracked {report.rule_count} rules and combinations")

        return rerun.explanation

    except Exception as e:
        logging.error(f"An error occurred: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    print(recommend_for_csv_files())
