"""Main rule recommendation pipeline."""

from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging
import time

from rule_advisor.config.models import (
    FieldTypeSummary,
    PerformanceMetrics,
    Recommendation,
    RecommendationOptions,
    RulePerformanceRecord,
    SchemaAnalysis,
    TableSchema
)
from rule_advisor.config.rules import DEFAULT_ALGORITHM_RULES, AlgorithmRules
from rule_advisor.core.blocking import collect_blocking_fields, generate_blocking_recommendations
from rule_advisor.core.generator import create_potential_rules
from rule_advisor.core.goals import explain_configuration, generate_rule_configuration
from rule_advisor.core.inference import Samples
from rule_advisor.core.inference import infer_field_types as _infer_field_types
from rule_advisor.core.optimizer import find_optimal_rule_combination, get_threshold_for_rule
from rule_advisor.core.schema import SchemaAnalyzer, enrich_common_fields
from rule_advisor.core.tracker import PerformanceTracker, combination_id
from rule_advisor.errors import NoRulesAvailable, RecommendationFailed, RuleAdvisorError
from rule_advisor.interfaces import ExecutionResult, RuleExecutor, SchemaProvider


class RuleRecommender:
    """
    Recommends matching rule sets for a table pair from a free-text goal.
    """

    def __init__(
        self,
        tracker: Optional[PerformanceTracker] = None,
        schema_provider: Optional[SchemaProvider] = None,
        algorithm_rules: AlgorithmRules = DEFAULT_ALGORITHM_RULES
    ):
        """
        Initialize the recommender.

        Args:
            tracker: Performance tracker supplying history, a fresh one by default
            schema_provider: Schema collaborator used by recommend_for_tables
            algorithm_rules: Goal-dependent algorithm filters for rule generation
        """
        self.tracker = tracker if tracker is not None else PerformanceTracker()
        self.schema_provider = schema_provider
        self.algorithm_rules = algorithm_rules

        self._initialize_logging()

    def _initialize_logging(self) -> None:
        """Setup logging configuration."""
        self.logger = logging.getLogger(__name__)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter(
                    '%(asctime)s - %(levelname)s - %(message)s'
                )
            )
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def _ensure_semantic_types(self, analysis: SchemaAnalysis) -> SchemaAnalysis:
        """Type any common field that reached the recommender untyped."""
        if all(common.semantic_type is not None for common in analysis.common_fields):
            return analysis

        self.logger.info("Inferring field types for untyped common fields...")
        source_schema = self._typed_schema(analysis.source_schema)
        reference_schema = self._typed_schema(analysis.reference_schema)

        untyped = [common for common in analysis.common_fields if common.semantic_type is None]
        inferred = {
            common.name: common
            for common in enrich_common_fields(untyped, source_schema, reference_schema)
        }
        return replace(
            analysis,
            source_schema=source_schema,
            reference_schema=reference_schema,
            common_fields=tuple(
                inferred.get(common.name, common) if common.semantic_type is None else common
                for common in analysis.common_fields
            )
        )

    @staticmethod
    def _typed_schema(schema: Optional[TableSchema]) -> Optional[TableSchema]:
        if schema is None:
            return None
        if all(schema_field.semantic_type is not None for schema_field in schema.fields):
            return schema
        return _infer_field_types(schema)

    def recommend_rules(
        self,
        schema_analysis: SchemaAnalysis,
        goal_description: Any,
        options: Optional[RecommendationOptions] = None,
        source_table: Optional[str] = None,
        reference_table: Optional[str] = None
    ) -> Recommendation:
        """
        Recommend rules, blocking and thresholds for an analyzed table pair.

        Args:
            schema_analysis: Analysis of the table pair
            goal_description: Free-text matching goal
            options: Optimization bounds and custom parameters
            source_table: Source table identifier, for reporting
            reference_table: Reference table identifier, for reporting

        Returns:
            Recommendation: Complete recommendation with explanation

        Raises:
            InvalidGoalConfiguration: If a custom goal lacks parameters
            NoRulesAvailable: If no candidate rule can be generated
            RecommendationFailed: If anything else goes wrong
        """
        options = options or RecommendationOptions()
        try:
            analysis = self._ensure_semantic_types(schema_analysis)

            self.logger.info("Analyzing goal...")
            rule_configuration = generate_rule_configuration(
                goal_description, analysis, options.custom_params
            )
            goal_type = rule_configuration.goal_type
            config = rule_configuration.configuration

            self.logger.info("Optimizing rule selection...")
            candidates = create_potential_rules(analysis, goal_type, self.algorithm_rules)
            if not candidates:
                raise NoRulesAvailable(
                    "No candidate rules could be generated; "
                    "the tables share no recognizable fields"
                )
            combination = find_optimal_rule_combination(
                candidates, analysis, goal_type, options.optimization()
            )
            blocking = generate_blocking_recommendations(analysis, combination.rules, goal_type)

            self.logger.info("Applying performance history...")
            rules = self.tracker.apply_historical_performance_data(combination.rules)

            recommendation = Recommendation(
                goal_description=goal_description if isinstance(goal_description, str) else '',
                goal_type=goal_type,
                configuration=config,
                field_types=tuple(
                    FieldTypeSummary(
                        name=common.name,
                        semantic_type=common.semantic_type_name,
                        confidence=common.semantic_type.confidence
                    )
                    for common in analysis.common_fields
                ),
                common_field_count=len(analysis.common_fields),
                rules=tuple(rules),
                blocking=tuple(blocking),
                estimated_effectiveness=combination.effectiveness,
                estimated_performance=combination.performance,
                combined_score=combination.combined_score,
                historical_data=any(rule.historical_f1_score is not None for rule in rules),
                explanation='',
                generated_at=datetime.now(),
                source_table=source_table,
                reference_table=reference_table,
                source_row_count=analysis.source_row_count,
                reference_row_count=analysis.reference_row_count,
                blocking_fields=collect_blocking_fields(rules),
                configuration_explanation=explain_configuration(goal_type, config)
            )
            recommendation = replace(
                recommendation, explanation=explain_recommendation(recommendation)
            )
        except RuleAdvisorError:
            raise
        except Exception as e:
            self.logger.error(f"Error in rule recommendation: {e}", exc_info=True)
            raise RecommendationFailed(str(e), e) from e

        self.logger.info(
            f"Recommended {len(recommendation.rules)} rules for {goal_type.value} goal"
        )
        return recommendation

    def recommend_for_tables(
        self,
        source_table_id: str,
        reference_table_id: str,
        goal_description: Any,
        options: Optional[RecommendationOptions] = None
    ) -> Recommendation:
        """
        Analyze two tables through the schema provider and recommend rules.

        Raises:
            ValueError: If no schema provider was configured
            SchemaNotFound: If the provider does not know a table
        """
        if self.schema_provider is None:
            raise ValueError("A schema provider is required to analyze tables")
        options = options or RecommendationOptions()

        try:
            self.logger.info("Analyzing schema...")
            analyzer = SchemaAnalyzer(self.schema_provider, sample_size=options.sample_size)
            analysis = analyzer.analyze(source_table_id, reference_table_id)
        except RuleAdvisorError:
            raise
        except Exception as e:
            self.logger.error(f"Error in schema analysis: {e}", exc_info=True)
            raise RecommendationFailed(str(e), e) from e

        return self.recommend_rules(
            analysis,
            goal_description,
            options,
            source_table=source_table_id,
            reference_table=reference_table_id
        )

    def build_rule_config(self, recommendation: Recommendation) -> Dict[str, Any]:
        """Translate a recommendation into the execution engine's configuration."""
        config = recommendation.configuration
        thresholds = config.thresholds
        return {
            'source_table': recommendation.source_table,
            'reference_table': recommendation.reference_table,
            'rules': [
                {
                    'type': rule.type,
                    'name': rule.name,
                    'fields': [
                        {'name': rule_field.name, 'weight': rule_field.weight}
                        for rule_field in rule.fields
                    ],
                    'threshold': get_threshold_for_rule(rule, thresholds),
                    'algorithm': rule.algorithm,
                    'options': {}
                }
                for rule in recommendation.rules
            ],
            'blocking': [
                {
                    'name': strategy.name,
                    'fields': list(strategy.fields),
                    'transform_expression': strategy.transform_expression
                }
                for strategy in recommendation.blocking
            ],
            'thresholds': {
                'high': thresholds.high,
                'medium': thresholds.medium,
                'low': thresholds.low
            },
            'options': {
                'transitive_matching': config.transitive_matching,
                **config.extras
            }
        }

    def apply_recommended_rules(
        self,
        recommendation: Recommendation,
        executor: RuleExecutor
    ) -> ExecutionResult:
        """
        Execute a recommendation and record the observed performance.

        Every rule reported by the executor is recorded under its name, and
        the rule set as a whole under a combination id.

        Args:
            recommendation: Recommendation to execute
            executor: Execution engine

        Returns:
            ExecutionResult: Executor output

        Raises:
            ValueError: If the recommendation has no rules
        """
        if recommendation is None or not recommendation.rules:
            raise ValueError("Valid rule recommendation required")

        self.logger.info("Executing matching process...")
        start_time = time.time()
        result = executor.execute(self.build_rule_config(recommendation))
        execution_time_ms = (time.time() - start_time) * 1000

        self.logger.info("Recording rule performance...")
        results_by_name = {rule_result.rule_name: rule_result for rule_result in result.rule_results}
        for rule in recommendation.rules:
            rule_result = results_by_name.get(rule.name)
            if rule_result is None:
                continue
            self.tracker.record_rule_performance(rule.name, PerformanceMetrics(
                precision=rule_result.precision,
                recall=rule_result.recall,
                execution_time_ms=rule_result.execution_time_ms,
                match_count=rule_result.match_count,
                comparison_count=rule_result.comparison_count,
                fields=tuple(rule.field_names),
                field_match_contributions=dict(rule_result.field_contributions),
                rule_name=rule.name,
                rule_type=rule.type
            ))

        rule_names = [rule.name for rule in recommendation.rules]
        self.tracker.record_rule_combination_performance(
            combination_id(
                recommendation.source_table,
                recommendation.reference_table,
                recommendation.goal_type,
                rule_names
            ),
            rule_names,
            PerformanceMetrics(
                precision=result.precision,
                recall=result.recall,
                execution_time_ms=execution_time_ms,
                match_count=result.total_matches,
                comparison_count=result.total_comparisons
            )
        )

        self.logger.info(
            f"Matching completed in {execution_time_ms / 1000:.2f} seconds "
            f"with {result.total_matches} matches"
        )
        return result


def _percent(value: float) -> str:
    return f"{value * 100:.0f}%"


def explain_recommendation(recommendation: Optional[Recommendation]) -> str:
    """Render a markdown explanation of a recommendation."""
    if recommendation is None:
        return 'No recommendation available to explain.'

    lines: List[str] = ["# Rule Recommendation Explanation", ""]

    lines += [
        "## Matching Goal",
        "",
        f'You described your goal as: "{recommendation.goal_description}"',
        "",
        f"We interpreted this as a **{recommendation.goal_type.value.replace('_', ' ')}** "
        f"matching strategy.",
        "",
        recommendation.configuration_explanation,
    ]

    lines += [
        "## Schema Analysis",
        "",
        f"We found {recommendation.common_field_count} fields common to both tables.",
        f"The source table has approximately {recommendation.source_row_count or 'an unknown number of'} rows.",
        f"The reference table has approximately {recommendation.reference_row_count or 'an unknown number of'} rows.",
        "",
        "### Detected Field Types",
        "",
    ]
    lines += [
        f"- `{field_type.name}`: {field_type.semantic_type} "
        f"({field_type.confidence.value} confidence)"
        for field_type in recommendation.field_types
    ]
    lines.append("")

    lines += ["## Recommended Rules", ""]
    for index, rule in enumerate(recommendation.rules, start=1):
        fields = ', '.join(
            f"{rule_field.name} (weight: {rule_field.weight:g})" for rule_field in rule.fields
        )
        lines += [
            f"### {index}. {rule.name}",
            "",
            f"- Type: {rule.type}",
            f"- Algorithm: {rule.algorithm or 'standard'}",
            f"- Fields: {fields or 'none (uses existing matches)'}",
        ]
        if rule.historical_f1_score is not None:
            lines.append(f"- Historical F1 Score: {rule.historical_f1_score:.2f}")
        lines.append("")

    lines += ["## Recommended Blocking Strategies", ""]
    for index, strategy in enumerate(recommendation.blocking, start=1):
        lines += [
            f"### {index}. {strategy.name}",
            "",
            f"- Description: {strategy.description}",
            f"- Fields: {', '.join(strategy.fields)}",
            f"- Function: `{strategy.transform_expression}`",
            f"- Effectiveness: {_percent(strategy.effectiveness)}",
            "",
        ]

    lines += [
        "## Performance Expectations",
        "",
        f"- Estimated effectiveness score: {_percent(recommendation.estimated_effectiveness)}",
        f"- Estimated performance score: {_percent(recommendation.estimated_performance)}",
    ]
    if recommendation.historical_data:
        lines.append("- This recommendation incorporates historical performance data")
    else:
        lines.append("- No historical performance data was available for these rules")

    return '\n'.join(lines) + '\n'


# Backs the module-level entry points
default_tracker = PerformanceTracker()


def recommend_rules(
    schema_analysis: SchemaAnalysis,
    goal_description: Any,
    options: Optional[RecommendationOptions] = None
) -> Recommendation:
    """Recommend rules for an analyzed table pair using the default tracker."""
    return RuleRecommender(tracker=default_tracker).recommend_rules(
        schema_analysis, goal_description, options
    )


def record_rule_performance(rule_id: str, metrics: Any) -> RulePerformanceRecord:
    """Record one rule execution in the default tracker."""
    return default_tracker.record_rule_performance(rule_id, metrics)


def record_rule_combination_performance(
    combination_id: str,
    rule_ids: List[str],
    metrics: Any
) -> RulePerformanceRecord:
    """Record one rule-set execution in the default tracker."""
    return default_tracker.record_rule_combination_performance(combination_id, rule_ids, metrics)


def infer_field_types(schema: TableSchema, samples: Samples = None) -> TableSchema:
    """Enrich a schema with semantic field types."""
    return _infer_field_types(schema, samples)
