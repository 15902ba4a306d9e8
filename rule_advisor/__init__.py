"""
Rule Advisor
============

Goal-driven recommendation of record-matching rules for a pair of tables.
A free-text goal such as "find exact matches only" is turned into match
thresholds, a scored and deduplicated rule set and blocking strategies.

Key Features:
- Semantic field type inference from column names and sample values
- Goal presets adjusted to schema quality
- Greedy rule selection balancing effectiveness and performance
- Blocking strategy recommendations
- Feedback loop from observed rule performance
"""

from rule_advisor.core.recommender import (
    RuleRecommender,
    explain_recommendation,
    infer_field_types,
    recommend_rules,
    record_rule_combination_performance,
    record_rule_performance
)
from rule_advisor.core.schema import DataFrameSchemaProvider, SchemaAnalyzer
from rule_advisor.core.tracker import InMemoryPerformanceStore, PerformanceTracker

from rule_advisor.config.models import (
    GoalType,
    PerformanceMetrics,
    Recommendation,
    RecommendationOptions,
    SchemaAnalysis,
    SchemaField,
    TableSchema
)
from rule_advisor.errors import (
    InvalidGoalConfiguration,
    NoRulesAvailable,
    RecommendationFailed,
    RuleAdvisorError,
    SchemaNotFound
)

__version__ = "1.0.0"
