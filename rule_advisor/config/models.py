"""Configuration and result models for the rule recommendation system."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


class GoalType(str, Enum):
    """Coarse user intents driving thresholds and blocking defaults."""
    HIGH_PRECISION = "high_precision"
    HIGH_RECALL = "high_recall"
    BALANCED = "balanced"
    PERFORMANCE = "performance"
    CUSTOM = "custom"


class Confidence(str, Enum):
    """Confidence levels for inferred types and generated rules."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"  # composite identifier rules only


class InferenceSource(str, Enum):
    """Where a semantic type was inferred from."""
    NAME = "name"
    CONTENT = "content"
    SQL_TYPE = "sql_type"
    DEFAULT = "default"


class BlockingAggressiveness(str, Enum):
    """How hard blocking should cut down the comparison space."""
    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    MINIMAL = "minimal"


class FieldQuality(str, Enum):
    """Compatibility quality of a field shared by both tables."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class SemanticType:
    """Domain-meaningful classification of a field."""
    type: str
    confidence: Confidence
    source: InferenceSource

    @classmethod
    def unknown(cls) -> 'SemanticType':
        return cls('unknown', Confidence.LOW, InferenceSource.DEFAULT)


@dataclass(frozen=True)
class SchemaField:
    """A single column of a table as seen by the recommender."""
    name: str
    declared_type: str = ''
    null_ratio: float = 0.0
    is_unique: bool = False
    semantic_type: Optional[SemanticType] = None

    def __post_init__(self):
        """Validate the null ratio range."""
        if not 0.0 <= self.null_ratio <= 1.0:
            raise ValueError(
                f"null_ratio for {self.name} must be in [0, 1], got {self.null_ratio}"
            )

    def with_semantic_type(self, semantic_type: SemanticType) -> 'SchemaField':
        return replace(self, semantic_type=semantic_type)


@dataclass(frozen=True)
class TableSchema:
    """Fields of one table."""
    table_id: str
    fields: Tuple[SchemaField, ...] = ()

    def field(self, name: str) -> Optional[SchemaField]:
        """Look up a field by name, case-insensitively."""
        lowered = name.lower()
        for schema_field in self.fields:
            if schema_field.name.lower() == lowered:
                return schema_field
        return None

    @property
    def field_names(self) -> List[str]:
        return [schema_field.name for schema_field in self.fields]


@dataclass(frozen=True)
class FieldStats:
    """Per-field quality statistics averaged across both tables."""
    unique_ratio: float = 0.5
    null_ratio: float = 0.5
    avg_length: Optional[float] = None
    source_stats: Optional['FieldStats'] = None
    reference_stats: Optional['FieldStats'] = None


@dataclass(frozen=True)
class Compatibility:
    """Whether a shared field can be compared across tables, and how well."""
    compatible: bool
    quality: FieldQuality


@dataclass(frozen=True)
class CommonField:
    """A pair of fields, one per table, that describe the same attribute."""
    name: str
    source_field: str
    reference_field: str
    declared_type: str = ''
    match_type: str = 'exact'  # 'exact' or 'similar' name match
    compatibility: Compatibility = Compatibility(True, FieldQuality.MEDIUM)
    semantic_type: Optional[SemanticType] = None

    @property
    def semantic_type_name(self) -> str:
        return self.semantic_type.type if self.semantic_type else 'unknown'

    def with_semantic_type(self, semantic_type: SemanticType) -> 'CommonField':
        return replace(self, semantic_type=semantic_type)


@dataclass(frozen=True)
class ScoredField:
    """A field ranked as a blocking or matching candidate."""
    field: str
    source_field: str
    reference_field: str
    score: float
    components: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SchemaAnalysis:
    """Everything the recommender knows about a source/reference table pair."""
    common_fields: Tuple[CommonField, ...]
    source_schema: Optional[TableSchema] = None
    reference_schema: Optional[TableSchema] = None
    source_row_count: Optional[int] = None
    reference_row_count: Optional[int] = None
    field_stats: Dict[str, FieldStats] = field(default_factory=dict)
    unique_field_ratio: Optional[float] = None
    schema_similarity: Optional[float] = None
    potential_blocking_fields: Tuple[ScoredField, ...] = ()
    potential_matching_fields: Tuple[ScoredField, ...] = ()

    @property
    def data_volume(self) -> Optional[int]:
        """Size of the full cross product, when both row counts are known."""
        if not self.source_row_count or not self.reference_row_count:
            return None
        return self.source_row_count * self.reference_row_count

    def common_field(self, name: str) -> Optional[CommonField]:
        for common in self.common_fields:
            if common.name == name:
                return common
        return None

    def fields_of_type(self, *semantic_types: str) -> List[CommonField]:
        """Common fields whose semantic type is one of the given types, in order."""
        return [
            common for common in self.common_fields
            if common.semantic_type_name in semantic_types
        ]


@dataclass(frozen=True)
class Thresholds:
    """Match score thresholds; always ordered high >= medium >= low."""
    high: float
    medium: float
    low: float

    def __post_init__(self):
        """Enforce the range and ordering invariants."""
        for name in ('high', 'medium', 'low'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Threshold '{name}' must be in [0, 1], got {value}")
        if not self.high >= self.medium >= self.low:
            raise ValueError(
                f"Thresholds must satisfy high >= medium >= low, got "
                f"{self.high}/{self.medium}/{self.low}"
            )

    def shifted(
        self,
        delta: float,
        bounds: Tuple[float, float, float]
    ) -> 'Thresholds':
        """
        Shift all three thresholds by delta as a set.

        Args:
            delta: Amount to add (negative to lower)
            bounds: Per-threshold cap (when raising) or floor (when lowering)

        Returns:
            Thresholds: New, still ordered thresholds
        """
        limit = min if delta > 0 else max
        # Bounds are ordered like the thresholds, so clamping keeps the order
        values = [
            round(limit(bound, value + delta), 4)
            for value, bound in zip((self.high, self.medium, self.low), bounds)
        ]
        return Thresholds(*values)


@dataclass(frozen=True)
class GoalConfiguration:
    """Parameter set derived from a matching goal."""
    goal_type: GoalType
    thresholds: Thresholds
    blocking_strategy: BlockingAggressiveness
    transitive_matching: bool
    fuzzy_matching_aggressiveness: str
    max_edit_distance: int
    max_lev_distance: int
    similarity_threshold: float
    field_weight_multipliers: Mapping[str, float] = field(default_factory=dict)
    recommended_blocking: Tuple[str, ...] = ()
    extras: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Store read-only copies so a returned configuration cannot change."""
        for name in ('field_weight_multipliers', 'extras'):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))


@dataclass(frozen=True)
class RuleConfiguration:
    """A goal configuration together with the goal it was derived from."""
    goal_type: GoalType
    configuration: GoalConfiguration
    generated_at: datetime


@dataclass(frozen=True)
class RuleField:
    """A field referenced by a rule, with its relative weight."""
    name: str
    weight: float = 1.0

    def __post_init__(self):
        if self.weight < 0:
            raise ValueError(f"Weight for {self.name} must be non-negative")


@dataclass(frozen=True)
class CandidateRule:
    """A matching rule proposed for a table pair."""
    type: str
    name: str
    fields: Tuple[RuleField, ...]
    algorithm: str
    confidence: Confidence = Confidence.MEDIUM
    blocking: bool = False
    effectiveness: Optional[float] = None
    performance: Optional[float] = None
    historical_precision: Optional[float] = None
    historical_recall: Optional[float] = None
    historical_f1_score: Optional[float] = None
    historical_execution_time: Optional[float] = None

    def __post_init__(self):
        """Only transitive rules may operate without fields."""
        if not self.fields and self.type != 'transitive_match':
            raise ValueError(f"Rule {self.name} of type {self.type} needs at least one field")

    @property
    def field_names(self) -> List[str]:
        return [rule_field.name for rule_field in self.fields]

    @property
    def is_scored(self) -> bool:
        return self.effectiveness is not None and self.performance is not None

    def with_scores(self, effectiveness: float, performance: float) -> 'CandidateRule':
        return replace(self, effectiveness=effectiveness, performance=performance)


@dataclass(frozen=True)
class RuleCombination:
    """An ordered, deduplicated selection of scored rules."""
    rules: Tuple[CandidateRule, ...]
    effectiveness: float
    performance: float
    combined_score: float

    @property
    def rule_names(self) -> List[str]:
        return [rule.name for rule in self.rules]


@dataclass(frozen=True)
class BlockingStrategy:
    """A way of restricting which record pairs get compared."""
    name: str
    description: str
    fields: Tuple[str, ...]
    transform_expression: str  # opaque to this package, read by the execution engine
    effectiveness: float


@dataclass(frozen=True)
class OptimizationOptions:
    """Bounds for rule set optimization."""
    max_rule_count: int = 5
    min_effectiveness: float = 0.7
    performance_weight: float = 0.3

    def __post_init__(self):
        """Validate option ranges."""
        if self.max_rule_count < 1:
            raise ValueError(f"max_rule_count must be at least 1, got {self.max_rule_count}")
        if not 0.0 <= self.min_effectiveness:
            raise ValueError(f"min_effectiveness must be non-negative, got {self.min_effectiveness}")
        if not 0.0 <= self.performance_weight <= 1.0:
            raise ValueError(
                f"performance_weight must be in [0, 1], got {self.performance_weight}"
            )


@dataclass(frozen=True)
class RecommendationOptions:
    """Caller options for a single recommendation request."""
    max_rule_count: int = 5
    min_effectiveness: float = 0.7
    performance_weight: float = 0.3
    sample_size: int = 100
    custom_params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.sample_size < 0:
            raise ValueError(f"sample_size must be non-negative, got {self.sample_size}")
        # Range checks live in OptimizationOptions
        self.optimization()

    def optimization(self) -> OptimizationOptions:
        return OptimizationOptions(
            max_rule_count=self.max_rule_count,
            min_effectiveness=self.min_effectiveness,
            performance_weight=self.performance_weight
        )


@dataclass(frozen=True)
class PerformanceMetrics:
    """Outcome of one execution of a rule or rule combination."""
    precision: Optional[float] = None
    recall: Optional[float] = None
    execution_time_ms: float = 0.0
    match_count: int = 0
    comparison_count: int = 0
    fields: Tuple[str, ...] = ()
    field_match_contributions: Dict[str, float] = field(default_factory=dict)
    rule_name: Optional[str] = None
    rule_type: Optional[str] = None


@dataclass
class FieldPerformance:
    """Accumulated usefulness of a field within one rule."""
    use_count: int = 0
    total_match_contribution: float = 0.0


@dataclass
class RulePerformanceRecord:
    """Running statistics for a rule or rule combination."""
    rule_id: str
    rule_name: Optional[str] = None
    rule_type: Optional[str] = None
    execution_count: int = 0
    total_execution_time_ms: float = 0.0
    total_match_count: int = 0
    total_comparison_count: int = 0
    precision_samples: List[float] = field(default_factory=list)
    recall_samples: List[float] = field(default_factory=list)
    field_performance: Dict[str, FieldPerformance] = field(default_factory=dict)
    fields: Tuple[str, ...] = ()
    avg_execution_time_ms: float = 0.0
    avg_matches_per_execution: float = 0.0
    avg_precision: Optional[float] = None
    avg_recall: Optional[float] = None
    f1_score: Optional[float] = None
    last_updated: Optional[datetime] = None

    @property
    def is_combination(self) -> bool:
        return self.rule_id.startswith('combination:')


@dataclass(frozen=True)
class FieldEffectiveness:
    """Historical usefulness of a field across every tracked rule."""
    total_use_count: int
    total_contribution: float
    rules_using_field: int
    avg_contribution: float
    effectiveness_score: float


@dataclass(frozen=True)
class RuleSetEstimate:
    """Placeholder precision/recall estimate for a rule set."""
    estimated_precision: float
    estimated_recall: float
    estimated_f1: float


@dataclass(frozen=True)
class FieldTypeSummary:
    """Detected semantic type of a common field, for reporting."""
    name: str
    semantic_type: str
    confidence: Confidence


@dataclass(frozen=True)
class Recommendation:
    """Final, immutable output of a recommendation request."""
    goal_description: str
    goal_type: GoalType
    configuration: GoalConfiguration
    field_types: Tuple[FieldTypeSummary, ...]
    common_field_count: int
    rules: Tuple[CandidateRule, ...]
    blocking: Tuple[BlockingStrategy, ...]
    estimated_effectiveness: float
    estimated_performance: float
    combined_score: float
    historical_data: bool
    explanation: str
    generated_at: datetime
    source_table: Optional[str] = None
    reference_table: Optional[str] = None
    source_row_count: Optional[int] = None
    reference_row_count: Optional[int] = None
    blocking_fields: Tuple[str, ...] = ()
    configuration_explanation: str = ''
