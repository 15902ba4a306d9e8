"""Ports to the collaborators the recommender depends on but does not implement."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

import pandas as pd

from rule_advisor.config.models import RulePerformanceRecord, TableSchema


class SchemaProvider(Protocol):
    """Database introspection: schemas, row counts and sample rows."""

    def get_table_schema(self, table_id: str) -> Optional[TableSchema]:
        """Return the table schema, or None if the table is unknown."""
        ...

    def get_row_count(self, table_id: str) -> int:
        ...

    def get_sample_data(self, table_id: str, sample_size: int) -> pd.DataFrame:
        ...


@dataclass
class RuleExecutionResult:
    """Observed outcome of one rule inside an execution run."""
    rule_name: str
    execution_time_ms: float = 0.0
    match_count: int = 0
    comparison_count: int = 0
    precision: Optional[float] = None
    recall: Optional[float] = None
    field_contributions: Dict[str, float] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Outcome of running a whole rule configuration."""
    rule_results: List[RuleExecutionResult]
    total_matches: int = 0
    total_comparisons: int = 0
    precision: Optional[float] = None
    recall: Optional[float] = None


class RuleExecutor(Protocol):
    """The execution engine that turns a rule configuration into matches."""

    def execute(self, rule_config: Dict[str, Any]) -> ExecutionResult:
        ...


class PerformanceStore(Protocol):
    """Key/value store of performance records with per-key serialized updates."""

    def get(self, key: str) -> Optional[RulePerformanceRecord]:
        ...

    def update(
        self,
        key: str,
        fn: Callable[[Optional[RulePerformanceRecord]], RulePerformanceRecord]
    ) -> RulePerformanceRecord:
        """Apply fn to the current record for key and store its result atomically."""
        ...

    def values(self) -> Iterable[RulePerformanceRecord]:
        ...
