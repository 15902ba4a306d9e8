"""Historical rule performance tracking and feedback into recommendations."""

from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import threading

import numpy as np
import pandas as pd
import xxhash

from rule_advisor.config.models import (
    CandidateRule,
    FieldEffectiveness,
    FieldPerformance,
    GoalType,
    PerformanceMetrics,
    RuleField,
    RulePerformanceRecord
)
from rule_advisor.interfaces import PerformanceStore

logger = logging.getLogger(__name__)

SAMPLE_WINDOW = 10
COMBINATION_PREFIX = 'combination:'
RULE_FIELD_PREFIX = 'rule:'

# Ranking metric -> (record attribute, ascending)
RANKING_METRICS: Dict[str, Tuple[str, bool]] = {
    'precision': ('avg_precision', False),
    'recall': ('avg_recall', False),
    'f1Score': ('f1_score', False),
    'performance': ('avg_execution_time_ms', True),
}

SUMMARY_COLUMNS = [
    'rule_id', 'rule_name', 'rule_type', 'execution_count',
    'avg_execution_time_ms', 'avg_matches_per_execution',
    'avg_precision', 'avg_recall', 'f1_score', 'last_updated'
]

Metrics = Union[PerformanceMetrics, Mapping[str, Any]]


class InMemoryPerformanceStore:
    """
    Process-local performance store.

    Updates to the same key are serialized by a per-key lock; reads return
    deep copies so callers never observe a record mid-update.
    """

    def __init__(self):
        self._records: Dict[str, RulePerformanceRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get(self, key: str) -> Optional[RulePerformanceRecord]:
        with self._guard:
            record = self._records.get(key)
        return deepcopy(record) if record is not None else None

    def update(
        self,
        key: str,
        fn: Callable[[Optional[RulePerformanceRecord]], RulePerformanceRecord]
    ) -> RulePerformanceRecord:
        with self._lock_for(key):
            with self._guard:
                current = self._records.get(key)
            updated = fn(deepcopy(current) if current is not None else None)
            with self._guard:
                self._records[key] = updated
            return deepcopy(updated)

    def values(self) -> List[RulePerformanceRecord]:
        with self._guard:
            records = list(self._records.values())
        return [deepcopy(record) for record in records]

    def __len__(self) -> int:
        with self._guard:
            return len(self._records)


@dataclass
class PerformanceReport:
    """Snapshot of tracked rule performance."""
    generated_at: datetime
    rule_count: int
    summary: pd.DataFrame
    top_performers: Dict[str, List[RulePerformanceRecord]] = field(default_factory=dict)
    field_effectiveness: Dict[str, FieldEffectiveness] = field(default_factory=dict)


def combination_id(
    source_table: Optional[str],
    reference_table: Optional[str],
    goal_type: GoalType,
    rule_names: Iterable[str]
) -> str:
    """Stable identifier for a rule set applied to a table pair under a goal."""
    digest = xxhash.xxh64(','.join(sorted(rule_names))).hexdigest()
    return f"{source_table}_{reference_table}_{goal_type.value}_{digest}"


def _coerce_metrics(metrics: Metrics) -> PerformanceMetrics:
    if isinstance(metrics, PerformanceMetrics):
        return metrics
    if isinstance(metrics, Mapping):
        try:
            return PerformanceMetrics(**metrics)
        except TypeError as e:
            raise ValueError(f"Invalid metrics: {e}") from e
    raise ValueError("Valid metrics object required")


def _mean_or_none(samples: Sequence[float]) -> Optional[float]:
    return float(np.mean(samples)) if samples else None


def _accumulate(
    record: RulePerformanceRecord,
    metrics: PerformanceMetrics
) -> RulePerformanceRecord:
    """Fold one observation into a record and recompute derived values."""
    record.rule_name = metrics.rule_name or record.rule_name
    record.rule_type = metrics.rule_type or record.rule_type
    record.execution_count += 1
    record.total_execution_time_ms += metrics.execution_time_ms or 0.0
    record.total_match_count += metrics.match_count or 0
    record.total_comparison_count += metrics.comparison_count or 0
    record.fields = tuple(metrics.fields) or record.fields

    if metrics.precision is not None:
        record.precision_samples = (record.precision_samples + [metrics.precision])[-SAMPLE_WINDOW:]
    if metrics.recall is not None:
        record.recall_samples = (record.recall_samples + [metrics.recall])[-SAMPLE_WINDOW:]

    for field_name in metrics.fields:
        performance = record.field_performance.setdefault(field_name, FieldPerformance())
        performance.use_count += 1
        contribution = metrics.field_match_contributions.get(field_name)
        if contribution is not None:
            performance.total_match_contribution += contribution

    record.avg_execution_time_ms = record.total_execution_time_ms / record.execution_count
    record.avg_matches_per_execution = record.total_match_count / record.execution_count
    record.avg_precision = _mean_or_none(record.precision_samples)
    record.avg_recall = _mean_or_none(record.recall_samples)

    if record.avg_precision and record.avg_recall:
        record.f1_score = (
            2 * record.avg_precision * record.avg_recall
            / (record.avg_precision + record.avg_recall)
        )
    else:
        record.f1_score = None

    record.last_updated = datetime.now()
    return record


class PerformanceTracker:
    """Accumulates rule outcomes and feeds them back into rule weights."""

    def __init__(self, store: Optional[PerformanceStore] = None):
        """
        Initialize the tracker.

        Args:
            store: Record store, a fresh in-memory store by default
        """
        self.store = store if store is not None else InMemoryPerformanceStore()

    def record_rule_performance(self, rule_id: str, metrics: Metrics) -> RulePerformanceRecord:
        """
        Fold one execution outcome into the record for a rule.

        Args:
            rule_id: Rule identifier, usually the rule name
            metrics: Observed outcome

        Returns:
            RulePerformanceRecord: Snapshot of the updated record

        Raises:
            ValueError: If the rule id or metrics are invalid
        """
        if not rule_id or not isinstance(rule_id, str):
            raise ValueError("Valid rule ID required")
        metrics = _coerce_metrics(metrics)

        record = self.store.update(
            rule_id,
            lambda current: _accumulate(current or RulePerformanceRecord(rule_id=rule_id), metrics)
        )
        logger.debug(f"Recorded execution {record.execution_count} of {rule_id}")
        return record

    def get_rule_performance(self, rule_id: str) -> Optional[RulePerformanceRecord]:
        return self.store.get(rule_id)

    def get_all_rule_performance(self) -> List[RulePerformanceRecord]:
        return list(self.store.values())

    def record_rule_combination_performance(
        self,
        combination_id: str,
        rule_ids: Sequence[str],
        metrics: Metrics
    ) -> RulePerformanceRecord:
        """
        Record an outcome for a set of rules executed together.

        The combination is stored as a record under 'combination:<id>' whose
        fields are the member rules as 'rule:<rule id>'.

        Raises:
            ValueError: If the id, rule ids or metrics are invalid
        """
        if not combination_id or not isinstance(combination_id, str) or not rule_ids:
            raise ValueError("Valid combination ID, rule IDs, and metrics required")
        metrics = _coerce_metrics(metrics)

        combined = replace(
            metrics,
            rule_name=metrics.rule_name or f"Combination: {combination_id}",
            rule_type=metrics.rule_type or 'combination',
            fields=tuple(f"{RULE_FIELD_PREFIX}{rule_id}" for rule_id in rule_ids)
        )
        return self.record_rule_performance(f"{COMBINATION_PREFIX}{combination_id}", combined)

    def _rank(
        self,
        records: List[RulePerformanceRecord],
        metric: str,
        limit: int
    ) -> List[RulePerformanceRecord]:
        if metric not in RANKING_METRICS:
            raise ValueError(f"Unknown metric: {metric}")
        if not records:
            return []

        attribute, ascending = RANKING_METRICS[metric]
        frame = pd.DataFrame({
            'value': [getattr(record, attribute) for record in records]
        }, dtype=float)
        ranked = (
            frame.dropna()
            .sort_values('value', ascending=ascending, kind='mergesort')
            .head(limit)
        )
        return [records[position] for position in ranked.index]

    def get_top_performing_rules(
        self,
        metric: str = 'f1Score',
        limit: int = 5
    ) -> List[RulePerformanceRecord]:
        """
        Best individual rules by a metric.

        Args:
            metric: One of 'precision', 'recall', 'f1Score', 'performance'
                (lowest average execution time first)
            limit: Maximum number of records

        Raises:
            ValueError: If the metric is unknown
        """
        records = [record for record in self.store.values() if not record.is_combination]
        return self._rank(records, metric, limit)

    def get_top_performing_combinations(
        self,
        metric: str = 'f1Score',
        limit: int = 3
    ) -> List[RulePerformanceRecord]:
        """Best rule combinations by a metric, ranked like individual rules."""
        records = [record for record in self.store.values() if record.is_combination]
        return self._rank(records, metric, limit)

    def calculate_field_effectiveness(self) -> Dict[str, FieldEffectiveness]:
        """
        Aggregate per-field usefulness over every tracked record.

        Returns:
            Dict[str, FieldEffectiveness]: Effectiveness by field name, the
            score being the average contribution per use capped at 1
        """
        totals: Dict[str, Tuple[int, float, int]] = {}
        for record in self.store.values():
            for field_name, performance in record.field_performance.items():
                use_count, contribution, rule_count = totals.get(field_name, (0, 0.0, 0))
                totals[field_name] = (
                    use_count + performance.use_count,
                    contribution + performance.total_match_contribution,
                    rule_count + 1
                )

        effectiveness = {}
        for field_name, (use_count, contribution, rule_count) in totals.items():
            avg_contribution = contribution / use_count if use_count else 0.0
            effectiveness[field_name] = FieldEffectiveness(
                total_use_count=use_count,
                total_contribution=contribution,
                rules_using_field=rule_count,
                avg_contribution=avg_contribution,
                effectiveness_score=min(1.0, avg_contribution)
            )
        return effectiveness

    def apply_historical_performance_data(
        self,
        rules: Sequence[CandidateRule]
    ) -> List[CandidateRule]:
        """
        Attach historical metrics to rules and rescale their field weights.

        Each field with history gets weight * (0.7 + 0.6 * effectiveness).
        Rules without a record pass through unchanged.

        Args:
            rules: Recommended rules

        Returns:
            List[CandidateRule]: Rules in the same order
        """
        field_effectiveness = self.calculate_field_effectiveness()
        adjusted = []
        for rule in rules:
            history = self.store.get(rule.name)
            if history is None:
                adjusted.append(rule)
                continue

            fields = tuple(
                RuleField(
                    rule_field.name,
                    rule_field.weight
                    * (0.7 + 0.6 * field_effectiveness[rule_field.name].effectiveness_score)
                )
                if rule_field.name in field_effectiveness else rule_field
                for rule_field in rule.fields
            )
            adjusted.append(replace(
                rule,
                fields=fields,
                historical_precision=history.avg_precision,
                historical_recall=history.avg_recall,
                historical_f1_score=history.f1_score,
                historical_execution_time=history.avg_execution_time_ms
            ))

        applied = sum(1 for rule in adjusted if rule.historical_execution_time is not None)
        logger.info(f"Applied historical data to {applied} of {len(adjusted)} rules")
        return adjusted

    def generate_performance_report(self, rule_id: Optional[str] = None) -> PerformanceReport:
        """
        Summarize tracked performance.

        Args:
            rule_id: Restrict the summary to one rule

        Returns:
            PerformanceReport: Summary frame, top performers per metric and
            field effectiveness
        """
        if rule_id is not None:
            record = self.store.get(rule_id)
            records = [record] if record is not None else []
        else:
            records = list(self.store.values())

        summary = pd.DataFrame(
            [{column: getattr(record, column) for column in SUMMARY_COLUMNS} for record in records],
            columns=SUMMARY_COLUMNS
        )

        return PerformanceReport(
            generated_at=datetime.now(),
            rule_count=len(records),
            summary=summary,
            top_performers={
                metric: self.get_top_performing_rules(metric, 3)
                for metric in RANKING_METRICS
            },
            field_effectiveness=self.calculate_field_effectiveness()
        )
