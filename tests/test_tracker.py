"""Tests for performance tracking and historical feedback."""

import threading

import pytest
from conftest import scored_rule

from rule_advisor.config.models import GoalType, PerformanceMetrics
from rule_advisor.core.tracker import (
    SUMMARY_COLUMNS,
    InMemoryPerformanceStore,
    PerformanceTracker,
    combination_id
)


def _metrics(precision=0.9, recall=0.8, time_ms=100.0, fields=(), contributions=None):
    return PerformanceMetrics(
        precision=precision,
        recall=recall,
        execution_time_ms=time_ms,
        match_count=10,
        comparison_count=100,
        fields=tuple(fields),
        field_match_contributions=contributions or {}
    )


class TestRecording:
    def test_running_averages(self, tracker):
        tracker.record_rule_performance('r1', _metrics(time_ms=100.0))
        record = tracker.record_rule_performance('r1', _metrics(time_ms=300.0))

        assert record.execution_count == 2
        assert record.avg_execution_time_ms == pytest.approx(200.0)
        assert record.avg_matches_per_execution == pytest.approx(10.0)
        assert record.avg_precision == pytest.approx(0.9)
        assert record.f1_score == pytest.approx(2 * 0.9 * 0.8 / 1.7)
        assert record.last_updated is not None

    def test_sample_window(self, tracker):
        """Only the most recent ten precision samples are kept."""
        for i in range(12):
            tracker.record_rule_performance('r1', _metrics(precision=i / 20))
        record = tracker.get_rule_performance('r1')

        assert len(record.precision_samples) == 10
        assert record.precision_samples[0] == pytest.approx(2 / 20)
        assert record.execution_count == 12

    def test_missing_precision(self, tracker):
        record = tracker.record_rule_performance('r1', _metrics(precision=None))
        assert record.avg_precision is None
        assert record.f1_score is None

    def test_mapping_metrics(self, tracker):
        record = tracker.record_rule_performance(
            'r1', {'precision': 0.9, 'recall': 0.8, 'execution_time_ms': 50.0}
        )
        assert record.avg_execution_time_ms == pytest.approx(50.0)

    @pytest.mark.parametrize('rule_id, metrics', [
        ('', PerformanceMetrics()),
        (None, PerformanceMetrics()),
        ('r1', 'fast'),
        ('r1', {'speed': 'fast'}),
    ])
    def test_invalid_input(self, tracker, rule_id, metrics):
        with pytest.raises(ValueError):
            tracker.record_rule_performance(rule_id, metrics)

    def test_unknown_rule(self, tracker):
        assert tracker.get_rule_performance('nope') is None


class TestCombinations:
    def test_combination_record(self, tracker):
        record = tracker.record_rule_combination_performance('c1', ['r1', 'r2'], _metrics())

        assert record.rule_id == 'combination:c1'
        assert record.is_combination
        assert record.rule_type == 'combination'
        assert record.fields == ('rule:r1', 'rule:r2')
        assert tracker.get_rule_performance('combination:c1').execution_count == 1

    def test_combination_requires_rules(self, tracker):
        with pytest.raises(ValueError):
            tracker.record_rule_combination_performance('c1', [], _metrics())

    def test_combination_id_ignores_rule_order(self):
        first = combination_id('crm', 'billing', GoalType.BALANCED, ['b', 'a'])
        second = combination_id('crm', 'billing', GoalType.BALANCED, ['a', 'b'])
        assert first == second
        assert first.startswith('crm_billing_balanced_')
        assert first != combination_id('crm', 'billing', GoalType.BALANCED, ['a'])


class TestRankings:
    @pytest.fixture
    def populated(self, tracker):
        tracker.record_rule_performance('r1', _metrics(0.9, 0.8, time_ms=200.0))
        tracker.record_rule_performance('r2', _metrics(0.7, 0.7, time_ms=50.0))
        tracker.record_rule_performance('r3', _metrics(None, None, time_ms=100.0))
        tracker.record_rule_combination_performance('c1', ['r1', 'r2'], _metrics(1.0, 1.0))
        return tracker

    def test_top_rules_by_f1(self, populated):
        """Rules without the metric are left out of the ranking."""
        top = populated.get_top_performing_rules()
        assert [record.rule_id for record in top] == ['r1', 'r2']

    def test_limit(self, populated):
        assert len(populated.get_top_performing_rules('f1Score', limit=1)) == 1

    def test_performance_ranks_fastest_first(self, populated):
        top = populated.get_top_performing_rules('performance')
        assert [record.rule_id for record in top] == ['r2', 'r3', 'r1']

    def test_combinations_ranked_separately(self, populated):
        assert [r.rule_id for r in populated.get_top_performing_combinations()] == ['combination:c1']

    def test_unknown_metric(self, populated):
        with pytest.raises(ValueError):
            populated.get_top_performing_rules('speed')

    def test_empty_tracker(self, tracker):
        assert tracker.get_top_performing_rules() == []


class TestFieldEffectiveness:
    def test_average_contribution(self, tracker):
        tracker.record_rule_performance('r1', _metrics(fields=['email'], contributions={'email': 0.5}))
        effectiveness = tracker.calculate_field_effectiveness()['email']

        assert effectiveness.total_use_count == 1
        assert effectiveness.avg_contribution == pytest.approx(0.5)
        assert effectiveness.effectiveness_score == pytest.approx(0.5)

    def test_score_is_capped(self, tracker):
        tracker.record_rule_performance('r1', _metrics(fields=['email'], contributions={'email': 0.8}))
        tracker.record_rule_performance('r2', _metrics(fields=['email'], contributions={'email': 1.6}))
        effectiveness = tracker.calculate_field_effectiveness()['email']

        assert effectiveness.rules_using_field == 2
        assert effectiveness.avg_contribution == pytest.approx(1.2)
        assert effectiveness.effectiveness_score == 1.0


class TestHistoricalFeedback:
    def test_history_rescales_weights(self, tracker):
        tracker.record_rule_performance(
            'email_exact', _metrics(fields=['email'], contributions={'email': 1.0})
        )
        rule = scored_rule('email_exact', 'exact_match', ['email'], 0.9, 0.9)
        [adjusted] = tracker.apply_historical_performance_data([rule])

        assert adjusted.fields[0].weight == pytest.approx(1.3)
        assert adjusted.historical_f1_score == pytest.approx(2 * 0.9 * 0.8 / 1.7)
        assert adjusted.historical_execution_time == pytest.approx(100.0)
        assert rule.fields[0].weight == 1.0

    def test_rules_without_history_pass_through(self, tracker):
        rule = scored_rule('email_exact', 'exact_match', ['email'], 0.9, 0.9)
        assert tracker.apply_historical_performance_data([rule])[0] is rule


class TestStore:
    def test_reads_are_snapshots(self, tracker):
        """Mutating a returned record does not change the stored one."""
        tracker.record_rule_performance('r1', _metrics())
        snapshot = tracker.get_rule_performance('r1')
        snapshot.execution_count = 99
        snapshot.precision_samples.append(0.0)

        stored = tracker.get_rule_performance('r1')
        assert stored.execution_count == 1
        assert stored.precision_samples == [0.9]

    def test_concurrent_updates_are_not_lost(self):
        store = InMemoryPerformanceStore()
        tracker = PerformanceTracker(store)

        def record_many():
            for _ in range(50):
                tracker.record_rule_performance('shared', _metrics())

        threads = [threading.Thread(target=record_many) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert tracker.get_rule_performance('shared').execution_count == 400
        assert len(store) == 1


class TestReport:
    def test_report(self, tracker):
        tracker.record_rule_performance('r1', _metrics(fields=['email'], contributions={'email': 0.5}))
        tracker.record_rule_performance('r2', _metrics(0.7, 0.7))
        report = tracker.generate_performance_report()

        assert report.rule_count == 2
        assert list(report.summary.columns) == SUMMARY_COLUMNS
        assert set(report.summary['rule_id']) == {'r1', 'r2'}
        assert set(report.top_performers) == {'precision', 'recall', 'f1Score', 'performance'}
        assert 'email' in report.field_effectiveness

    def test_report_for_one_rule(self, tracker):
        tracker.record_rule_performance('r1', _metrics())
        tracker.record_rule_performance('r2', _metrics())

        assert tracker.generate_performance_report('r1').rule_count == 1
        missing = tracker.generate_performance_report('nope')
        assert missing.rule_count == 0
        assert missing.summary.empty
