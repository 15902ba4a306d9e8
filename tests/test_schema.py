"""Tests for schema comparison, field profiling and the DataFrame schema provider."""

import pandas as pd
import pytest

from rule_advisor.config.models import (
    CommonField,
    Compatibility,
    Confidence,
    FieldQuality,
    FieldStats,
    InferenceSource,
    SchemaField,
    SemanticType,
    TableSchema
)
from rule_advisor.core.schema import (
    DataFrameSchemaProvider,
    SchemaAnalyzer,
    analyze_value_distribution,
    are_field_names_similar,
    calculate_schema_similarity,
    combine_field_stats,
    compute_field_stats,
    detect_pattern,
    enrich_common_fields,
    find_common_fields
)
from rule_advisor.errors import SchemaNotFound


class TestFieldNameSimilarity:
    @pytest.mark.parametrize('name1, name2, expected', [
        ('zip', 'postal_code', True),
        ('email', 'email_address', True),
        ('fname', 'first_name', True),
        ('adress', 'address', True),
        ('id', 'key', False),
        ('customer_id', 'account_id', False),
        ('city', 'country', False),
    ])
    def test_similarity(self, name1, name2, expected):
        """Aliases and small typos count as similar, bare identifiers never do."""
        assert are_field_names_similar(name1, name2) is expected


class TestCommonFields:
    def test_exact_names_match_case_insensitively(self):
        source = TableSchema('a', (SchemaField('Email', 'string'), SchemaField('age', 'int64')))
        reference = TableSchema('b', (SchemaField('email', 'string'), SchemaField('age', 'string')))
        common = {c.name: c for c in find_common_fields(source, reference)}

        assert common['Email'].reference_field == 'email'
        assert common['Email'].match_type == 'exact'
        assert common['Email'].compatibility.quality == FieldQuality.HIGH
        assert common['age'].compatibility.quality == FieldQuality.MEDIUM

    def test_similar_names_pair_each_reference_field_once(self):
        """A reference field claimed by one source field is not reused."""
        source = TableSchema('a', (SchemaField('zip'), SchemaField('zipcode')))
        reference = TableSchema('b', (SchemaField('postal_code'),))
        common = find_common_fields(source, reference)

        assert len(common) == 1
        assert common[0].source_field == 'zip'
        assert common[0].match_type == 'similar'


class TestFieldStats:
    def test_compute_field_stats(self):
        samples = pd.DataFrame({'a': ['x', 'x', 'y', None]})
        stats = compute_field_stats(samples, ['a', 'missing'])

        assert set(stats) == {'a'}
        assert stats['a'].unique_ratio == pytest.approx(2 / 3)
        assert stats['a'].null_ratio == pytest.approx(0.25)
        assert stats['a'].avg_length == pytest.approx(1.0)

    def test_empty_samples(self):
        assert compute_field_stats(pd.DataFrame(), ['a']) == {}

    def test_combine_without_stats_uses_default_ratio(self):
        combined, ratio = combine_field_stats([], {}, {})
        assert combined == {}
        assert ratio == 0.5

    def test_combine_averages_both_tables(self, customer_analysis):
        common = customer_analysis.common_fields[:1]
        combined, ratio = combine_field_stats(
            common,
            {'customer_id': FieldStats(unique_ratio=1.0, null_ratio=0.0)},
            {'customer_id': FieldStats(unique_ratio=0.6, null_ratio=0.2)}
        )
        assert combined['customer_id'].unique_ratio == pytest.approx(0.8)
        assert combined['customer_id'].null_ratio == pytest.approx(0.1)
        assert ratio == pytest.approx(0.8)


class TestValueProfiling:
    def test_value_distribution(self):
        samples = pd.DataFrame({'c': ['a', 'a', 'b', None, '']})
        distribution = analyze_value_distribution(samples, 'c')

        assert distribution['unique_count'] == 2
        assert distribution['unique_ratio'] == pytest.approx(2 / 3)
        assert distribution['most_common'][0]['value'] == 'a'
        assert distribution['most_common'][0]['count'] == 2

    def test_value_distribution_missing_column(self):
        distribution = analyze_value_distribution(pd.DataFrame({'c': [1]}), 'other')
        assert distribution == {'unique_count': 0, 'unique_ratio': 0.0, 'most_common': []}

    @pytest.mark.parametrize('value, expected', [
        ('AB12cd', 'A+9+a+'),
        ('A1b', 'A9a'),
        ('12-34', '9+-9+'),
    ])
    def test_detect_pattern(self, value, expected):
        assert detect_pattern(value) == expected


class TestSchemaSimilarity:
    def test_identical_schemas(self):
        schema = TableSchema('a', (SchemaField('x', 'string'), SchemaField('y', 'int64')))
        assert calculate_schema_similarity(schema, schema) == pytest.approx(1.0)

    def test_empty_schema(self):
        assert calculate_schema_similarity(TableSchema('a'), TableSchema('b')) == 0.0


class TestDataFrameSchemaProvider:
    def test_schema_from_dataframe(self):
        provider = DataFrameSchemaProvider()
        provider.add_table('t', pd.DataFrame({
            'id': [1, 2, 3],
            'score': [0.5, None, 0.7],
            'name': ['a', 'b', 'b'],
        }))
        schema = provider.get_table_schema('t')

        assert schema.field_names == ['id', 'score', 'name']
        assert schema.field('id').declared_type == 'int64'
        assert schema.field('id').is_unique
        assert schema.field('score').declared_type == 'float64'
        assert schema.field('score').null_ratio == pytest.approx(1 / 3)
        assert not schema.field('name').is_unique
        assert provider.get_row_count('t') == 3
        assert len(provider.get_sample_data('t', 2)) == 2

    def test_unknown_table(self, provider):
        assert provider.get_table_schema('nope') is None
        assert provider.get_row_count('nope') == 0
        assert provider.get_sample_data('nope', 10).empty


class TestSchemaAnalyzer:
    def test_analyze_pairs_and_types_fields(self, provider):
        """Renamed columns are paired and typed from their samples."""
        analysis = SchemaAnalyzer(provider).analyze('customers', 'accounts')

        names = {c.name for c in analysis.common_fields}
        assert names == {'first_name', 'last_name', 'city', 'email', 'postal_code'}
        assert analysis.common_field('email').reference_field == 'email_address'
        assert analysis.common_field('email').semantic_type_name == 'email'
        assert analysis.common_field('postal_code').reference_field == 'zip'
        assert analysis.common_field('postal_code').semantic_type_name == 'postalCode'
        assert analysis.source_row_count == 5
        assert analysis.reference_row_count == 4
        assert 0.0 < analysis.unique_field_ratio <= 1.0
        assert set(analysis.field_stats) == names

    def test_unknown_table(self, provider):
        with pytest.raises(SchemaNotFound):
            SchemaAnalyzer(provider).analyze('customers', 'missing')


class TestEnrichCommonFields:
    def _schema(self, table_id, name, semantic_type, source=InferenceSource.NAME):
        return TableSchema(table_id, (
            SchemaField(name, semantic_type=SemanticType(semantic_type, Confidence.HIGH, source)),
        ))

    def test_source_type_wins(self):
        common = [CommonField('contact', 'contact', 'mail')]
        [enriched] = enrich_common_fields(
            common, self._schema('a', 'contact', 'email'), self._schema('b', 'mail', 'string')
        )
        assert enriched.semantic_type_name == 'email'

    def test_missing_types_become_unknown(self):
        [enriched] = enrich_common_fields([CommonField('x', 'x', 'y')], None, None)
        assert enriched.semantic_type == SemanticType.unknown()

    def test_incompatible_types_downgrade_quality(self):
        """Confidently typed sides that cannot be compared are flagged."""
        common = [CommonField('contact', 'contact', 'phone')]
        [enriched] = enrich_common_fields(
            common, self._schema('a', 'contact', 'email'), self._schema('b', 'phone', 'phoneNumber')
        )
        assert enriched.compatibility == Compatibility(False, FieldQuality.LOW)

    def test_sql_fallback_is_not_compared(self):
        common = [CommonField('contact', 'contact', 'mail')]
        [enriched] = enrich_common_fields(
            common,
            self._schema('a', 'contact', 'email'),
            self._schema('b', 'mail', 'string', InferenceSource.SQL_TYPE)
        )
        assert enriched.compatibility.compatible
