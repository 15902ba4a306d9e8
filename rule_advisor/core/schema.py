"""Schema comparison and field profiling for a source/reference table pair."""

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

import Levenshtein
import numpy as np
import pandas as pd
import regex as re

from rule_advisor.config.models import (
    CommonField,
    Compatibility,
    FieldQuality,
    FieldStats,
    InferenceSource,
    SchemaAnalysis,
    SchemaField,
    ScoredField,
    SemanticType,
    TableSchema
)
from rule_advisor.config.rules import DEFAULT_UNIQUE_FIELD_RATIO
from rule_advisor.core.inference import are_types_compatible, infer_field_types
from rule_advisor.errors import SchemaNotFound
from rule_advisor.interfaces import SchemaProvider

logger = logging.getLogger(__name__)

_PREFIX = re.compile(r'^(fld|field|col|column|tbl|table)')
_SUFFIX = re.compile(r'(id|key|code|num|number)$')

# Normalized names that refer to the same concept
NAME_VARIATIONS: Dict[str, List[str]] = {
    'firstname': ['fname', 'first', 'givenname'],
    'lastname': ['lname', 'last', 'surname', 'familyname'],
    'email': ['emailaddress', 'mail'],
    'phone': ['phonenumber', 'telephone', 'tel', 'mobile', 'cell'],
    'address': ['addr', 'street', 'streetaddress'],
    'city': ['town', 'municipality'],
    'state': ['province', 'region'],
    'country': ['nation'],
    'postalcode': ['zip', 'zipcode', 'postcode'],
    'dateofbirth': ['dob', 'birthdate', 'birthday'],
}

MATCHABLE_TYPES = ('string', 'int64', 'float64', 'date', 'timestamp')


def _normalize_name(name: str, strip_suffix: bool = True) -> str:
    name = name.lower().replace('_', '')
    name = _PREFIX.sub('', name, count=1)
    return _SUFFIX.sub('', name, count=1) if strip_suffix else name


def are_field_names_similar(name1: str, name2: str) -> bool:
    """
    Decide whether two column names probably describe the same attribute.

    Args:
        name1: First column name
        name2: Second column name

    Returns:
        bool: True for equal normalized names, shared concepts or small edit distance
    """
    normalized1 = _normalize_name(name1)
    normalized2 = _normalize_name(name2)

    # Names made only of prefixes/suffixes ("id", "key") carry no signal
    if not normalized1 or not normalized2:
        return False
    if normalized1 == normalized2:
        return True

    # Aliases are checked with and without the suffix ("postal_code" -> "postalcode")
    forms1 = {normalized1, _normalize_name(name1, strip_suffix=False)}
    forms2 = {normalized2, _normalize_name(name2, strip_suffix=False)}
    for concept, aliases in NAME_VARIATIONS.items():
        known = {concept, *aliases}
        if forms1 & known and forms2 & known:
            return True

    max_distance = 1 if min(len(normalized1), len(normalized2)) <= 4 else 2
    return Levenshtein.distance(normalized1, normalized2) <= max_distance


def _compatibility(exact_name: bool, same_type: bool) -> Compatibility:
    if exact_name and same_type:
        return Compatibility(True, FieldQuality.HIGH)
    if exact_name or same_type:
        return Compatibility(True, FieldQuality.MEDIUM)
    return Compatibility(True, FieldQuality.LOW)


def find_common_fields(
    source_schema: TableSchema,
    reference_schema: TableSchema
) -> List[CommonField]:
    """
    Pair up fields present in both tables.

    Exact (case-insensitive) name matches are taken first, remaining fields
    are paired by name similarity, each reference field at most once.
    """
    reference_by_name = {f.name.lower(): f for f in reference_schema.fields}
    common_fields: List[CommonField] = []

    for source_field in source_schema.fields:
        reference_field = reference_by_name.get(source_field.name.lower())
        if reference_field is not None:
            common_fields.append(CommonField(
                name=source_field.name,
                source_field=source_field.name,
                reference_field=reference_field.name,
                declared_type=source_field.declared_type,
                match_type='exact',
                compatibility=_compatibility(
                    True,
                    source_field.declared_type == reference_field.declared_type
                )
            ))

    matched_source = {c.source_field.lower() for c in common_fields}
    matched_reference = {c.reference_field.lower() for c in common_fields}

    for source_field in source_schema.fields:
        if source_field.name.lower() in matched_source:
            continue
        for reference_field in reference_schema.fields:
            if reference_field.name.lower() in matched_reference:
                continue
            if are_field_names_similar(source_field.name, reference_field.name):
                common_fields.append(CommonField(
                    name=source_field.name,
                    source_field=source_field.name,
                    reference_field=reference_field.name,
                    declared_type=source_field.declared_type,
                    match_type='similar',
                    compatibility=_compatibility(
                        False,
                        source_field.declared_type == reference_field.declared_type
                    )
                ))
                matched_reference.add(reference_field.name.lower())
                break

    return common_fields


def compute_field_stats(samples: pd.DataFrame, field_names: Iterable[str]) -> Dict[str, FieldStats]:
    """
    Profile sample columns.

    Args:
        samples: Sample rows
        field_names: Columns to profile; missing columns are skipped

    Returns:
        Dict[str, FieldStats]: Unique ratio, null ratio and average string length
    """
    stats: Dict[str, FieldStats] = {}
    if samples is None or samples.empty:
        return stats

    for name in field_names:
        if name not in samples.columns:
            continue
        column = samples[name]
        total = len(column)
        non_null = column.dropna()
        unique_ratio = non_null.nunique() / len(non_null) if len(non_null) else 0.0
        null_ratio = 1 - len(non_null) / total if total else 1.0
        strings = non_null[non_null.map(lambda value: isinstance(value, str))]
        avg_length = float(strings.str.len().mean()) if len(strings) else None
        stats[name] = FieldStats(
            unique_ratio=float(unique_ratio),
            null_ratio=float(null_ratio),
            avg_length=avg_length
        )
    return stats


def combine_field_stats(
    common_fields: Iterable[CommonField],
    source_stats: Dict[str, FieldStats],
    reference_stats: Dict[str, FieldStats]
) -> Tuple[Dict[str, FieldStats], float]:
    """
    Average per-table statistics for each common field.

    Returns:
        Tuple[Dict[str, FieldStats], float]: Stats keyed by common field name,
        and the mean unique ratio across them
    """
    combined: Dict[str, FieldStats] = {}
    for common in common_fields:
        source = source_stats.get(common.source_field)
        reference = reference_stats.get(common.reference_field)
        if source is None or reference is None:
            continue
        combined[common.name] = FieldStats(
            unique_ratio=(source.unique_ratio + reference.unique_ratio) / 2,
            null_ratio=(source.null_ratio + reference.null_ratio) / 2,
            avg_length=source.avg_length,
            source_stats=source,
            reference_stats=reference
        )

    if not combined:
        return combined, DEFAULT_UNIQUE_FIELD_RATIO
    unique_field_ratio = float(np.mean([s.unique_ratio for s in combined.values()]))
    return combined, unique_field_ratio


def calculate_schema_similarity(source_schema: TableSchema, reference_schema: TableSchema) -> float:
    """Blend exact-name, type-distribution and Jaccard similarity of two schemas."""
    source_names = {f.name.lower() for f in source_schema.fields}
    reference_names = {f.name.lower() for f in reference_schema.fields}
    smaller = min(len(source_schema.fields), len(reference_schema.fields))
    if smaller == 0:
        return 0.0

    exact_matches = len(source_names & reference_names)

    type_counts: Dict[str, int] = {}
    for f in source_schema.fields:
        type_counts[f.declared_type] = type_counts.get(f.declared_type, 0) + 1
    type_matches = 0
    for f in reference_schema.fields:
        if type_counts.get(f.declared_type):
            type_matches += 1
            type_counts[f.declared_type] -= 1

    jaccard = exact_matches / len(source_names | reference_names)

    return (
        0.6 * exact_matches / smaller +
        0.2 * type_matches / smaller +
        0.2 * jaccard
    )


def identify_blocking_fields(
    common_fields: Iterable[CommonField],
    field_stats: Dict[str, FieldStats]
) -> List[ScoredField]:
    """Rank fields with mid-range uniqueness, few nulls and consistent lengths."""
    candidates = []
    for common in common_fields:
        stats = field_stats.get(common.name)
        if stats is None:
            continue

        if 0.1 < stats.unique_ratio < 0.8:
            uniqueness = 1 - abs(0.5 - stats.unique_ratio)
        else:
            uniqueness = 0.0
        completeness = 1 - stats.null_ratio

        source_length = stats.source_stats.avg_length if stats.source_stats else None
        reference_length = stats.reference_stats.avg_length if stats.reference_stats else None
        if source_length and reference_length:
            length_consistency = 1 - abs(source_length - reference_length) / max(
                source_length, reference_length
            )
        else:
            length_consistency = 0.5

        score = 0.5 * uniqueness + 0.3 * completeness + 0.2 * length_consistency
        if score > 0.6:
            candidates.append(ScoredField(
                field=common.name,
                source_field=common.source_field,
                reference_field=common.reference_field,
                score=score,
                components={
                    'uniqueness': uniqueness,
                    'completeness': completeness,
                    'length_consistency': length_consistency,
                }
            ))
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def identify_matching_fields(
    common_fields: Iterable[CommonField],
    field_stats: Dict[str, FieldStats]
) -> List[ScoredField]:
    """Rank fields that are unique, complete and of a comparable type."""
    candidates = []
    for common in common_fields:
        stats = field_stats.get(common.name)
        if stats is None:
            continue
        type_score = 1.0 if common.declared_type in MATCHABLE_TYPES else 0.2
        score = 0.4 * stats.unique_ratio + 0.3 * (1 - stats.null_ratio) + 0.3 * type_score
        if score > 0.5:
            candidates.append(ScoredField(
                field=common.name,
                source_field=common.source_field,
                reference_field=common.reference_field,
                score=score,
                components={
                    'uniqueness': stats.unique_ratio,
                    'completeness': 1 - stats.null_ratio,
                    'type': type_score,
                }
            ))
    return sorted(candidates, key=lambda c: c.score, reverse=True)


def analyze_value_distribution(samples: pd.DataFrame, field_name: str, top_n: int = 5) -> Dict[str, Any]:
    """Unique ratio and most common values of a sample column."""
    if field_name not in samples.columns:
        values = pd.Series(dtype=object)
    else:
        values = samples[field_name].dropna()
        values = values[values.astype(str).str.len() > 0]

    if values.empty:
        return {'unique_count': 0, 'unique_ratio': 0.0, 'most_common': []}

    counts = values.value_counts()
    return {
        'unique_count': int(len(counts)),
        'unique_ratio': len(counts) / len(values),
        'most_common': [
            {'value': value, 'count': int(count), 'frequency': count / len(values)}
            for value, count in counts.head(top_n).items()
        ],
    }


def detect_pattern(value: str) -> str:
    """Shape of a string: letters become A/a, digits 9, runs are collapsed."""
    pattern = re.sub(r'[A-Z]', 'A', value)
    pattern = re.sub(r'[a-z]', 'a', pattern)
    pattern = re.sub(r'[0-9]', '9', pattern)
    return re.sub(r'(.)\1+', r'\1+', pattern)


def enrich_common_fields(
    common_fields: Iterable[CommonField],
    source_schema: Optional[TableSchema],
    reference_schema: Optional[TableSchema]
) -> List[CommonField]:
    """
    Copy inferred semantic types onto common fields.

    The source table's type wins, then the reference table's, otherwise the
    field is marked unknown. Pairs whose sides were confidently inferred as
    incompatible types are downgraded to low quality.
    """
    enriched = []
    for common in common_fields:
        source_type = _field_semantic_type(source_schema, common.source_field)
        reference_type = _field_semantic_type(reference_schema, common.reference_field)
        semantic_type = source_type or reference_type or SemanticType.unknown()

        if (_is_confident(source_type) and _is_confident(reference_type)
                and not are_types_compatible(source_type.type, reference_type.type)):
            logger.debug(
                f"{common.source_field} ({source_type.type}) and {common.reference_field} "
                f"({reference_type.type}) have incompatible types"
            )
            common = replace(common, compatibility=Compatibility(False, FieldQuality.LOW))

        enriched.append(common.with_semantic_type(semantic_type))
    return enriched


def _field_semantic_type(schema: Optional[TableSchema], name: str) -> Optional[SemanticType]:
    if schema is None:
        return None
    schema_field = schema.field(name)
    return schema_field.semantic_type if schema_field else None


def _is_confident(semantic_type: Optional[SemanticType]) -> bool:
    return semantic_type is not None and semantic_type.source in (
        InferenceSource.NAME, InferenceSource.CONTENT
    )


class SchemaAnalyzer:
    """Builds a SchemaAnalysis from an external schema provider."""

    def __init__(self, provider: SchemaProvider, sample_size: int = 100):
        self.provider = provider
        self.sample_size = sample_size

    def _get_schema(self, table_id: str) -> TableSchema:
        schema = self.provider.get_table_schema(table_id)
        if schema is None:
            raise SchemaNotFound(table_id)
        return schema

    def analyze(self, source_table_id: str, reference_table_id: str) -> SchemaAnalysis:
        """
        Compare two tables, infer field types and profile their shared fields.

        Args:
            source_table_id: Source table identifier
            reference_table_id: Reference table identifier

        Returns:
            SchemaAnalysis: Analysis with semantically typed common fields

        Raises:
            SchemaNotFound: If the provider does not know one of the tables
        """
        logger.info(f"Analyzing schema for {source_table_id} -> {reference_table_id}")
        source_schema = self._get_schema(source_table_id)
        reference_schema = self._get_schema(reference_table_id)

        source_samples = self.provider.get_sample_data(source_table_id, self.sample_size)
        reference_samples = self.provider.get_sample_data(reference_table_id, self.sample_size)

        source_schema = infer_field_types(source_schema, source_samples)
        reference_schema = infer_field_types(reference_schema, reference_samples)

        common_fields = find_common_fields(source_schema, reference_schema)
        common_fields = enrich_common_fields(common_fields, source_schema, reference_schema)

        field_stats, unique_field_ratio = combine_field_stats(
            common_fields,
            compute_field_stats(source_samples, [c.source_field for c in common_fields]),
            compute_field_stats(reference_samples, [c.reference_field for c in common_fields])
        )

        analysis = SchemaAnalysis(
            common_fields=tuple(common_fields),
            source_schema=source_schema,
            reference_schema=reference_schema,
            source_row_count=self.provider.get_row_count(source_table_id),
            reference_row_count=self.provider.get_row_count(reference_table_id),
            field_stats=field_stats,
            unique_field_ratio=unique_field_ratio,
            schema_similarity=calculate_schema_similarity(source_schema, reference_schema),
            potential_blocking_fields=tuple(identify_blocking_fields(common_fields, field_stats)),
            potential_matching_fields=tuple(identify_matching_fields(common_fields, field_stats))
        )
        logger.info(
            f"Found {len(common_fields)} common fields "
            f"(schema similarity {analysis.schema_similarity:.2f})"
        )
        return analysis


def _declared_type(column: pd.Series) -> str:
    if pd.api.types.is_bool_dtype(column):
        return 'boolean'
    if pd.api.types.is_integer_dtype(column):
        return 'int64'
    if pd.api.types.is_float_dtype(column):
        return 'float64'
    if pd.api.types.is_datetime64_any_dtype(column):
        return 'timestamp'
    return 'string'


class DataFrameSchemaProvider:
    """SchemaProvider over in-memory DataFrames keyed by table id."""

    def __init__(self, tables: Optional[Dict[str, pd.DataFrame]] = None):
        self.tables: Dict[str, pd.DataFrame] = dict(tables or {})

    def add_table(self, table_id: str, df: pd.DataFrame) -> None:
        self.tables[table_id] = df

    def get_table_schema(self, table_id: str) -> Optional[TableSchema]:
        df = self.tables.get(table_id)
        if df is None:
            return None
        fields = []
        for name in df.columns:
            column = df[name]
            fields.append(SchemaField(
                name=str(name),
                declared_type=_declared_type(column),
                null_ratio=float(column.isna().mean()) if len(column) else 0.0,
                is_unique=bool(column.dropna().is_unique)
            ))
        return TableSchema(table_id=table_id, fields=tuple(fields))

    def get_row_count(self, table_id: str) -> int:
        df = self.tables.get(table_id)
        return len(df) if df is not None else 0

    def get_sample_data(self, table_id: str, sample_size: int) -> pd.DataFrame:
        df = self.tables.get(table_id)
        if df is None:
            return pd.DataFrame()
        return df.head(sample_size)
