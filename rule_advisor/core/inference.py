"""Semantic field type inference from column names and sample values."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union
import logging

import pandas as pd
from dateutil import parser

from rule_advisor.config.models import (
    Confidence,
    InferenceSource,
    SchemaField,
    SemanticType,
    TableSchema
)
from rule_advisor.config.rules import (
    COMPATIBLE_TYPES,
    CONTENT_PATTERNS,
    FIELD_NAME_PREFIX,
    MIN_SAMPLES_FOR_VALIDATION,
    NAME_CONTENT_PATTERNS,
    NAME_PATTERNS,
    SAMPLE_MATCH_THRESHOLD,
    SQL_TYPE_BUCKETS,
    VALIDATION_PATTERNS
)

logger = logging.getLogger(__name__)

Samples = Union[pd.DataFrame, Sequence[Mapping[str, Any]], None]

MAX_PERSON_AGE_YEARS = 100


def _non_null_strings(samples: Iterable[Any]) -> List[str]:
    """Drop null-like samples and stringify the rest."""
    return [_to_string(sample) for sample in samples if not _is_null(sample)]


def _to_string(value: Any) -> str:
    # Integer columns holding nulls come back from pandas as float64
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_null(value: Any) -> bool:
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # Array-likes have no single truth value; they are not null
        return False


def _parse_date(value: str) -> Optional[datetime]:
    try:
        return parser.parse(value)
    except (ValueError, OverflowError, TypeError):
        return None


def _match_ratio(samples: Sequence[str], pattern) -> float:
    if not samples:
        return 0.0
    return sum(1 for sample in samples if pattern.match(sample)) / len(samples)


class SampleValidator(ABC):
    """Checks whether sample values agree with a semantic type."""

    def __init__(self, threshold: float = SAMPLE_MATCH_THRESHOLD):
        self.threshold = threshold

    @abstractmethod
    def validate(self, samples: Sequence[str]) -> bool:
        """
        Check non-null string samples against the type.

        Args:
            samples: Non-empty list of stringified sample values

        Returns:
            bool: Whether enough samples agree
        """
        pass


class PatternValidator(SampleValidator):
    """Requires a share of samples to match a regular expression."""

    def __init__(self, pattern, threshold: float = SAMPLE_MATCH_THRESHOLD):
        super().__init__(threshold)
        self.pattern = pattern

    def validate(self, samples: Sequence[str]) -> bool:
        return _match_ratio(samples, self.pattern) >= self.threshold


class DateValidator(SampleValidator):
    """Requires a share of samples to parse as dates."""

    def validate(self, samples: Sequence[str]) -> bool:
        parsed = sum(1 for sample in samples if _parse_date(sample) is not None)
        return parsed / len(samples) >= self.threshold


class ValidatorRegistry:
    """Registry of sample validators keyed by semantic type."""

    def __init__(self):
        self._validators: Dict[str, SampleValidator] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        for semantic_type, pattern in VALIDATION_PATTERNS.items():
            self.register(semantic_type, PatternValidator(pattern))
        self.register('dateOfBirth', DateValidator())

    def register(self, semantic_type: str, validator: SampleValidator) -> None:
        """
        Register a validator for a semantic type, replacing any existing one.

        Args:
            semantic_type: Semantic type name
            validator: Validator instance
        """
        self._validators[semantic_type] = validator

    def get(self, semantic_type: str) -> Optional[SampleValidator]:
        return self._validators.get(semantic_type)


# Global registry instance
registry = ValidatorRegistry()


def register_validator(semantic_type: str, validator: SampleValidator) -> None:
    """Register a sample validator globally."""
    registry.register(semantic_type, validator)


def normalize_field_name(field_name: str) -> str:
    """Lowercase, strip one known prefix and remove underscores."""
    return FIELD_NAME_PREFIX.sub('', field_name.lower(), count=1).replace('_', '')


def infer_type_from_name(field_name: str) -> Optional[str]:
    """
    Infer a semantic type from a column name.

    Args:
        field_name: Raw column name

    Returns:
        Optional[str]: Semantic type, or None if the name is not recognized
    """
    if not field_name:
        return None
    normalized = normalize_field_name(field_name)
    for pattern, semantic_type in NAME_PATTERNS:
        if pattern.match(normalized):
            return semantic_type
    return None


def validate_samples_match_type(
    samples: Iterable[Any],
    semantic_type: str,
    validators: Optional[ValidatorRegistry] = None
) -> bool:
    """
    Check that samples are consistent with a name-based type guess.

    Fewer than three samples cannot contradict the guess. Types without a
    registered validator are accepted as-is.
    """
    string_samples = _non_null_strings(samples)
    if len(string_samples) < MIN_SAMPLES_FOR_VALIDATION:
        return True

    validator = (validators or registry).get(semantic_type)
    if validator is None:
        return True
    return validator.validate(string_samples)


def _looks_like_birth_dates(samples: Sequence[str], now: Optional[datetime] = None) -> bool:
    dates = [parsed for parsed in map(_parse_date, samples) if parsed is not None]
    if not dates:
        return False
    now = now or datetime.now()
    for parsed in dates:
        if parsed.tzinfo is not None:
            parsed = parsed.replace(tzinfo=None)
        years = (now - parsed).days / 365
        if not 0 < years < MAX_PERSON_AGE_YEARS:
            return False
    return True


def infer_type_from_content(
    samples: Iterable[Any],
    declared_type: Optional[str] = None
) -> Optional[str]:
    """
    Infer a semantic type from sample values alone.

    Args:
        samples: Raw sample values, nulls allowed
        declared_type: Declared SQL type, gates date and name checks

    Returns:
        Optional[str]: Semantic type, or None if no pattern dominates
    """
    string_samples = _non_null_strings(samples)
    if not string_samples:
        return None

    for pattern, semantic_type in CONTENT_PATTERNS:
        if _match_ratio(string_samples, pattern) >= SAMPLE_MATCH_THRESHOLD:
            return semantic_type

    sql_type = (declared_type or '').lower()

    if sql_type in ('date', 'timestamp') and _looks_like_birth_dates(string_samples):
        return 'dateOfBirth'

    if 'char' in sql_type or 'string' in sql_type:
        for pattern, semantic_type in NAME_CONTENT_PATTERNS:
            if _match_ratio(string_samples, pattern) >= SAMPLE_MATCH_THRESHOLD:
                return semantic_type

    return None


def map_sql_type_to_semantic_type(declared_type: Optional[str]) -> str:
    """Map a declared SQL type to a coarse semantic bucket."""
    if not declared_type:
        return 'unknown'
    sql_type = declared_type.lower()
    for markers, bucket in SQL_TYPE_BUCKETS:
        if any(marker in sql_type for marker in markers):
            return bucket
    return 'unknown'


def infer_semantic_type(
    field: SchemaField,
    samples: Iterable[Any] = (),
    validators: Optional[ValidatorRegistry] = None
) -> SemanticType:
    """
    Assign a semantic type to a field.

    Name-based inference is tried first and confirmed against samples, then
    content patterns, then the declared SQL type.

    Args:
        field: Field to classify
        samples: Sample values of the field
        validators: Validator registry, defaults to the global one

    Returns:
        SemanticType: Inferred type with confidence and source
    """
    samples = list(samples)

    name_type = infer_type_from_name(field.name)
    if name_type and validate_samples_match_type(samples, name_type, validators):
        return SemanticType(name_type, Confidence.HIGH, InferenceSource.NAME)
    if name_type:
        logger.debug(
            f"Samples of {field.name} contradict name-based type {name_type}"
        )

    content_type = infer_type_from_content(samples, field.declared_type)
    if content_type:
        return SemanticType(content_type, Confidence.MEDIUM, InferenceSource.CONTENT)

    return SemanticType(
        map_sql_type_to_semantic_type(field.declared_type),
        Confidence.LOW,
        InferenceSource.SQL_TYPE
    )


def get_compatible_types(semantic_type: str) -> List[str]:
    """Semantic types that can be compared against the given one."""
    return list(COMPATIBLE_TYPES.get(semantic_type, [semantic_type]))


def are_types_compatible(type1: str, type2: str) -> bool:
    return (
        type1 == type2 or
        type2 in get_compatible_types(type1) or
        type1 in get_compatible_types(type2)
    )


def _column_samples(samples: Samples, column: str) -> List[Any]:
    if samples is None:
        return []
    if isinstance(samples, pd.DataFrame):
        if column not in samples.columns:
            return []
        return samples[column].tolist()
    return [row.get(column) for row in samples]


def infer_field_types(
    schema: TableSchema,
    samples: Samples = None,
    validators: Optional[ValidatorRegistry] = None
) -> TableSchema:
    """
    Enrich every field of a schema with an inferred semantic type.

    Args:
        schema: Table schema
        samples: Sample rows as a DataFrame or a list of row mappings
        validators: Validator registry, defaults to the global one

    Returns:
        TableSchema: New schema whose fields carry semantic types

    Raises:
        ValueError: If the schema is not a TableSchema
    """
    if not isinstance(schema, TableSchema):
        raise ValueError("Invalid table schema provided")

    enriched = []
    for schema_field in schema.fields:
        field_samples = _column_samples(samples, schema_field.name)
        semantic_type = infer_semantic_type(schema_field, field_samples, validators)
        enriched.append(schema_field.with_semantic_type(semantic_type))

    logger.info(
        f"Inferred semantic types for {len(enriched)} fields of {schema.table_id}"
    )
    return TableSchema(table_id=schema.table_id, fields=tuple(enriched))
