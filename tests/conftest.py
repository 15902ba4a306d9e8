"""Shared fixtures for the rule advisor tests."""

import pandas as pd
import pytest

from rule_advisor.config.models import (
    CandidateRule,
    CommonField,
    Confidence,
    FieldStats,
    InferenceSource,
    RuleField,
    SchemaAnalysis,
    SemanticType
)
from rule_advisor.core.schema import DataFrameSchemaProvider
from rule_advisor.core.tracker import PerformanceTracker


def typed_field(name: str, semantic_type: str, declared_type: str = 'string') -> CommonField:
    """Common field with a name-inferred semantic type."""
    return CommonField(
        name=name,
        source_field=name,
        reference_field=name,
        declared_type=declared_type,
        semantic_type=SemanticType(semantic_type, Confidence.HIGH, InferenceSource.NAME)
    )


def scored_rule(
    name: str,
    rule_type: str,
    fields,
    effectiveness: float,
    performance: float,
    **kwargs
) -> CandidateRule:
    """Candidate rule with scores already attached."""
    return CandidateRule(
        type=rule_type,
        name=name,
        fields=tuple(RuleField(field_name) for field_name in fields),
        algorithm=rule_type.replace('_match', ''),
        effectiveness=effectiveness,
        performance=performance,
        **kwargs
    )


@pytest.fixture
def customer_analysis():
    """Schema analysis of two customer tables sharing seven typed fields."""
    fields = (
        typed_field('customer_id', 'id'),
        typed_field('first_name', 'firstName'),
        typed_field('last_name', 'lastName'),
        typed_field('email', 'email'),
        typed_field('city', 'city'),
        typed_field('postal_code', 'postalCode'),
        typed_field('phone', 'phoneNumber'),
    )
    stats = {
        'customer_id': FieldStats(unique_ratio=1.0, null_ratio=0.0),
        'first_name': FieldStats(unique_ratio=0.6, null_ratio=0.0),
        'last_name': FieldStats(unique_ratio=0.7, null_ratio=0.1),
        'email': FieldStats(unique_ratio=0.95, null_ratio=0.05),
        'city': FieldStats(unique_ratio=0.3, null_ratio=0.0),
        'postal_code': FieldStats(unique_ratio=0.4, null_ratio=0.0),
        'phone': FieldStats(unique_ratio=0.9, null_ratio=0.2),
    }
    return SchemaAnalysis(
        common_fields=fields,
        source_row_count=1000,
        reference_row_count=2000,
        field_stats=stats,
        unique_field_ratio=0.5
    )


@pytest.fixture
def customers_df():
    return pd.DataFrame({
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


@pytest.fixture
def accounts_df():
    return pd.DataFrame({
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


@pytest.fixture
def provider(customers_df, accounts_df):
    """In-memory schema provider with a customer and an account table."""
    return DataFrameSchemaProvider({
        'customers': customers_df,
        'accounts': accounts_df,
    })


@pytest.fixture
def tracker():
    """Tracker backed by a fresh in-memory store."""
    return PerformanceTracker()
