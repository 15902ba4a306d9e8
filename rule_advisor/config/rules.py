"""Lookup tables and algorithm selection rules for rule recommendation."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple
import regex as re

from rule_advisor.config.models import BlockingAggressiveness, GoalType

# Prefixes stripped from column names before name-based inference
FIELD_NAME_PREFIX = re.compile(r'^(fld_|field_|col_|column_|tbl_|f_|c_)')

# Ordered: first match wins. Patterns run against the normalized name.
NAME_PATTERNS: List[Tuple[re.Pattern, str]] = [
    # Person
    (re.compile(r'^(first|given|fore)name$'), 'firstName'),
    (re.compile(r'^(last|family|sur)name$'), 'lastName'),
    (re.compile(r'^(middle|mid)name$'), 'middleName'),
    (re.compile(r'^fullname$'), 'fullName'),
    (re.compile(r'^name$'), 'name'),
    # Contact
    (re.compile(r'^(email|emailaddress|e_?mail)$'), 'email'),
    (re.compile(r'^(phone|telephone|phonenumber|phoneno|tel|telno)$'), 'phoneNumber'),
    # Address
    (re.compile(r'^(address|addr|streetaddress|street)$'), 'streetAddress'),
    (re.compile(r'^(city|town|municipality)$'), 'city'),
    (re.compile(r'^(state|province|region)$'), 'state'),
    (re.compile(r'^(zip|zipcode|postal|postalcode|postcode)$'), 'postalCode'),
    (re.compile(r'^country$'), 'country'),
    # Identifiers
    (re.compile(r'^(id|identifier|key)$'), 'id'),
    (re.compile(r'^(customerid|clientid)$'), 'customerId'),
    (re.compile(r'^(userid|username)$'), 'userId'),
    # Dates
    (re.compile(r'^(date|dt)$'), 'date'),
    (re.compile(r'^(dob|dateofbirth|birthdate|birthdt)$'), 'dateOfBirth'),
    (re.compile(r'^(created|createdat|creationdate)$'), 'createdDate'),
    (re.compile(r'^(updated|updatedat|lastupdate|modified|modifiedat)$'), 'modifiedDate'),
    # Other
    (re.compile(r'^(amount|total|sum|price|cost)$'), 'amount'),
    (re.compile(r'^(status|condition)$'), 'status'),
]

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
PHONE_PATTERN = re.compile(r'^\+?[0-9]{7,15}$|^\+?[0-9]{3}[-. ][0-9]{3}[-. ][0-9]{4}$')
POSTAL_CODE_PATTERN = re.compile(r'^[0-9]{5}(-[0-9]{4})?$|^[A-Z][0-9][A-Z] [0-9][A-Z][0-9]$')
FIRST_NAME_PATTERN = re.compile(r'^[A-Z][a-z]+$')
FULL_NAME_PATTERN = re.compile(r'^[A-Z][a-z]+([ ][A-Z][a-z]+)+$')
LOOSE_NAME_PATTERN = re.compile(r'^[A-Z][a-z]+$', re.IGNORECASE)
LOOSE_FULL_NAME_PATTERN = re.compile(r'^[A-Za-z]+([ ][A-Za-z]+)+$')

# Share of non-null samples that must agree with a pattern
SAMPLE_MATCH_THRESHOLD = 0.8
MIN_SAMPLES_FOR_VALIDATION = 3

# Content patterns tried in order when the name gives no usable answer
CONTENT_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (EMAIL_PATTERN, 'email'),
    (PHONE_PATTERN, 'phoneNumber'),
    (POSTAL_CODE_PATTERN, 'postalCode'),
]
NAME_CONTENT_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (FIRST_NAME_PATTERN, 'firstName'),
    (FULL_NAME_PATTERN, 'fullName'),
]

# Patterns used to confirm a name-based guess against samples
VALIDATION_PATTERNS: Dict[str, re.Pattern] = {
    'email': EMAIL_PATTERN,
    'phoneNumber': PHONE_PATTERN,
    'postalCode': POSTAL_CODE_PATTERN,
    'firstName': LOOSE_NAME_PATTERN,
    'lastName': LOOSE_NAME_PATTERN,
    'fullName': LOOSE_FULL_NAME_PATTERN,
}

# Coarse buckets for declared SQL types, checked in order
SQL_TYPE_BUCKETS: List[Tuple[Tuple[str, ...], str]] = [
    (('int', 'decimal', 'number', 'numeric', 'float', 'double'), 'number'),
    (('char', 'text', 'string'), 'string'),
    (('date', 'time'), 'date'),
    (('bool',), 'boolean'),
]

COMPATIBLE_TYPES: Dict[str, List[str]] = {
    'firstName': ['firstName', 'name', 'fullName'],
    'lastName': ['lastName', 'name', 'fullName'],
    'middleName': ['middleName', 'name', 'fullName'],
    'fullName': ['fullName', 'name'],
    'email': ['email'],
    'phoneNumber': ['phoneNumber'],
    'streetAddress': ['streetAddress', 'address'],
    'city': ['city'],
    'state': ['state'],
    'postalCode': ['postalCode', 'zipCode'],
    'country': ['country'],
    'id': ['id', 'customerId', 'userId'],
    'customerId': ['customerId', 'id'],
    'userId': ['userId', 'id'],
    'date': ['date'],
    'dateOfBirth': ['dateOfBirth'],
    'createdDate': ['createdDate', 'date'],
    'modifiedDate': ['modifiedDate', 'date'],
    'amount': ['amount', 'number'],
    'status': ['status'],
}

RECOMMENDED_ALGORITHMS: Dict[str, List[str]] = {
    'firstName': ['levenshtein', 'jaro', 'soundex'],
    'lastName': ['levenshtein', 'jaro', 'soundex'],
    'middleName': ['levenshtein', 'jaro', 'soundex'],
    'fullName': ['levenshtein', 'jaro', 'soundex'],
    'email': ['exact', 'levenshtein'],
    'phoneNumber': ['exact', 'lastN'],
    'streetAddress': ['token_sort', 'levenshtein'],
    'city': ['levenshtein', 'soundex'],
    'state': ['exact'],
    'postalCode': ['exact', 'startsWith'],
    'country': ['exact'],
    'id': ['exact'],
    'customerId': ['exact'],
    'userId': ['exact'],
    'date': ['exact', 'dateWithinRange'],
    'dateOfBirth': ['exact', 'dateWithinRange'],
    'createdDate': ['dateWithinRange'],
    'modifiedDate': ['dateWithinRange'],
    'amount': ['numeric', 'range'],
    'status': ['exact'],
}
DEFAULT_ALGORITHMS = ['exact']

# Semantic types that work as blocking keys under exact/prefix comparison
BLOCKING_TYPES: FrozenSet[str] = frozenset({
    'email', 'phoneNumber', 'postalCode', 'id', 'customerId', 'userId', 'dateOfBirth'
})
BLOCKING_ALGORITHMS: FrozenSet[str] = frozenset({'exact', 'prefix'})

NAME_TYPES: Tuple[str, ...] = ('firstName', 'lastName', 'fullName')
IDENTIFIER_TYPES: Tuple[str, ...] = ('id', 'email', 'phoneNumber')

# Base performance estimate by rule type; first substring hit wins
BASE_PERFORMANCE_SCORES: List[Tuple[str, float]] = [
    ('exact_match', 0.9),
    ('prefix_match', 0.85),
    ('id_match', 0.9),
    ('email_match', 0.8),
    ('phone_match', 0.8),
    ('fuzzy_match', 0.5),
    ('levenshtein_match', 0.4),
    ('soundex_match', 0.6),
    ('metaphone_match', 0.6),
    ('address_match', 0.4),
    ('transitive_match', 0.3),
    ('composite_match', 0.7),
]
DEFAULT_PERFORMANCE_SCORE = 0.5

# Ordered keyword cascade for goal detection
GOAL_KEYWORDS: List[Tuple[GoalType, Tuple[str, ...]]] = [
    (GoalType.HIGH_PRECISION, (
        'exact', 'precise', 'accuracy', 'confident', 'certain',
        'only strong', 'high confidence'
    )),
    (GoalType.HIGH_RECALL, (
        'find all', 'find as many', 'maximize matches', "don't miss",
        'comprehensive', 'complete set'
    )),
    (GoalType.PERFORMANCE, ('fast', 'quick', 'efficient', 'performance', 'speed')),
    (GoalType.CUSTOM, ('custom', 'specific', 'advanced')),
]

# Fixed parameter sets per goal. CUSTOM has none of its own.
GOAL_PRESETS: Dict[GoalType, Dict[str, Any]] = {
    GoalType.HIGH_PRECISION: {
        'thresholds': (0.9, 0.75, 0.6),
        'blocking_strategy': BlockingAggressiveness.AGGRESSIVE,
        'field_weight_multipliers': {
            'uniqueIdentifiers': 1.5, 'names': 1.0, 'addresses': 1.0, 'dates': 1.0
        },
        'transitive_matching': False,
        'max_edit_distance': 1,
        'fuzzy_matching_aggressiveness': 'conservative',
        'similarity_threshold': 0.85,
        'max_lev_distance': 1,
    },
    GoalType.HIGH_RECALL: {
        'thresholds': (0.8, 0.6, 0.4),
        'blocking_strategy': BlockingAggressiveness.MINIMAL,
        'field_weight_multipliers': {
            'uniqueIdentifiers': 1.0, 'names': 1.2, 'addresses': 1.2, 'dates': 1.0
        },
        'transitive_matching': True,
        'max_edit_distance': 3,
        'fuzzy_matching_aggressiveness': 'aggressive',
        'similarity_threshold': 0.65,
        'max_lev_distance': 3,
    },
    GoalType.PERFORMANCE: {
        'thresholds': (0.85, 0.7, 0.5),
        'blocking_strategy': BlockingAggressiveness.AGGRESSIVE,
        'field_weight_multipliers': {
            'uniqueIdentifiers': 1.5, 'names': 1.0, 'addresses': 0.8, 'dates': 1.2
        },
        'transitive_matching': False,
        'max_edit_distance': 2,
        'fuzzy_matching_aggressiveness': 'balanced',
        'similarity_threshold': 0.75,
        'max_lev_distance': 2,
        'extras': {
            'enable_parallel_processing': True,
            'batch_size': 10000,
            'use_index_hints': True,
        },
    },
    GoalType.BALANCED: {
        'thresholds': (0.85, 0.65, 0.45),
        'blocking_strategy': BlockingAggressiveness.BALANCED,
        'field_weight_multipliers': {
            'uniqueIdentifiers': 1.2, 'names': 1.0, 'addresses': 1.0, 'dates': 1.0
        },
        'transitive_matching': True,
        'max_edit_distance': 2,
        'fuzzy_matching_aggressiveness': 'balanced',
        'similarity_threshold': 0.75,
        'max_lev_distance': 2,
    },
}

# Threshold adjustment driven by the share of unique fields
LOW_UNIQUENESS_RATIO = 0.3
HIGH_UNIQUENESS_RATIO = 0.7
DEFAULT_UNIQUE_FIELD_RATIO = 0.5
THRESHOLD_RAISE = 0.05
THRESHOLD_RAISE_CAPS = (0.95, 0.85, 0.65)
THRESHOLD_LOWER = -0.03
THRESHOLD_LOWER_FLOORS = (0.8, 0.6, 0.4)


class AlgorithmRule(ABC):
    """Base class for deciding whether an algorithm suits a field under a goal."""

    @abstractmethod
    def allows(self, algorithm: str, semantic_type: str, goal_type: GoalType) -> bool:
        """
        Determine if a rule may be generated for this combination.

        Args:
            algorithm: Matching algorithm name
            semantic_type: Semantic type of the field
            goal_type: Current matching goal

        Returns:
            bool: Whether the combination is allowed
        """
        pass


class GoalExclusionRule(AlgorithmRule):
    """Reject some algorithms under one goal, except on exempt field types."""

    def __init__(
        self,
        goal_type: GoalType,
        algorithms: Iterable[str],
        exempt_types: Optional[Iterable[str]] = None
    ):
        self.goal_type = goal_type
        self.algorithms = frozenset(algorithms)
        self.exempt_types = frozenset(exempt_types or ())

    def allows(self, algorithm: str, semantic_type: str, goal_type: GoalType) -> bool:
        if goal_type != self.goal_type or algorithm not in self.algorithms:
            return True
        return semantic_type in self.exempt_types


@dataclass
class AlgorithmRules:
    """All algorithm rules that must agree before a rule is generated."""

    rules: List[AlgorithmRule]

    def allows(self, algorithm: str, semantic_type: str, goal_type: GoalType) -> bool:
        return all(
            rule.allows(algorithm, semantic_type, goal_type)
            for rule in self.rules
        )


DEFAULT_ALGORITHM_RULES = AlgorithmRules(rules=[
    GoalExclusionRule(GoalType.HIGH_PRECISION, ['fuzzy', 'soundex'], exempt_types=['id']),
    GoalExclusionRule(GoalType.PERFORMANCE, ['levenshtein', 'token_sort']),
])
