"""Error taxonomy for rule recommendation requests."""

from enum import Enum
from typing import Optional


class ErrorType(str, Enum):
    """Kinds of terminal failure a recommendation request can end with."""
    SCHEMA_NOT_FOUND = "schema_not_found"
    NO_RULES_AVAILABLE = "no_rules_available"
    INVALID_GOAL_CONFIGURATION = "invalid_goal_configuration"
    RECOMMENDATION_FAILED = "recommendation_failed"


class RuleAdvisorError(Exception):
    """Base class for all recommendation failures."""

    error_type: ErrorType = ErrorType.RECOMMENDATION_FAILED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.error_type.value}] {self.message}"


class SchemaNotFound(RuleAdvisorError):
    """The schema collaborator has no schema for a table."""

    error_type = ErrorType.SCHEMA_NOT_FOUND

    def __init__(self, table_id: str):
        super().__init__(f"Schema not found for table: {table_id}")
        self.table_id = table_id


class NoRulesAvailable(RuleAdvisorError):
    """No candidate rules could be generated for the table pair."""

    error_type = ErrorType.NO_RULES_AVAILABLE

    def __init__(self, message: str = "No rules available for optimization"):
        super().__init__(message)


class InvalidGoalConfiguration(RuleAdvisorError):
    """A goal cannot be turned into a usable configuration."""

    error_type = ErrorType.INVALID_GOAL_CONFIGURATION


class RecommendationFailed(RuleAdvisorError):
    """Wraps an unexpected upstream failure with request context."""

    error_type = ErrorType.RECOMMENDATION_FAILED

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"Failed to recommend rules: {message}")
        self.cause = cause
