"""
Centralized Exception Hierarchy for RecallForge.

All custom exceptions inherit from RecallForgeError so callers can catch
every scheduler-specific failure in one place.

Each exception carries:
- error_code: Unique identifier for documentation lookup (e.g., "RF-VAL-001")
- why_it_happened: Explanation of the root cause
- how_to_fix: Actionable steps to resolve the issue

Usage
-----
    from recallforge.core.exceptions import (
        RecallForgeError,
        ValidationError,
        ConfigValidationError,
    )

    try:
        service.schedule_review(payload)
    except ValidationError as e:
        logger.warning("Rejected review", error=str(e))

Exception Hierarchy
-------------------
    RecallForgeError (base)
    ├── ValidationError
    │   ├── SnapshotError
    │   └── QualityRangeError
    ├── ConfigurationError
    │   └── ConfigValidationError
    └── BatchItemError

Design Principles
-----------------
1. The engine itself never raises for domain values; errors live at the facade
2. Catch specific exceptions when you can handle them
3. Let RecallForgeError propagate for general error handling
"""

from typing import Any, Dict, List, Optional


class RecallForgeError(Exception):
    """
    Base exception for all RecallForge errors.

    Example
    -------
        try:
            service.replace_config({"max_interval": -1})
        except RecallForgeError as e:
            print(f"{e.error_code}: {e}")
            print(f"Fix: {e.how_to_fix}")
    """

    error_code: str = "RF-ERR-000"
    why_it_happened: str = "An unexpected error occurred"
    how_to_fix: List[str] = ["Check the error message for details"]

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        why_it_happened: Optional[str] = None,
        how_to_fix: Optional[List[str]] = None,
    ) -> None:
        """Initialize RecallForgeError with helpful information.

        Args:
            message: Human-readable error message
            error_code: Unique identifier (e.g., "RF-VAL-001")
            why_it_happened: Explanation of root cause
            how_to_fix: List of actionable fix suggestions
        """
        super().__init__(message)

        if error_code is not None:
            self.error_code = error_code
        if why_it_happened is not None:
            self.why_it_happened = why_it_happened
        if how_to_fix is not None:
            self.how_to_fix = how_to_fix

    @property
    def user_message(self) -> str:
        """Get the user-friendly error message."""
        return str(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API error payloads."""
        return {
            "error": type(self).__name__,
            "code": self.error_code,
            "message": self.user_message,
            "howToFix": list(self.how_to_fix),
        }


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(RecallForgeError):
    """
    Raised when a request is missing fields or carries malformed values.

    These errors are rejected before the scheduling engine is invoked.
    """

    error_code = "RF-VAL-000"
    why_it_happened = "The request did not match the expected shape"
    how_to_fix = [
        "Include userId, itemId and quality in every review request",
        "Check field types against the API documentation",
    ]


class SnapshotError(ValidationError):
    """
    Raised when a card snapshot cannot be turned back into a ReviewCard.

    Example
    -------
        ReviewCard.from_dict({"nextReview": "yesterday-ish"})
        # Raises: SnapshotError("Invalid timestamp for next_review: ...")
    """

    error_code = "RF-VAL-001"
    why_it_happened = (
        "The card snapshot contains an unknown learning state, a non-numeric "
        "parameter or a timestamp that is not ISO-8601"
    )
    how_to_fix = [
        "Send the snapshot exactly as it was returned by a previous schedule call",
        "Use ISO-8601 strings for lastReviewed, nextReview, createdAt and updatedAt",
        "Use one of NEW, LEARNING, REVIEW, RELEARNING for learningState",
    ]


class QualityRangeError(ValidationError):
    """
    Raised by the facade when a review grade falls outside 0-5.

    The engine clamps such values instead; this error keeps them from
    reaching it through the public interface.
    """

    error_code = "RF-VAL-002"
    why_it_happened = "Review quality must be an integer grade between 0 and 5"
    how_to_fix = [
        "Map the learner's answer onto the 0-5 scale before submitting",
        "Use 0-2 for failed recall and 3-5 for successful recall",
    ]


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(RecallForgeError):
    """
    Base exception for configuration loading and replacement failures.
    """

    error_code = "RF-CFG-000"
    why_it_happened = "The configuration could not be loaded"
    how_to_fix = [
        "Check that config.yaml is valid YAML",
        "Verify RECALLFORGE_* environment variables",
    ]


class ConfigValidationError(ConfigurationError):
    """
    Raised when a configuration value is out of range or inconsistent.

    A failed replacement leaves the previous configuration in effect.

    Example
    -------
        SchedulerConfig(min_ease_factor=3.0, max_ease_factor=2.5)
        # Raises: ConfigValidationError("min_ease_factor must be below max_ease_factor")
    """

    error_code = "RF-CFG-001"
    why_it_happened = (
        "A scheduler parameter is outside its allowed range or conflicts with "
        "another parameter"
    )
    how_to_fix = [
        "Read the current values with GET /v1/config",
        "Keep min_ease_factor < initial_ease < max_ease_factor",
        "Keep passing_grade <= easy_grade and min_interval < max_interval",
    ]


# ============================================================================
# Batch Exceptions
# ============================================================================


class BatchItemError(RecallForgeError):
    """
    Unexpected failure of a single entry inside a batch run.

    The coordinator wraps any non-RecallForgeError raised while scheduling an
    entry in this error and records it for that entry only.
    """

    error_code = "RF-BAT-001"
    why_it_happened = "One entry in the batch could not be scheduled"
    how_to_fix = [
        "Inspect the per-item error message in the batch results",
        "Resubmit only the failed entries after fixing them",
    ]

    def __init__(self, message: str, *, index: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.index = index
