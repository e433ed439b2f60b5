"""
Error taxonomy for the Burner engine.

Every failure surfaced to a caller carries a stable category and a stable
machine-readable code. Transient LLM faults are not exceptions: they travel
as tagged attempt results (see ``burner.llm.retry``) until the retry budget
is spent, at which point they surface as ``MaxRetriesExceeded``.
"""

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Stable failure categories."""

    VALIDATION = "validation"
    STRUCTURAL = "structural"
    AUTHORIZATION = "authorization"
    MAX_RETRIES_EXCEEDED = "max_retries_exceeded"
    CONFIGURATION = "configuration"


class BurnerError(Exception):
    """Base class for all engine failures."""

    category: ErrorCategory = ErrorCategory.STRUCTURAL
    default_code: str = "error"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for request handlers."""
        return {"category": self.category.value, "code": self.code, "message": self.message}


class ValidationFailure(BurnerError):
    """Input is out of contract."""

    category = ErrorCategory.VALIDATION
    default_code = "invalid_input"

    def __init__(self, message: str, code: str | None = None, errors: list[str] | None = None):
        self.errors = errors or []
        super().__init__(message, code)


class StructuralFailure(BurnerError):
    """Operation called from an illegal state, or on malformed structures."""

    category = ErrorCategory.STRUCTURAL
    default_code = "invalid_status"


class ConflictError(StructuralFailure):
    """A conditional write lost a race against a concurrent writer."""

    default_code = "conflict"


class AuthorizationFailure(BurnerError):
    """The caller may not act on the requested entity."""

    category = ErrorCategory.AUTHORIZATION
    default_code = "forbidden"


class NotFoundError(AuthorizationFailure):
    """The entity does not exist. Treated as a denial by the core."""

    default_code = "not_found"


class MaxRetriesExceeded(BurnerError):
    """All LLM attempts failed. Carries the last tagged failure."""

    category = ErrorCategory.MAX_RETRIES_EXCEEDED
    default_code = "MAX_RETRIES_EXCEEDED"

    def __init__(self, message: str, attempts: int, last_failure: Any = None):
        self.attempts = attempts
        self.last_failure = last_failure
        super().__init__(message)


class ConfigurationError(BurnerError):
    """Required configuration is missing or unusable."""

    category = ErrorCategory.CONFIGURATION
    default_code = "configuration_error"
