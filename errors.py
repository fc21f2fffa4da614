"""Error taxonomy for the Journey Circle workflow.

Raised inside the core and converted to typed ``ErrorInfo`` results by the session.
"""

from typing import List, Optional

from contracts import ErrorKind, ErrorInfo, RuleViolation


class JourneyCircleError(Exception):
    """Base class for all workflow errors."""

    kind: ErrorKind

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=str(self))


class ValidationError(JourneyCircleError):
    """A step rule was violated; the user can correct the input and retry."""

    kind = ErrorKind.VALIDATION

    def __init__(self, violations: List[RuleViolation], message: Optional[str] = None):
        self.violations = list(violations)
        super().__init__(message or "; ".join(v.message for v in self.violations) or "Validation failed")

    def to_info(self) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=str(self), violations=self.violations)


class IllegalTransition(JourneyCircleError):
    """Navigation that a correct UI should never request."""

    kind = ErrorKind.ILLEGAL_TRANSITION


class ExternalServiceError(JourneyCircleError):
    """Generation or persistence failure; retry or regenerate."""

    kind = ErrorKind.EXTERNAL_SERVICE

    def __init__(self, message: str, service: str = "generation"):
        self.service = service
        super().__init__(message)


class IntegrityViolation(JourneyCircleError):
    """A mutation would break an aggregate invariant."""

    kind = ErrorKind.INTEGRITY
