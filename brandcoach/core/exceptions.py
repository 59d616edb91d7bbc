"""
Custom exception hierarchy for the coaching engine.

All application exceptions inherit from CoachingSystemError.
"""

from typing import Optional


class CoachingSystemError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(CoachingSystemError):
    """Invalid or missing configuration."""

    pass


class ValidationError(CoachingSystemError):
    """Input validation failed."""

    pass


class UnknownCategoryError(ValidationError):
    """Category is not part of the coaching catalogue."""

    pass


# =============================================================================
# LLM / Inference Errors
# =============================================================================


class LLMError(CoachingSystemError):
    """Base for inference-related errors."""

    pass


class TransportError(LLMError):
    """The inference call itself failed to complete."""

    pass


class LLMTimeoutError(TransportError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(TransportError):
    """LLM rate limit exceeded."""

    pass


class MalformedResponseError(LLMError):
    """Response could not be parsed, or parsed into an invalid shape."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(CoachingSystemError):
    """Session save or insight write failed."""

    pass


# =============================================================================
# Session Errors
# =============================================================================


class SessionError(CoachingSystemError):
    """Session-related error."""

    pass


class TurnInProgressError(SessionError):
    """A turn is already awaiting the inference service."""

    pass


class InvalidPhaseError(SessionError):
    """Operation not allowed in the session's current phase."""

    pass


class NoPendingTurnError(SessionError):
    """Retry requested but no failed turn is cached."""

    pass


class TurnFailedError(SessionError):
    """A turn could not be completed; it can be retried verbatim.

    Attributes:
        reason: "transport" or "malformed_response"
        retryable: Always True, the failed request is cached for retry()
    """

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason
        self.retryable = True
