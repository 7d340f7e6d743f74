"""Typed error kinds shared by the generation pipeline, the worksheet
lifecycle and the HTTP layer.

Callers branch on the exception class (or ``retryable``), never on the
message text. ``user_message`` is safe to show to end users: it never
carries provider details or credentials.
"""
from __future__ import annotations


class GenerationError(Exception):
    """Base class for anything that can go wrong while generating questions."""

    retryable: bool = True
    status_code: int = 500
    user_message: str = "Failed to generate questions. Please try again later."

    def __init__(self, detail: str = "", *, cause: Exception | None = None):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message
        self.cause = cause


class ConfigurationError(GenerationError):
    """Missing/invalid credential or unavailable model. Retrying cannot help."""

    retryable = False
    status_code = 503
    user_message = (
        "The question service is not configured correctly. "
        "Please contact support."
    )


class RateLimitedError(GenerationError):
    status_code = 429
    user_message = "Service is busy. Please try again in a few moments."


class MalformedResponseError(GenerationError):
    """The provider answered, but the payload is not a usable question list."""


class GenericProviderError(GenerationError):
    pass


class NoQuestionsGeneratedError(GenerationError):
    retryable = False
    status_code = 400
    user_message = "No questions could be generated for this worksheet."


class GenerationCancelledError(GenerationError):
    retryable = False
    status_code = 499
    user_message = "Worksheet generation was cancelled."


# ---------------------------------------------------------------------------
# Worksheet lifecycle
# ---------------------------------------------------------------------------

class InvalidStateTransition(Exception):
    def __init__(self, operation: str, status: str):
        super().__init__(f"Cannot {operation} a worksheet that is {status}")
        self.operation = operation
        self.status = status


class InvalidAnswersError(ValueError):
    pass


class ConcurrentUpdateError(Exception):
    """The stored worksheet changed between read and write."""


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------

class EmailDeliveryError(Exception):
    pass


def http_status_for(exc: Exception) -> int:
    """Map an error kind to the HTTP status the API reports for it."""
    if isinstance(exc, GenerationError):
        return exc.status_code
    if isinstance(exc, (InvalidStateTransition, InvalidAnswersError)):
        return 400
    if isinstance(exc, ConcurrentUpdateError):
        return 409
    return 500
