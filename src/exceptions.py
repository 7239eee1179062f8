"""
Custom exception classes for the content-publishing engine.

This module defines all exception classes used throughout the codebase.
Stage-local recoverable conditions never reach this hierarchy; anything that
crosses a precondition or retry-budget boundary is raised as one of these
classes and propagates up to the orchestrator.

Hierarchy:
    Exception
    +-- AgentBaseError (base for all pipeline errors)
    |   +-- PreconditionError
    |   +-- StructuredOutputError
    |   +-- ImageNormalizationError
    |   +-- ImageGenerationError
    |   +-- ScrapeError
    |   +-- NotificationError
    |   +-- PipelineRunError
    |   +-- PlatformError
    |       +-- PlatformAuthError
    |       |   +-- PlatformChallengeError
    |       +-- PlatformRateLimitError
    |       |   +-- LinkedInRateLimitError
    |       +-- PlatformUploadError
    |       +-- InstagramError
    |       +-- LinkedInAPIError
    |       +-- TwitterAPIError
    +-- ConfigurationError
    +-- RetryExhaustedError
    +-- NodeTimeoutError
"""

from typing import Optional


# =============================================================================
# ERROR CATEGORIES (user-visible failure classes)
# =============================================================================

CATEGORY_PRECONDITION = "precondition"
CATEGORY_AUTHENTICATION = "authentication"
CATEGORY_RATE_LIMIT = "rate_limit"
CATEGORY_UNKNOWN = "unknown"


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class AgentBaseError(Exception):
    """Base exception for all pipeline errors."""

    category: str = CATEGORY_UNKNOWN


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    category: str = CATEGORY_PRECONDITION


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


class NodeTimeoutError(Exception):
    """Raised when a pipeline node exceeds its timeout.

    Attributes:
        node_name: Name of the node that timed out.
        timeout: Timeout duration in seconds.
    """

    def __init__(self, node_name: str, timeout: int):
        self.node_name = node_name
        self.timeout = timeout
        super().__init__(f"Node '{node_name}' timed out after {timeout} seconds")


# =============================================================================
# PIPELINE EXCEPTIONS
# =============================================================================


class PreconditionError(AgentBaseError):
    """Raised when a stage is invoked without the inputs it requires.

    Never retried: an empty report or a missing image indicates a logic or
    input error, not a transient fault.
    """

    category = CATEGORY_PRECONDITION


class StructuredOutputError(AgentBaseError):
    """Raised when LLM output cannot be coerced into the requested schema."""

    pass


class ImageNormalizationError(AgentBaseError):
    """Raised when an image cannot be read or re-encoded."""

    category = CATEGORY_PRECONDITION


class ImageGenerationError(AgentBaseError):
    """Raised when image generation fails."""

    pass


class ScrapeError(AgentBaseError):
    """Raised when a page cannot be fetched or yields no text.

    Distinct from empty content: callers drop the URL on this error.
    """

    pass


class NotificationError(AgentBaseError):
    """Raised when the notification sink is misconfigured."""

    pass


class PipelineRunError(AgentBaseError):
    """Raised by ``run_pipeline(raise_on_failure=True)`` for a failed run.

    Attributes:
        stage: Name of the stage that failed.
        category: Error category of the underlying failure.
    """

    def __init__(self, message: str, stage: str, category: str = CATEGORY_UNKNOWN):
        self.stage = stage
        self.category = category
        super().__init__(f"Pipeline failed at stage '{stage}': {message}")


# =============================================================================
# PLATFORM EXCEPTIONS
# =============================================================================


class PlatformError(AgentBaseError):
    """Base class for social-platform adapter errors.

    Attributes:
        platform: Platform identifier (``"instagram"``, ``"twitter"``, ...).
    """

    def __init__(self, message: str, platform: Optional[str] = None):
        self.platform = platform
        super().__init__(message)


class PlatformAuthError(PlatformError):
    """Raised when a platform rejects the supplied credentials."""

    category = CATEGORY_AUTHENTICATION


class PlatformChallengeError(PlatformAuthError):
    """Raised when a platform demands out-of-band verification.

    Fatal and non-retryable: an operator has to complete the challenge
    manually before the account can post again.
    """

    pass


class PlatformRateLimitError(PlatformError):
    """Raised when a platform rate limit is hit."""

    category = CATEGORY_RATE_LIMIT


class PlatformUploadError(PlatformError):
    """Raised when an upload fails after the attempt budget is spent."""

    pass


class InstagramError(PlatformError):
    """Raised for Instagram failures that fit no narrower class."""

    pass


class LinkedInAPIError(PlatformError):
    """Raised for general LinkedIn API errors."""

    pass


class LinkedInRateLimitError(PlatformRateLimitError):
    """Raised when LinkedIn rate limit is hit."""

    pass


class TwitterAPIError(PlatformError):
    """Raised for general Twitter/X API errors."""

    pass


# =============================================================================
# HELPERS
# =============================================================================


def error_category(exc: BaseException) -> str:
    """Return the user-visible category for *exc*.

    ``RetryExhaustedError`` is classified by the error that exhausted it.
    """
    if isinstance(exc, RetryExhaustedError):
        return error_category(exc.last_error)
    return getattr(exc, "category", CATEGORY_UNKNOWN)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Categories
    "CATEGORY_PRECONDITION",
    "CATEGORY_AUTHENTICATION",
    "CATEGORY_RATE_LIMIT",
    "CATEGORY_UNKNOWN",
    # Base
    "AgentBaseError",
    # Core
    "ConfigurationError",
    "RetryExhaustedError",
    "NodeTimeoutError",
    # Pipeline
    "PreconditionError",
    "StructuredOutputError",
    "ImageNormalizationError",
    "ImageGenerationError",
    "ScrapeError",
    "NotificationError",
    "PipelineRunError",
    # Platforms
    "PlatformError",
    "PlatformAuthError",
    "PlatformChallengeError",
    "PlatformRateLimitError",
    "PlatformUploadError",
    "InstagramError",
    "LinkedInAPIError",
    "LinkedInRateLimitError",
    "TwitterAPIError",
    # Helpers
    "error_category",
]
