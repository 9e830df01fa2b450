"""Error hierarchy for the job queue and its effect executors.

This module defines the exception hierarchy for queue-level errors:
- QueueError: Base for all errors raised by the queue core
- ValidationError: Bad enqueue input, rejected synchronously
- NotFoundError: A job's subject (or its prerequisites) no longer exists
- ServiceError: Base for effect executor failures, classified by `retryable`
- ExternalServiceError: Retryable executor failures (network, rate limits, 5xx)
- PermanentServiceError: Non-retryable executor failures (auth, bad request)
- ExhaustedRetriesError: A job has consumed all of its attempts
"""


class QueueError(Exception):
    """Base exception for all queue errors."""

    retryable: bool = False


class ValidationError(QueueError):
    """Enqueue request rejected before any job row is written.

    Examples:
    - Empty subject list
    - Non-positive max_attempts
    """

    pass


class NotFoundError(QueueError):
    """The entity a job acts upon is gone. Never retried."""

    pass


class ExhaustedRetriesError(QueueError):
    """All attempts consumed - terminal failure."""

    pass


class ServiceError(QueueError):
    """Base exception for effect executor errors."""

    pass


class ExternalServiceError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (5xx)
    """

    retryable = True


class ExecutorTimeoutError(ExternalServiceError):
    """Executor call exceeded the per-job timeout."""

    pass


class PermanentServiceError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Invalid request parameters (400)
    - Unparseable responses
    - Missing configuration
    """

    retryable = False


# OpenRouter-specific errors
class LLMRateLimitError(ExternalServiceError):
    """Rate limit exceeded (429)."""

    pass


class LLMResponseError(PermanentServiceError):
    """Model returned no content or content that is not the expected JSON."""

    pass


# WordPress-specific errors
class WordPressAuthError(PermanentServiceError):
    """Plugin rejected the API key (401, 403)."""

    pass


class WordPressConfigError(PermanentServiceError):
    """Project has no WordPress URL or API key configured."""

    pass


def is_retryable(exc: BaseException) -> bool:
    """Classify an executor exception.

    Queue errors carry their own classification. Anything else escaping an
    executor (a bug, an unexpected library error) is treated as transient:
    retries are bounded by max_attempts, so the job still terminates.
    """
    if isinstance(exc, QueueError):
        return exc.retryable
    return True
