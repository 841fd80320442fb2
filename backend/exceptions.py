"""Exceptions raised by the audit pipeline.

Severity by stage:
  - Extractor: never raises, failures resolve to a sentinel PageSummary.
  - ModelInvocationError: one model call failed. Retried or skipped inside
    the scorer, never seen by callers.
  - AIUnavailableError: every candidate model is exhausted. This is the only
    scorer failure that reaches the request handler.
"""

from typing import Optional

QUOTA_EXCEEDED_MESSAGE = (
    "AI Quota Exceeded. You have hit your daily limit for the API key. "
    "Please try again later or upgrade your API key."
)
MODELS_UNAVAILABLE_MESSAGE = (
    "AI gateway is currently congested. All fallback models reported high latency or failure."
)


class AuditError(Exception):
    """Base exception for the audit backend."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ModelInvocationError(AuditError):
    """A single call to a candidate model failed."""

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.retryable = retryable
        self.status_code = status_code


class MalformedResponseError(ModelInvocationError):
    """The model answered, but no JSON object could be recovered from the text."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message, retryable=False, details={"response": raw_text[:2000]})
        self.raw_text = raw_text


class AIUnavailableError(AuditError):
    """All candidate models were tried and none produced an analysis."""

    def __init__(
        self,
        message: str = MODELS_UNAVAILABLE_MESSAGE,
        attempts: Optional[list] = None,
        last_error: Optional[BaseException] = None,
    ):
        super().__init__(message, details={"last_error": str(last_error) if last_error else None})
        self.attempts = attempts or []
        self.last_error = last_error


class QuotaExceededError(AIUnavailableError):
    """Exhausted, and the last failure was a quota / rate-limit rejection."""

    def __init__(self, attempts: Optional[list] = None, last_error: Optional[BaseException] = None):
        super().__init__(QUOTA_EXCEEDED_MESSAGE, attempts=attempts, last_error=last_error)


class AllModelsUnavailableError(AIUnavailableError):
    """Exhausted for any reason other than quota."""

    def __init__(self, attempts: Optional[list] = None, last_error: Optional[BaseException] = None):
        super().__init__(MODELS_UNAVAILABLE_MESSAGE, attempts=attempts, last_error=last_error)
