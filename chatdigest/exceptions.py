"""
Exception hierarchy for Chat Digest Bot.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ErrorContext:
    """Structured context attached to an error for logging."""
    chat_id: Optional[int] = None
    job_id: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in (
            ("chat_id", self.chat_id),
            ("job_id", self.job_id),
            ("operation", self.operation),
        ) if v is not None}
        data.update(self.extra)
        return data


def create_error_context(**kwargs) -> ErrorContext:
    """Build an ErrorContext, routing unknown keys into ``extra``."""
    known = {key: kwargs.pop(key) for key in ("chat_id", "job_id", "operation") if key in kwargs}
    return ErrorContext(extra=kwargs, **known)


class DigestBotException(Exception):
    """Base exception for all bot errors."""

    def __init__(self,
                 message: str,
                 error_code: str = "UNKNOWN_ERROR",
                 context: Optional[ErrorContext] = None,
                 user_message: Optional[str] = None,
                 retryable: bool = False,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or ErrorContext()
        self.user_message = user_message or "Something went wrong while processing your request."
        self.retryable = retryable
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": repr(self.cause) if self.cause else None,
        }

    def to_log_string(self) -> str:
        """Format the error as a single log line."""
        parts = [f"[{self.error_code}] {self.message}"]
        context = self.context.to_dict()
        if context:
            parts.append(f"context={context}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        return " ".join(parts)


class ConfigurationError(DigestBotException):
    """Raised when configuration is missing or invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "CONFIGURATION_ERROR")
        if config_key:
            kwargs.setdefault("context", create_error_context(config_key=config_key))
        super().__init__(message, **kwargs)
        self.config_key = config_key


class SummarizationError(DigestBotException):
    """Raised when a summary could not be produced."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "SUMMARIZATION_ERROR")
        kwargs.setdefault("user_message", "The summary could not be generated. Please try again later.")
        super().__init__(message, **kwargs)


class ProviderError(SummarizationError):
    """A single AI backend failed to answer."""

    def __init__(self, backend: str, message: str, status_code: Optional[int] = None,
                 api_error_code: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "PROVIDER_ERROR")
        kwargs.setdefault("retryable", True)
        super().__init__(f"{backend}: {message}", **kwargs)
        self.backend = backend
        self.status_code = status_code
        self.api_error_code = api_error_code


class AllProvidersFailedError(SummarizationError):
    """Both the primary and the secondary backend failed."""

    def __init__(self, primary_error: BaseException, secondary_error: BaseException):
        super().__init__(
            f"All AI providers failed. primary: {primary_error}; secondary: {secondary_error}",
            error_code="ALL_PROVIDERS_FAILED",
            retryable=True,
            cause=secondary_error,
        )
        self.primary_error = primary_error
        self.secondary_error = secondary_error


class MessageTooLongError(SummarizationError):
    """The transcript is larger than the backends accept."""

    def __init__(self, text_length: int, max_length: int, message_count: int):
        self.text_length = text_length
        self.max_length = max_length
        self.message_count = message_count
        self.suggested_count = max(1, int(message_count * max_length / text_length)) if text_length else message_count
        super().__init__(
            f"Transcript too long: {text_length} characters (limit {max_length})",
            error_code="MESSAGE_TOO_LONG",
            context=create_error_context(
                text_length=text_length,
                max_length=max_length,
                suggested_count=self.suggested_count,
            ),
            user_message=f"Too many messages to summarize at once. Try /summary {self.suggested_count}.",
        )


def handle_unexpected_error(error: BaseException) -> DigestBotException:
    """Wrap an arbitrary exception into a DigestBotException."""
    if isinstance(error, DigestBotException):
        return error
    return DigestBotException(
        message=f"Unexpected error: {error}",
        error_code="UNEXPECTED_ERROR",
        cause=error,
    )
