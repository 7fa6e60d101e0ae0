"""
Classification of workflow exceptions into job failures.
"""

import asyncio
from typing import Optional

from ..exceptions import (
    AllProvidersFailedError, DigestBotException, MessageTooLongError, ProviderError
)
from ..models.job import FailureKind, JobFailure

CONTENT_POLICY_PHRASES = (
    "content management policy",
    "content_filter",
    "content filter",
    "responsible ai",
    "safety system",
    "filtered due to",
)

NETWORK_ERROR_CODES = ("network", "timeout")


def is_content_policy_text(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in CONTENT_POLICY_PHRASES)


def _kind_of(error: BaseException) -> FailureKind:
    if isinstance(error, MessageTooLongError):
        return FailureKind.MESSAGE_TOO_LONG

    if isinstance(error, AllProvidersFailedError):
        kinds = {_kind_of(error.primary_error), _kind_of(error.secondary_error)}
        if FailureKind.CONTENT_POLICY in kinds:
            return FailureKind.CONTENT_POLICY
        if kinds == {FailureKind.NETWORK}:
            return FailureKind.NETWORK
        return FailureKind.PROVIDER

    if isinstance(error, ProviderError):
        if error.api_error_code == "content_filter" or (
                error.status_code == 400 and is_content_policy_text(str(error))):
            return FailureKind.CONTENT_POLICY
        if error.api_error_code in NETWORK_ERROR_CODES:
            return FailureKind.NETWORK
        return FailureKind.PROVIDER

    if isinstance(error, (ConnectionError, asyncio.TimeoutError, TimeoutError)):
        return FailureKind.NETWORK

    return FailureKind.UNKNOWN


def classify_failure(error: BaseException) -> JobFailure:
    """Map an exception raised by the workflow to a ``JobFailure``."""
    details = {"error_type": type(error).__name__}
    if isinstance(error, DigestBotException):
        details["error_code"] = error.error_code
        details["user_message"] = error.user_message
    if isinstance(error, MessageTooLongError):
        details.update(
            text_length=error.text_length,
            max_length=error.max_length,
            suggested_count=error.suggested_count,
        )

    return JobFailure(kind=_kind_of(error), message=str(error), details=details)
