"""
Classification of Telegram send errors.
"""

import asyncio
from datetime import timedelta
from enum import Enum
from typing import Optional

from telegram.error import BadRequest, Forbidden, NetworkError, RetryAfter, TelegramError, TimedOut

from ..jobs.failures import is_content_policy_text

SEND_FORBIDDEN_PHRASES = (
    "not enough rights to send text messages to the chat",
    "not enough rights to send messages",
    "have no rights to send a message",
    "chat write forbidden",
    "chat_write_forbidden",
)


class DeliveryErrorKind(Enum):
    """What went wrong with a send, and therefore what to do next."""
    MARKUP_PARSE = "markup_parse"
    MESSAGE_TOO_LONG = "message_too_long"
    NOT_MODIFIED = "not_modified"
    PERMISSION = "permission"
    NETWORK = "network"
    CONTENT_POLICY = "content_policy"
    OTHER = "other"

    @property
    def escalates(self) -> bool:
        """Rendering rejections move on to the next representation."""
        return self in (DeliveryErrorKind.MARKUP_PARSE, DeliveryErrorKind.MESSAGE_TOO_LONG)


def error_description(error: BaseException) -> str:
    if isinstance(error, TelegramError):
        return error.message
    return str(error)


def retry_after_seconds(error: BaseException) -> Optional[float]:
    """The flood-control wait Telegram asked for, or None for other errors."""
    if not isinstance(error, RetryAfter):
        return None
    retry_after = error.retry_after
    if isinstance(retry_after, timedelta):
        return retry_after.total_seconds()
    return float(retry_after)


def is_send_forbidden(error: BaseException) -> bool:
    """True if the bot lost the right to post in the chat."""
    if isinstance(error, Forbidden):
        return True
    if isinstance(error, BadRequest):
        description = error_description(error).lower()
        return any(phrase in description for phrase in SEND_FORBIDDEN_PHRASES)
    return False


def classify_send_error(error: BaseException) -> DeliveryErrorKind:
    """Map an exception raised by the transport to a ``DeliveryErrorKind``."""
    description = error_description(error).lower()

    if is_send_forbidden(error):
        return DeliveryErrorKind.PERMISSION

    # BadRequest subclasses NetworkError, so it must be checked first
    if isinstance(error, BadRequest):
        if "can't parse entities" in description or "can't find end of" in description:
            return DeliveryErrorKind.MARKUP_PARSE
        if "message is too long" in description or "message_too_long" in description:
            return DeliveryErrorKind.MESSAGE_TOO_LONG
        if "message is not modified" in description:
            return DeliveryErrorKind.NOT_MODIFIED
        if is_content_policy_text(description):
            return DeliveryErrorKind.CONTENT_POLICY
        return DeliveryErrorKind.OTHER

    if isinstance(error, (RetryAfter, TimedOut, NetworkError)):
        return DeliveryErrorKind.NETWORK
    if isinstance(error, (ConnectionError, asyncio.TimeoutError, TimeoutError)):
        return DeliveryErrorKind.NETWORK

    if is_content_policy_text(description):
        return DeliveryErrorKind.CONTENT_POLICY
    return DeliveryErrorKind.OTHER
