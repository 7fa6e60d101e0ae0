"""
Delivery of finished summaries to the originating chat.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from ..config.settings import DeliveryConfig
from ..markup.sanitizer import repair, strip
from ..models.job import JobEvent, JobEventKind
from ..models.summary import SummaryDocument
from .errors import DeliveryErrorKind, classify_send_error, error_description, retry_after_seconds
from .formatter import SINGLE_MESSAGE_MODES, RenderMode, SummaryFormatter, split_segments
from .permissions import ChatPermissionService
from .transport import MessageTransport

logger = logging.getLogger(__name__)


@dataclass
class DeliveryResult:
    """Outcome of delivering one summary."""
    chat_id: int
    success: bool
    mode: Optional[str] = None
    segments: int = 0
    skipped: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "chat_id": self.chat_id,
            "success": self.success,
            "mode": self.mode,
            "segments": self.segments,
            "skipped": self.skipped,
            "error": self.error,
        }


class DeliveryManager:
    """Posts summaries by editing the provisional "processing" message.

    Long summaries are split into several messages. When the chat rejects
    the markup, progressively safer representations are tried. Network
    errors are retried with exponential backoff, and a chat that refuses
    the bot's messages is flagged and skipped until the flag expires.
    Delivery never raises.
    """

    def __init__(self,
                 transport: MessageTransport,
                 permissions: ChatPermissionService,
                 formatter: Optional[SummaryFormatter] = None,
                 config: Optional[DeliveryConfig] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.transport = transport
        self.permissions = permissions
        self.config = config or DeliveryConfig()
        self.formatter = formatter or SummaryFormatter(truncated_length=self.config.truncated_length)
        self._sleep = sleep

    async def run(self, events: AsyncIterator[JobEvent]) -> None:
        """Consume job events until cancelled."""
        logger.info("Delivery consumer started")
        async for event in events:
            try:
                await self.handle_event(event)
            except Exception as e:
                logger.exception(f"Unhandled error delivering job {event.job_id}: {e}")

    async def handle_event(self, event: JobEvent) -> Optional[DeliveryResult]:
        if event.kind is JobEventKind.STARTED:
            logger.debug(f"Job {event.job_id} started for chat {event.chat_id}")
            return None
        if event.kind is JobEventKind.COMPLETED:
            return await self.deliver(event.chat_id, event.anchor_message_id, event.document)
        return await self.deliver_failure(event)

    async def deliver(self,
                      chat_id: int,
                      anchor_message_id: int,
                      document: SummaryDocument) -> DeliveryResult:
        """Deliver a summary document to a chat.

        Args:
            chat_id: Destination chat
            anchor_message_id: Provisional message to replace
            document: Normalized summary

        Returns:
            DeliveryResult describing what was sent
        """
        if self.permissions.is_send_restricted(chat_id):
            logger.warning(f"Chat {chat_id} is send-restricted, skipping summary delivery")
            return DeliveryResult(chat_id=chat_id, success=False, skipped=True)

        try:
            full_text = self.formatter.render(document, RenderMode.NATIVE)
            if len(full_text) > self.config.segment_threshold:
                logger.info(f"Summary for chat {chat_id} is {len(full_text)} characters, sending in segments")
                return await self._send_segmented(chat_id, anchor_message_id, document)
            return await self._send_single(chat_id, anchor_message_id, document)
        except Exception as e:
            await self._handle_delivery_error(chat_id, anchor_message_id, document, e)
            return DeliveryResult(chat_id=chat_id, success=False, error=error_description(e))

    async def deliver_failure(self, event: JobEvent) -> DeliveryResult:
        """Replace the provisional message with a notice about a failed job."""
        chat_id = event.chat_id
        if self.permissions.is_send_restricted(chat_id):
            logger.warning(f"Chat {chat_id} is send-restricted, skipping failure notice")
            return DeliveryResult(chat_id=chat_id, success=False, skipped=True)

        failure = event.failure
        kind_value = failure.kind.value if failure else "unknown"
        message = (failure.message if failure else "unknown error")[:300]
        suggested = failure.details.get("suggested_count") if failure else None

        notice = self.formatter.failure_notice(kind_value, message, suggested_count=suggested)
        delivered = await self._send_notice(chat_id, event.anchor_message_id, notice)
        return DeliveryResult(chat_id=chat_id, success=delivered, mode=RenderMode.PLAIN.value)

    async def _send_single(self,
                           chat_id: int,
                           anchor_message_id: int,
                           document: SummaryDocument) -> DeliveryResult:
        last_error: Optional[Exception] = None
        for mode in SINGLE_MESSAGE_MODES:
            text = self.formatter.render(document, mode)
            try:
                await self._edit(chat_id, anchor_message_id, text, markup=mode.uses_markup)
            except Exception as e:
                kind = classify_send_error(e)
                if not kind.escalates:
                    raise
                logger.warning(
                    f"Chat {chat_id} rejected the {mode.value} summary ({kind.value}): "
                    f"{error_description(e)}"
                )
                last_error = e
                continue

            logger.info(f"Summary delivered to chat {chat_id} as {mode.value}")
            return DeliveryResult(chat_id=chat_id, success=True, mode=mode.value, segments=1)

        raise last_error

    async def _send_segmented(self,
                              chat_id: int,
                              anchor_message_id: int,
                              document: SummaryDocument) -> DeliveryResult:
        main = self.formatter.render_main(document, RenderMode.NATIVE)
        stats = self.formatter.render_stats(document, markup=True)
        segments = split_segments(main, self.config.segment_limit)
        total = len(segments)

        try:
            for index, segment in enumerate(segments):
                text = segment
                if total > 1:
                    text += self.formatter.continuation_marker(index, total)
                if index == 0:
                    await self._post_segment(chat_id, text, anchor_message_id)
                else:
                    await self._sleep(self.config.pacing_delay)
                    await self._post_segment(chat_id, text)

            await self._sleep(self.config.pacing_delay)
            await self._post_segment(chat_id, stats)
        except Exception as e:
            if classify_send_error(e) is DeliveryErrorKind.PERMISSION:
                raise
            logger.error(
                f"Segmented delivery to chat {chat_id} failed ({error_description(e)}), "
                f"falling back to a truncated message"
            )
            truncated = self.formatter.render(document, RenderMode.TRUNCATED_PLAIN)
            await self._edit(chat_id, anchor_message_id, truncated, markup=False)
            return DeliveryResult(chat_id=chat_id, success=True,
                                  mode=RenderMode.TRUNCATED_PLAIN.value, segments=1)

        logger.info(f"Summary delivered to chat {chat_id} in {total} segments")
        return DeliveryResult(chat_id=chat_id, success=True,
                              mode=RenderMode.NATIVE.value, segments=total)

    async def _post_segment(self, chat_id: int, text: str, message_id: Optional[int] = None) -> None:
        """Post one segment, retrying it repaired and then as plain text on markup errors."""
        variants = [(text, True), (repair(text), True), (strip(text), False)]
        for position, (variant, markup) in enumerate(variants):
            try:
                if message_id is not None:
                    await self._edit(chat_id, message_id, variant, markup=markup)
                else:
                    await self._send(chat_id, variant, markup=markup)
                return
            except Exception as e:
                if not classify_send_error(e).escalates or position == len(variants) - 1:
                    raise
                logger.warning(f"Segment rejected by chat {chat_id}, retrying safer: {error_description(e)}")

    async def _handle_delivery_error(self,
                                     chat_id: int,
                                     anchor_message_id: int,
                                     document: SummaryDocument,
                                     error: Exception) -> None:
        kind = classify_send_error(error)
        description = error_description(error)

        if kind is DeliveryErrorKind.PERMISSION:
            self.permissions.mark_send_restricted(chat_id, description, ttl=self.config.restriction_ttl)
            logger.warning(f"Summary delivery to chat {chat_id} failed: missing send rights ({description})")
            return

        if kind is DeliveryErrorKind.NETWORK:
            logger.error(f"Network error delivering summary to chat {chat_id}: {description}")
            notice = self.formatter.network_notice(document.messages_analyzed)
        elif kind is DeliveryErrorKind.CONTENT_POLICY:
            logger.warning(f"Content policy error delivering summary to chat {chat_id}: {description}")
            notice = self.formatter.content_policy_notice()
        else:
            logger.error(f"Summary delivery to chat {chat_id} failed ({kind.value}): {description}")
            notice = self.formatter.delivery_fallback_notice(document.messages_analyzed)

        await self._send_notice(chat_id, anchor_message_id, notice)

    async def _send_notice(self, chat_id: int, message_id: int, text: str) -> bool:
        try:
            await self._edit(chat_id, message_id, text, markup=False)
            return True
        except Exception as e:
            description = error_description(e)
            if classify_send_error(e) is DeliveryErrorKind.PERMISSION:
                self.permissions.mark_send_restricted(chat_id, description, ttl=self.config.restriction_ttl)
                logger.warning(f"Notice to chat {chat_id} failed: missing send rights ({description})")
            else:
                logger.error(f"Notice to chat {chat_id} failed as well: {description}")
            return False

    async def _edit(self, chat_id: int, message_id: int, text: str, markup: bool) -> None:
        await self._with_network_retry(
            lambda: self.transport.edit_text(chat_id, message_id, text, markup=markup),
            operation_name="edit_text",
        )

    async def _send(self, chat_id: int, text: str, markup: bool) -> None:
        await self._with_network_retry(
            lambda: self.transport.send_text(chat_id, text, markup=markup),
            operation_name="send_text",
        )

    async def _with_network_retry(self, operation: Callable[[], Awaitable[Any]], operation_name: str = "") -> Any:
        """Run a transport call, retrying network errors with exponential backoff.

        A flood-control error waits at least as long as Telegram asked.
        """
        max_retries = self.config.max_retries
        for attempt in range(max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                kind = classify_send_error(e)
                if kind is DeliveryErrorKind.NOT_MODIFIED:
                    logger.debug(f"{operation_name}: message not modified, treating as delivered")
                    return None
                if kind is not DeliveryErrorKind.NETWORK or attempt == max_retries:
                    raise

                delay = self.config.retry_delay * (self.config.backoff_multiplier ** attempt)
                requested = retry_after_seconds(e)
                if requested is not None and requested > delay:
                    delay = requested
                logger.warning(
                    f"{operation_name} failed with a network error, retrying in {delay:.1f}s "
                    f"({attempt + 1}/{max_retries}): {error_description(e)}"
                )
                await self._sleep(delay)
