"""
Summarization workflow run by the job queue.
"""

import logging
import time
from typing import Optional

from ..config.constants import (
    MAX_TRANSCRIPT_LENGTH, MAX_INPUT_TOKENS, DEFAULT_SUMMARY_MAX_TOKENS,
    DEFAULT_SUMMARY_TEMPERATURE, DEFAULT_SUMMARY_TOP_P
)
from ..exceptions import MessageTooLongError, SummarizationError, create_error_context
from ..models.job import JobPayload
from ..models.summary import SummaryDocument, TimeRange
from .gateway import ProviderGateway
from .language import detect_language
from .prompt_builder import PromptBuilder
from .response_parser import ResponseRecovery

logger = logging.getLogger(__name__)


class SummarizationEngine:
    """Turns a job payload into a normalized summary document."""

    def __init__(self,
                 gateway: ProviderGateway,
                 prompt_builder: Optional[PromptBuilder] = None,
                 recovery: Optional[ResponseRecovery] = None,
                 max_transcript_length: int = MAX_TRANSCRIPT_LENGTH,
                 max_input_tokens: int = MAX_INPUT_TOKENS,
                 max_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS,
                 temperature: float = DEFAULT_SUMMARY_TEMPERATURE,
                 top_p: float = DEFAULT_SUMMARY_TOP_P):
        self.gateway = gateway
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.recovery = recovery or ResponseRecovery()
        self.max_transcript_length = max_transcript_length
        self.max_input_tokens = max_input_tokens
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p

    async def __call__(self, payload: JobPayload) -> SummaryDocument:
        return await self.summarize(payload)

    async def summarize(self, payload: JobPayload) -> SummaryDocument:
        """Summarize the messages of one job.

        Args:
            payload: Job payload with messages and chat statistics

        Returns:
            SummaryDocument with metadata attached

        Raises:
            MessageTooLongError: If the transcript exceeds the input limit
            SummarizationError: If there is nothing to summarize or the provider answered empty
            AllProvidersFailedError: If both providers fail
        """
        if not payload.messages:
            raise SummarizationError(
                "No messages to summarize",
                error_code="NO_MESSAGES",
                context=create_error_context(chat_id=payload.chat_id, operation="summarize"),
                user_message="There are no messages to summarize yet.",
            )

        started = time.monotonic()
        language = detect_language(message.text for message in payload.messages)

        transcript = self.prompt_builder.build_transcript(payload.messages)
        if len(transcript) > self.max_transcript_length:
            raise MessageTooLongError(
                text_length=len(transcript),
                max_length=self.max_transcript_length,
                message_count=len(payload.messages),
            )

        prompt = self.prompt_builder.build_prompt(
            payload.messages,
            payload.stats,
            payload.top_participants,
            language=language,
            max_input_tokens=self.max_input_tokens,
        )
        included = payload.messages[-prompt.included_count:] if prompt.included_count else payload.messages
        if len(included) < len(payload.messages):
            logger.info(
                f"Input token limit keeps the newest {len(included)} of {len(payload.messages)} "
                f"messages for chat {payload.chat_id}"
            )
        logger.info(
            f"Summarizing {len(included)} messages for chat {payload.chat_id} "
            f"(language={language}, ~{prompt.estimated_tokens} tokens)"
        )

        result = await self.gateway.complete(
            prompt.to_messages(),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            response_format=prompt.response_format,
        )

        if not result.content or not result.content.strip():
            raise SummarizationError(
                f"{result.backend} provider returned an empty response",
                error_code="EMPTY_RESPONSE",
                context=create_error_context(chat_id=payload.chat_id, finish_reason=result.finish_reason),
                retryable=True,
            )

        document = self.recovery.normalize(result.content, result.finish_reason, language)

        document.messages_analyzed = len(included)
        document.unique_users = len({message.user_id for message in included})
        document.time_range = TimeRange(
            earliest=included[0].timestamp,
            latest=included[-1].timestamp,
        )
        document.top_participants = list(payload.top_participants)
        document.usage = dict(result.usage)
        document.provider = result.backend
        document.language = language

        logger.info(
            f"Summary for chat {payload.chat_id} ready in {time.monotonic() - started:.2f}s "
            f"via {result.backend} (tier={document.recovery_tier}, recovered={document.recovered})"
        )
        return document
