"""
Tests for the summarization workflow and language detection.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from chatdigest.exceptions import AllProvidersFailedError, MessageTooLongError, ProviderError, SummarizationError
from chatdigest.models import ArchivedMessage, JobPayload, TopParticipant
from chatdigest.summarization import ProviderCallResult, PromptBuilder, SummarizationEngine, detect_language


START = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

RESPONSE = {
    "formatted_summary": "*📌 Main topics*\nThe team planned the next release.",
    "main_topics": ["Release"],
    "discussion_points": ["Friday deadline"],
    "activity_analysis": "Alice led the discussion.",
    "special_events": "None",
    "other_notes": "None",
}


class FakeGateway:
    """Stands in for ProviderGateway and records the requests."""

    def __init__(self, content: str = json.dumps(RESPONSE), finish_reason: Optional[str] = "stop",
                 error: Optional[Exception] = None):
        self.content = content
        self.finish_reason = finish_reason
        self.error = error
        self.calls: List[dict] = []

    async def complete(self, messages, max_tokens=None, temperature=None, top_p=None, response_format=None):
        self.calls.append({
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "response_format": response_format,
        })
        if self.error is not None:
            raise self.error
        return ProviderCallResult(
            content=self.content,
            finish_reason=self.finish_reason,
            model="gemini-test",
            usage={"total_tokens": 42},
            backend="primary",
        )


def make_messages(texts, authors=(1, 2, 1)) -> List[ArchivedMessage]:
    return [
        ArchivedMessage(
            chat_id=-100,
            message_id=index + 1,
            user_id=authors[index % len(authors)],
            display_name=f"user_{authors[index % len(authors)]}",
            text=text,
            timestamp=START + timedelta(minutes=index),
        )
        for index, text in enumerate(texts)
    ]


def make_payload(messages: List[ArchivedMessage]) -> JobPayload:
    return JobPayload(
        chat_id=-100,
        requester_id=1,
        anchor_message_id=500,
        messages=messages,
        requested_count=len(messages),
        top_participants=[TopParticipant(user_id=1, display_name="Alice", message_count=2)],
    )


class TestSummarizationEngine:
    """Tests for SummarizationEngine.summarize()."""

    @pytest.mark.asyncio
    async def test_document_carries_metadata(self):
        gateway = FakeGateway()
        engine = SummarizationEngine(gateway, max_tokens=2000, temperature=0.3)
        messages = make_messages(["We ship on Friday", "Sounds good to me", "I will prepare notes"])

        document = await engine.summarize(make_payload(messages))

        assert document.messages_analyzed == 3
        assert document.unique_users == 2
        assert document.time_range.earliest == messages[0].timestamp
        assert document.time_range.latest == messages[-1].timestamp
        assert document.top_participants[0].display_name == "Alice"
        assert document.provider == "primary"
        assert document.usage == {"total_tokens": 42}
        assert document.language == "en"
        assert document.main_topics == ["Release"]

    @pytest.mark.asyncio
    async def test_metadata_covers_only_messages_within_input_limit(self):
        gateway = FakeGateway()
        engine = SummarizationEngine(gateway, max_input_tokens=60)
        messages = make_messages([f"{index} " + "a" * 38 for index in range(6)])

        document = await engine.summarize(make_payload(messages))

        assert document.messages_analyzed == 2
        assert document.unique_users == 2
        assert document.time_range.earliest == messages[4].timestamp
        assert document.time_range.latest == messages[5].timestamp

        user_prompt = gateway.calls[0]["messages"][1]["content"]
        assert "Messages analyzed: 2" in user_prompt
        assert "user-2: 4 " in user_prompt
        assert "user-1: 3 " not in user_prompt

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        gateway = FakeGateway()
        engine = SummarizationEngine(gateway, max_tokens=2000, temperature=0.3)

        await engine(make_payload(make_messages(["hello there everyone"])))

        call = gateway.calls[0]
        assert call["max_tokens"] == 2000
        assert call["temperature"] == 0.3
        assert call["messages"][0]["role"] == "system"
        assert call["response_format"]["type"] == "json_schema"

    @pytest.mark.asyncio
    async def test_transcript_over_limit(self):
        gateway = FakeGateway()
        engine = SummarizationEngine(gateway, max_transcript_length=100)
        messages = make_messages(["x" * 60, "y" * 60])

        with pytest.raises(MessageTooLongError) as exc_info:
            await engine.summarize(make_payload(messages))

        assert exc_info.value.message_count == 2
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_no_messages(self):
        engine = SummarizationEngine(FakeGateway())

        with pytest.raises(SummarizationError) as exc_info:
            await engine.summarize(make_payload([]))

        assert exc_info.value.error_code == "NO_MESSAGES"

    @pytest.mark.asyncio
    async def test_empty_provider_answer(self):
        engine = SummarizationEngine(FakeGateway(content="   "))

        with pytest.raises(SummarizationError) as exc_info:
            await engine.summarize(make_payload(make_messages(["hello"])))

        assert exc_info.value.error_code == "EMPTY_RESPONSE"

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self):
        error = AllProvidersFailedError(ProviderError("gemini", "down"), ProviderError("claude", "down"))
        engine = SummarizationEngine(FakeGateway(error=error))

        with pytest.raises(AllProvidersFailedError):
            await engine.summarize(make_payload(make_messages(["hello"])))

    @pytest.mark.asyncio
    async def test_truncated_answer_is_recovered(self):
        cut = json.dumps(RESPONSE, ensure_ascii=False)[:90]
        engine = SummarizationEngine(FakeGateway(content=cut, finish_reason="length"))

        document = await engine.summarize(make_payload(make_messages(["hello there"])))

        assert document.recovered is True
        assert document.body


class TestPromptBuilder:
    """Tests for PromptBuilder."""

    def test_transcript_uses_safe_names(self):
        messages = make_messages(["line one\nline two"], authors=(9,))
        transcript = PromptBuilder().build_transcript(messages)

        assert transcript == "user-9: line one line two"

    def test_prompt_messages_follow_language(self):
        prompt = PromptBuilder().build_prompt(make_messages(["你好"]), None, [], language="zh")
        messages = prompt.to_messages()

        assert [m["role"] for m in messages] == ["system", "user"]
        assert "请总结以下Telegram群组聊天记录" in messages[1]["content"]

    def test_fit_keeps_newest_messages(self):
        messages = make_messages([f"{index} " + "a" * 38 for index in range(6)])
        builder = PromptBuilder()

        assert builder.fit_to_token_limit(messages, 1000) == messages
        assert builder.fit_to_token_limit(messages, 60) == messages[-2:]

    def test_oversized_single_message_is_trimmed(self):
        messages = make_messages(["b" * 500])

        prompt = PromptBuilder().build_prompt(messages, None, [], max_input_tokens=50)

        assert prompt.included_count == 1
        assert prompt.metadata["transcript_length"] == 90


class TestDetectLanguage:
    """Tests for detect_language()."""

    @pytest.mark.parametrize("texts, expected", [
        (["Let's meet tomorrow at noon", "Sure, see you there"], "en"),
        (["我们今天讨论了项目计划", "好的"], "zh"),
        (["臺灣的時間", "繁體中文"], "zh-tw"),
        (["こんにちは、元気ですか"], "ja"),
        (["안녕하세요 여러분"], "ko"),
        (["Привет, как дела?"], "ru"),
        ([], "en"),
        (["", "   "], "en"),
    ])
    def test_detection(self, texts, expected):
        assert detect_language(texts) == expected
