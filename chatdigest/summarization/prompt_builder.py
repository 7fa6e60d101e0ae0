"""
Prompt generation for chat summarization.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models.base import BaseModel
from ..models.message import ArchivedMessage, ChatStats, TopParticipant
from ..markup.sanitizer import make_safe_user_name


@dataclass
class SummarizationPrompt(BaseModel):
    """A complete summarization prompt."""
    system_prompt: str
    user_prompt: str
    response_format: Dict[str, Any]
    estimated_tokens: int
    included_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_messages(self) -> List[Dict[str, str]]:
        """Chat-completion style message list."""
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]


class PromptBuilder:
    """Builds prompts asking for the six-field JSON summary."""

    # Mixed CJK/Latin chat text: roughly 2 characters per token
    CHARS_PER_TOKEN = 2

    LANGUAGE_INSTRUCTIONS = {
        'zh': '使用简体中文回复，注重自然的中文表达习惯',
        'zh-tw': '使用繁體中文回复，符合繁體中文的表達習慣',
        'en': 'Reply in English with clear, natural expression suitable for international users',
        'ja': '日本語で返答してください',
        'ko': '한국어로 답변해주세요',
        'ru': 'Отвечайте на русском языке',
        'ar': 'أجب باللغة العربية',
        'th': 'ตอบเป็นภาษาไทย',
        'de': 'Antworten Sie auf Deutsch',
        'es': 'Responde en español',
        'fr': 'Répondez en français',
    }

    USER_PROMPT_LABELS = {
        'zh': {
            'title': '请总结以下Telegram群组聊天记录：',
            'stats': '群组统计信息',
            'messages': '分析消息数',
            'users': '参与用户数',
            'time_range': '时间范围',
            'active_users': '活跃用户',
            'records': '聊天记录',
            'instruction': '请基于以上聊天记录生成结构化总结，识别主要话题、重要讨论点和群组互动情况。',
        },
        'en': {
            'title': 'Please summarize the following Telegram group chat:',
            'stats': 'Group Statistics',
            'messages': 'Messages analyzed',
            'users': 'Users',
            'time_range': 'Time range',
            'active_users': 'Active users',
            'records': 'Chat Records',
            'instruction': 'Generate a structured summary identifying main topics, key discussions, '
                           'and group interaction patterns.',
        },
    }

    FIELD_DESCRIPTIONS = {
        'formatted_summary': 'Complete formatted summary using correct Telegram Markdown format',
        'main_topics': 'List of main topics',
        'discussion_points': 'List of important discussion points',
        'activity_analysis': 'Group activity analysis',
        'special_events': 'Special events or decisions',
        'other_notes': 'Other notes',
    }

    def build_prompt(self,
                     messages: List[ArchivedMessage],
                     stats: Optional[ChatStats],
                     top_participants: List[TopParticipant],
                     language: str = 'en',
                     max_input_tokens: Optional[int] = None) -> SummarizationPrompt:
        """Build the full prompt for a batch of messages.

        Args:
            messages: Messages in chronological order
            stats: Archive statistics for the chat, if known
            top_participants: Most active users
            language: Target language tag
            max_input_tokens: Keep only the newest messages whose transcript fits

        Returns:
            SummarizationPrompt ready to send to a provider. ``included_count``
            is the number of trailing messages that made it into the transcript.
        """
        if max_input_tokens:
            messages = self.fit_to_token_limit(messages, max_input_tokens)

        transcript = self.build_transcript(messages)
        if max_input_tokens and self.estimate_tokens(transcript) > max_input_tokens:
            # A single oversized message: keep its tail
            transcript = transcript[-self._char_budget(max_input_tokens):]

        system_prompt = self.build_system_prompt(language)
        user_prompt = self.build_user_prompt(transcript, messages, stats, top_participants, language)

        return SummarizationPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            response_format=self.build_response_format(),
            estimated_tokens=self.estimate_tokens(system_prompt + user_prompt),
            included_count=len(messages),
            metadata={
                "language": language,
                "message_count": len(messages),
                "transcript_length": len(transcript),
            },
        )

    def build_transcript(self, messages: List[ArchivedMessage]) -> str:
        """One line per message: ``name: text``, author labels made safe."""
        return '\n'.join(self._transcript_line(message) for message in messages)

    def _transcript_line(self, message: ArchivedMessage) -> str:
        name = make_safe_user_name(message.display_name) or f"user{message.user_id}"
        text = (message.text or '').replace('\n', ' ').strip()
        return f"{name}: {text}"

    def build_system_prompt(self, language: str = 'en') -> str:
        instruction = self.LANGUAGE_INSTRUCTIONS.get(language, self.LANGUAGE_INSTRUCTIONS['en'])
        return f"""You are an assistant that analyzes Telegram group chats and writes structured summaries.

Requirements:
1. {instruction}
2. Be objective and accurate; identify the main topics and key discussions
3. Describe how members interact while respecting their privacy
4. Keep the summary concise and under 4000 characters
5. User names may contain unusual characters; mention people naturally

Output ONE complete, valid JSON object with all six fields:
formatted_summary, main_topics, discussion_points, activity_analysis, special_events, other_notes.

formatted_summary uses Telegram Markdown: *bold*, _italic_, `code`, \\n for line breaks,
with these bold section titles:
*📌 Main topics* *💬 Important discussion points* *👥 Group activity* *⭐ Special events or decisions* *🖊 Other notes*"""

    def build_user_prompt(self,
                          transcript: str,
                          messages: List[ArchivedMessage],
                          stats: Optional[ChatStats],
                          top_participants: List[TopParticipant],
                          language: str = 'en') -> str:
        labels = self.USER_PROMPT_LABELS.get(language, self.USER_PROMPT_LABELS['en'])

        if messages:
            unique_users = len({m.user_id for m in messages})
        else:
            unique_users = stats.unique_users if stats else 0
        earliest = messages[0].timestamp if messages else None
        latest = messages[-1].timestamp if messages else None
        active = ', '.join(
            f"{make_safe_user_name(p.display_name)} ({p.message_count})" for p in top_participants
        ) or '-'

        return (
            f"{labels['title']}\n\n"
            f"{labels['stats']}\n"
            f"• {labels['messages']}: {len(messages)}\n"
            f"• {labels['users']}: {unique_users}\n"
            f"• {labels['time_range']}: {self._format_time(earliest)} - {self._format_time(latest)}\n"
            f"• {labels['active_users']}: {active}\n\n"
            f"{labels['records']}\n{transcript}\n\n"
            f"{labels['instruction']}"
        )

    def build_response_format(self) -> Dict[str, Any]:
        """JSON-schema response format named ``telegram_summary``."""
        properties = {}
        for name, description in self.FIELD_DESCRIPTIONS.items():
            if name in ('main_topics', 'discussion_points'):
                properties[name] = {"type": "array", "items": {"type": "string"}, "description": description}
            else:
                properties[name] = {"type": "string", "description": description}

        return {
            "type": "json_schema",
            "json_schema": {
                "name": "telegram_summary",
                "strict": True,
                "schema": {
                    "type": "object",
                    "properties": properties,
                    "required": list(self.FIELD_DESCRIPTIONS),
                    "additionalProperties": False,
                },
            },
        }

    def estimate_tokens(self, text: str) -> int:
        return len(text) // self.CHARS_PER_TOKEN

    def fit_to_token_limit(self, messages: List[ArchivedMessage], max_tokens: int) -> List[ArchivedMessage]:
        """Keep the newest messages whose transcript lines fit within ``max_tokens``.

        The newest message is always kept.
        """
        if self.estimate_tokens(self.build_transcript(messages)) <= max_tokens:
            return list(messages)

        budget = self._char_budget(max_tokens)
        used = 0
        kept = 0
        for message in reversed(messages):
            used += len(self._transcript_line(message)) + 1
            if used > budget and kept:
                break
            kept += 1
        return list(messages[-kept:])

    def _char_budget(self, max_tokens: int) -> int:
        return int(max_tokens * self.CHARS_PER_TOKEN * 0.9)

    @staticmethod
    def _format_time(value: Optional[datetime]) -> str:
        return value.strftime('%Y-%m-%d %H:%M') if value else '-'
