"""
Rendering of summary documents and user-facing notices.
"""

from enum import Enum
from typing import List, Optional

from ..config.constants import COMMAND_COOLDOWN_SECONDS, TRUNCATED_MESSAGE_LENGTH
from ..markup.sanitizer import escape, repair, smart_escape, strip
from ..models.summary import SummaryDocument

BREAK_POINTS = ('\n\n', '\n', '。\n', '。', '. ', ' ')
MIN_SEGMENT_RATIO = 0.7
TRUNCATION_NOTE = '\n\n...(content too long, message was truncated)'


class RenderMode(Enum):
    """Representations tried in order when the chat rejects a message."""
    NATIVE = "native"
    ESCAPED = "escaped"
    SANITIZED = "sanitized"
    PLAIN = "plain"
    TRUNCATED_PLAIN = "truncated_plain"

    @property
    def uses_markup(self) -> bool:
        return self not in (RenderMode.PLAIN, RenderMode.TRUNCATED_PLAIN)


SINGLE_MESSAGE_MODES = [
    RenderMode.NATIVE,
    RenderMode.ESCAPED,
    RenderMode.SANITIZED,
    RenderMode.PLAIN,
    RenderMode.TRUNCATED_PLAIN,
]


def split_segments(text: str, limit: int) -> List[str]:
    """Split text into segments of at most ``limit`` characters.

    Each cut goes after the strongest boundary found in the window
    (paragraph, line, sentence, word), but only if that boundary lies past
    70% of the window; otherwise the window is cut hard. Joining the
    segments gives back the original text.
    """
    if limit <= 0:
        raise ValueError("Segment limit must be positive")
    if len(text) <= limit:
        return [text]

    segments = []
    pos = 0
    while pos < len(text):
        end = pos + limit
        if end >= len(text):
            segments.append(text[pos:])
            break

        window = text[pos:end]
        cut = end
        for boundary in BREAK_POINTS:
            index = window.rfind(boundary)
            if index > limit * MIN_SEGMENT_RATIO:
                cut = pos + index + len(boundary)
                break

        segments.append(text[pos:cut])
        pos = cut

    return segments


class SummaryFormatter:
    """Builds the text sent to the chat for a summary document."""

    HEADER = '📋 *Chat Summary*'
    PLAIN_HEADER = '📋 Chat Summary'

    def __init__(self, cooldown_seconds: int = COMMAND_COOLDOWN_SECONDS,
                 truncated_length: int = TRUNCATED_MESSAGE_LENGTH):
        self.cooldown_seconds = cooldown_seconds
        self.truncated_length = truncated_length

    def render(self, document: SummaryDocument, mode: RenderMode) -> str:
        """Render the full single-message text in the given representation."""
        if mode is RenderMode.TRUNCATED_PLAIN:
            return self.truncate(self.render(document, RenderMode.PLAIN))
        if mode is RenderMode.PLAIN:
            return f"{self.render_main(document, mode)}\n\n{self.render_stats(document, markup=False)}"
        return f"{self.render_main(document, mode)}\n\n{self.render_stats(document, markup=True)}"

    def render_main(self, document: SummaryDocument, mode: RenderMode = RenderMode.NATIVE) -> str:
        """Header plus body, without the statistics footer."""
        body = document.body
        if mode is RenderMode.ESCAPED:
            body = smart_escape(body)
        elif mode is RenderMode.SANITIZED:
            body = repair(body)
        elif not mode.uses_markup:
            return f"{self.PLAIN_HEADER}\n\n{strip(body)}"
        return f"{self.HEADER}\n\n{body}"

    def render_stats(self, document: SummaryDocument, markup: bool = True) -> str:
        title = '📊 *Statistics*' if markup else '📊 Statistics'
        lines = [
            title,
            f"• Messages analyzed: {document.messages_analyzed}",
            f"• Participants: {document.unique_users}",
        ]

        time_range = document.time_range
        if time_range and time_range.earliest and time_range.latest:
            lines.append(
                f"• Time range: {time_range.earliest:%Y-%m-%d} - {time_range.latest:%Y-%m-%d}"
            )

        if document.top_participants:
            names = [p.display_name or f"user{p.user_id}" for p in document.top_participants[:3]]
            if markup:
                names = [escape(name) for name in names]
            lines.append(f"• Most active: {', '.join(names)}")

        text = '\n'.join(lines)
        if document.from_cache:
            text += '\n\n💾 *Served from cache*' if markup else '\n\n💾 Served from cache'
        minutes = max(1, self.cooldown_seconds // 60)
        text += f"\n\n⏰ Next summary available after a {minutes}-minute cooldown"
        return text

    def truncate(self, text: str) -> str:
        if len(text) <= self.truncated_length:
            return text
        return text[:self.truncated_length] + TRUNCATION_NOTE

    @staticmethod
    def continuation_marker(index: int, total: int) -> str:
        if index == 0:
            return f"\n\n📝 _Summary continues... (1/{total})_"
        return f"\n\n📝 _Part {index + 1}/{total}_"

    # Notices, always sent as plain text

    @staticmethod
    def content_policy_notice() -> str:
        return (
            "🤖 Content notice\n\n"
            "The AI service declined to summarize this conversation because it may contain "
            "content that violates its usage policy.\n\n"
            "🔄 You can:\n"
            "• wait for more messages and try again\n"
            "• summarize fewer messages, e.g. /summary 50"
        )

    @staticmethod
    def network_notice(messages_analyzed: int) -> str:
        return (
            "📋 The summary is ready\n\n"
            "⚠️ The connection was unstable and it could not be posted.\n\n"
            f"🔄 Use /summary {messages_analyzed} in a moment to get it again."
        )

    @staticmethod
    def delivery_fallback_notice(messages_analyzed: int) -> str:
        return (
            "📋 The summary is ready\n\n"
            "There was a formatting problem while posting it. "
            f"Use /summary {messages_analyzed} to get it again."
        )

    @staticmethod
    def failure_notice(kind_value: str, message: str, suggested_count: Optional[int] = None) -> str:
        """Notice for a failed job, chosen by failure kind value."""
        if kind_value == "content_policy":
            return SummaryFormatter.content_policy_notice()
        if kind_value == "message_too_long":
            count = suggested_count or 300
            return (
                "⚠️ Too many messages to summarize at once\n\n"
                "💡 Summarize fewer messages or a shorter time span.\n\n"
                f"🔄 Try: /summary {count}"
            )
        if kind_value == "network":
            return (
                "⚠️ Network error\n\n"
                "The AI service could not be reached. Please try again later.\n\n"
                "🔄 /summary"
            )
        return (
            "❌ Summary failed\n\n"
            f"Sorry, something went wrong while generating the summary:\n{message}\n\n"
            "Please try again later."
        )
