"""
Recovery of summary documents from raw provider output.

Providers are asked for a JSON object with six fields but regularly
return fenced, truncated or otherwise malformed text. ``ResponseRecovery``
walks a fixed chain of increasingly lenient parsers and always produces a
deliverable ``SummaryDocument``.
"""

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.summary import SummaryDocument

logger = logging.getLogger(__name__)

FIELD_NAMES = (
    'formatted_summary',
    'main_topics',
    'discussion_points',
    'activity_analysis',
    'special_events',
    'other_notes',
)
LIST_FIELDS = ('main_topics', 'discussion_points')
TRUNCATED_FINISH_REASONS = ('length', 'max_tokens')

SECTION_HEADERS = {
    'zh': {
        'main_topics': '*📌 主要话题概述*',
        'discussion_points': '*💬 重要讨论点*',
        'activity_analysis': '*👥 群组活跃度分析*',
        'special_events': '*⭐ 特殊事件或决定*',
        'other_notes': '*🖊 其他备注*',
    },
    'zh-tw': {
        'main_topics': '*📌 主要話題概述*',
        'discussion_points': '*💬 重要討論點*',
        'activity_analysis': '*👥 群組活躍度分析*',
        'special_events': '*⭐ 特殊事件或決定*',
        'other_notes': '*🖊 其他備註*',
    },
    'en': {
        'main_topics': '*📌 Main Topics Overview*',
        'discussion_points': '*💬 Important Discussion Points*',
        'activity_analysis': '*👥 Group Activity Analysis*',
        'special_events': '*⭐ Special Events or Decisions*',
        'other_notes': '*🖊 Other Notes*',
    },
    'ja': {
        'main_topics': '*📌 主なトピック*',
        'discussion_points': '*💬 重要な議論*',
        'activity_analysis': '*👥 グループ活動分析*',
        'special_events': '*⭐ 特別なイベントや決定*',
        'other_notes': '*🖊 その他のメモ*',
    },
    'ru': {
        'main_topics': '*📌 Основные темы*',
        'discussion_points': '*💬 Важные обсуждения*',
        'activity_analysis': '*👥 Активность группы*',
        'special_events': '*⭐ Особые события и решения*',
        'other_notes': '*🖊 Прочие заметки*',
    },
}

TRUNCATION_PLACEHOLDERS = {
    'zh': {
        'formatted_summary': '*📌 内容总结*\n\n响应被截断，无法生成完整总结。请重试获取完整内容。',
        'main_topics': ['响应截断'],
        'discussion_points': ['内容不完整'],
        'activity_analysis': '响应被截断，无法分析',
        'special_events': '无',
        'other_notes': '请重新尝试获取完整总结',
    },
    'en': {
        'formatted_summary': '*📌 Summary*\n\nThe response was truncated, so the summary is incomplete. Please retry.',
        'main_topics': ['Response truncated'],
        'discussion_points': ['Content incomplete'],
        'activity_analysis': 'Response truncated, analysis unavailable',
        'special_events': 'None',
        'other_notes': 'Please retry to get the complete summary',
    },
}

APOLOGY_BODIES = {
    'zh': (
        '❌ 总结格式解析失败\n\n正在处理您的请求时遇到了技术问题。\n'
        '请稍后重试，或尝试减少消息数量。'
    ),
    'en': (
        '❌ The summary could not be read\n\nSomething went wrong while processing your request.\n'
        'Please try again later or summarize fewer messages.'
    ),
}

SUMMARY_MARKERS = ('*', '📌', '💬', '👥', '⭐', '🖊')
MIN_PLAUSIBLE_LENGTH = 30

_FORMATTED_SUMMARY_PATTERNS = [
    re.compile(r'"formatted_summary"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL),
    re.compile(r'"formatted_summary"\s*:\s*"([^"]*)', re.DOTALL),
    re.compile(r'formatted_summary[^:]*:\s*"?([^"]*)', re.IGNORECASE),
]
_QUOTED_ITEM_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')


def _language_table(table: Dict[str, Any], language: str) -> Any:
    return table.get(language) or table.get((language or '').split('-')[0]) or table['en']


def render_sections(document: SummaryDocument, language: str = 'en') -> str:
    """Rebuild a body from the structured fields with fixed section headers."""
    headers = _language_table(SECTION_HEADERS, language)
    sections = []

    if document.main_topics:
        items = '\n'.join(f'• {topic}' for topic in document.main_topics)
        sections.append(f"{headers['main_topics']}\n{items}")
    if document.discussion_points:
        items = '\n'.join(f'• {point}' for point in document.discussion_points)
        sections.append(f"{headers['discussion_points']}\n{items}")
    if document.activity_analysis:
        sections.append(f"{headers['activity_analysis']}\n{document.activity_analysis}")
    if document.special_events:
        sections.append(f"{headers['special_events']}\n{document.special_events}")
    if document.other_notes:
        sections.append(f"{headers['other_notes']}\n{document.other_notes}")

    return '\n\n'.join(sections)


def apology_body(language: str = 'en') -> str:
    return _language_table(APOLOGY_BODIES, language)


class ResponseRecovery:
    """Turns raw provider text into a ``SummaryDocument``.

    Tiers, in order:

    1. strict JSON parse
    2. parse after cleanup (fences, outer braces, stray commas, control characters)
    3. truncation repair for output cut off mid-stream
    4. pattern extraction of ``formatted_summary``, then a fixed apology
    """

    def __init__(self):
        self.tiers: List[Tuple[str, Callable[[str, str], Optional[SummaryDocument]]]] = [
            ('strict', self._parse_strict),
            ('cleanup', self._parse_cleaned),
            ('truncation_repair', self._repair_truncated),
            ('extraction', self._extract_fallback),
        ]

    def normalize(self,
                  raw_text: Any,
                  finish_reason: Optional[str] = None,
                  language: str = 'en') -> SummaryDocument:
        """Normalize raw provider output. Never raises.

        Args:
            raw_text: Text returned by the provider (any type is tolerated)
            finish_reason: Provider's finish indicator, used for diagnostics
            language: Language tag for section headers and placeholders

        Returns:
            A document whose ``body`` is never empty
        """
        try:
            text = self._coerce_text(raw_text)
            if finish_reason in TRUNCATED_FINISH_REASONS:
                logger.warning(
                    f"Provider output hit the token limit (finish_reason={finish_reason}, "
                    f"length={len(text)})"
                )

            for tier_name, tier in self.tiers:
                try:
                    document = tier(text, language)
                except Exception as e:
                    logger.debug(f"Recovery tier {tier_name} failed: {e}")
                    continue

                if document is not None:
                    if document.recovery_tier == 'strict':
                        document.recovery_tier = tier_name
                    document.language = language
                    if tier_name != 'strict':
                        logger.info(
                            f"Summary recovered via {tier_name} "
                            f"(recovered={document.recovered}, length={len(document.body)})"
                        )
                    return document
        except Exception as e:
            logger.error(f"Unexpected error while normalizing provider output: {e}")

        return self._apology(language)

    # Tiers

    def _parse_strict(self, text: str, language: str) -> Optional[SummaryDocument]:
        return self._from_structured(json.loads(text), language)

    def _parse_cleaned(self, text: str, language: str) -> Optional[SummaryDocument]:
        cleaned = self._clean_json_text(text)
        if cleaned is None:
            return None
        return self._from_structured(json.loads(cleaned), language)

    def _repair_truncated(self, text: str, language: str) -> Optional[SummaryDocument]:
        start = text.find('{')
        if start == -1 or self._extract_balanced_braces(text, start) is not None:
            return None

        fragment = text[start:]
        if self._count_unescaped_quotes(fragment) % 2 == 1:
            fragment += '"'

        extracted = {}
        for name in FIELD_NAMES:
            value = self._extract_field(fragment, name)
            if value:
                extracted[name] = value

        if not extracted:
            return None

        placeholders = _language_table(TRUNCATION_PLACEHOLDERS, language)
        missing = [name for name in FIELD_NAMES if name not in extracted]
        logger.info(
            f"Repaired truncated response: {len(extracted)} fields recovered, "
            f"{len(missing)} placeholders ({', '.join(missing) or 'none'})"
        )

        fields = {name: extracted.get(name, placeholders[name]) for name in FIELD_NAMES}
        fields['main_topics'] = list(fields['main_topics'])
        fields['discussion_points'] = list(fields['discussion_points'])
        return SummaryDocument(body=fields['formatted_summary'], recovered=True, **fields)

    def _extract_fallback(self, text: str, language: str) -> SummaryDocument:
        for pattern in _FORMATTED_SUMMARY_PATTERNS:
            match = pattern.search(text)
            if not match or len(match.group(1).strip()) <= 20:
                continue
            content = self._unescape_loose(match.group(1)).strip()
            if self._is_plausible(content):
                return SummaryDocument(body=content, formatted_summary=content, recovered=True)

        partial = self._rebuild_partial(text, language)
        if partial is not None:
            return partial

        stripped = text.strip()
        if '{' not in stripped and any(marker in stripped for marker in SUMMARY_MARKERS):
            # Provider ignored the JSON format and answered with plain markup
            return SummaryDocument(body=stripped, formatted_summary=stripped, recovered=True)

        logger.warning(f"No summary content could be recovered (length={len(text)})")
        return self._apology(language)

    # Helpers

    def _from_structured(self, data: Any, language: str) -> Optional[SummaryDocument]:
        if not isinstance(data, dict) or not any(data.get(name) for name in FIELD_NAMES):
            return None

        document = SummaryDocument(
            body='',
            formatted_summary=self._ensure_text(data.get('formatted_summary')),
            main_topics=self._ensure_list(data.get('main_topics')),
            discussion_points=self._ensure_list(data.get('discussion_points')),
            activity_analysis=self._ensure_text(data.get('activity_analysis')),
            special_events=self._ensure_text(data.get('special_events')),
            other_notes=self._ensure_text(data.get('other_notes')),
        )

        if document.has_structured_fields:
            document.body = render_sections(document, language)
        else:
            document.body = document.formatted_summary
        return document if document.body.strip() else None

    def _rebuild_partial(self, text: str, language: str) -> Optional[SummaryDocument]:
        extracted = {}
        for name in FIELD_NAMES[1:]:
            value = self._extract_field(text, name)
            if value:
                extracted[name] = value
        if len(extracted) < 2:
            return None

        document = SummaryDocument(body='', recovered=True, **extracted)
        document.body = render_sections(document, language)
        return document

    def _apology(self, language: str) -> SummaryDocument:
        return SummaryDocument(
            body=apology_body(language),
            recovered=True,
            recovery_tier='apology',
            language=language,
        )

    def _extract_field(self, text: str, name: str) -> Any:
        """Pull one field out of possibly broken JSON text."""
        if name in LIST_FIELDS:
            match = re.search(
                rf'"{name}"\s*:\s*\[((?:[^\]"\\]|"(?:[^"\\]|\\.)*")*)\]', text, re.DOTALL
            ) or re.search(rf'"{name}"\s*:\s*\[(.*)$', text, re.DOTALL)
            if match:
                items = [self._unescape_json_string(item).strip()
                         for item in _QUOTED_ITEM_RE.findall(match.group(1))]
                return [item for item in items if item]

        match = re.search(rf'"{name}"\s*:\s*"((?:[^"\\]|\\.)*)"', text, re.DOTALL)
        if match:
            value = self._unescape_json_string(match.group(1)).strip()
            return [value] if name in LIST_FIELDS and value else value
        return None

    @staticmethod
    def _clean_json_text(text: str) -> Optional[str]:
        cleaned = text.strip()
        cleaned = re.sub(r'^```(?:json)?\s*', '', cleaned)
        cleaned = re.sub(r'\s*```$', '', cleaned)

        first = cleaned.find('{')
        last = cleaned.rfind('}')
        if first == -1 or last <= first:
            return None
        cleaned = cleaned[first:last + 1]

        cleaned = re.sub(r',(\s*[}\]])', r'\1', cleaned)
        cleaned = re.sub(r'([{\[])\s*,', r'\1', cleaned)
        cleaned = re.sub(r'[\r\n\t]', ' ', cleaned)
        return re.sub(r'\s+', ' ', cleaned).strip()

    @staticmethod
    def _extract_balanced_braces(content: str, start_pos: int) -> Optional[str]:
        """Return the balanced object starting at ``start_pos`` or None if it never closes."""
        brace_count = 0
        in_string = False
        escape_next = False

        for i in range(start_pos, len(content)):
            char = content[i]

            if escape_next:
                escape_next = False
                continue
            if char == '\\':
                escape_next = True
                continue
            if char == '"':
                in_string = not in_string
                continue

            if not in_string:
                if char == '{':
                    brace_count += 1
                elif char == '}':
                    brace_count -= 1
                    if brace_count == 0:
                        return content[start_pos:i + 1]

        return None

    @staticmethod
    def _count_unescaped_quotes(text: str) -> int:
        count = 0
        escape_next = False
        for char in text:
            if escape_next:
                escape_next = False
            elif char == '\\':
                escape_next = True
            elif char == '"':
                count += 1
        return count

    @staticmethod
    def _unescape_json_string(value: str) -> str:
        try:
            return json.loads(f'"{value}"', strict=False)
        except (json.JSONDecodeError, ValueError):
            return ResponseRecovery._unescape_loose(value)

    @staticmethod
    def _unescape_loose(value: str) -> str:
        return (value.replace('\\"', '"')
                .replace('\\n', '\n')
                .replace('\\t', ' ')
                .replace('\\\\', '\\'))

    @staticmethod
    def _is_plausible(content: str) -> bool:
        return (any(marker in content for marker in SUMMARY_MARKERS)
                or len(content) > MIN_PLAUSIBLE_LENGTH)

    @staticmethod
    def _coerce_text(raw_text: Any) -> str:
        if raw_text is None:
            return ''
        if isinstance(raw_text, bytes):
            return raw_text.decode('utf-8', errors='replace')
        return raw_text if isinstance(raw_text, str) else str(raw_text)

    @staticmethod
    def _ensure_list(value: Any) -> List[str]:
        """Ensure value is a list of non-empty strings."""
        if isinstance(value, list):
            return [str(item).strip() for item in value if str(item).strip()]
        if isinstance(value, str):
            return [value.strip()] if value.strip() else []
        return [str(value)] if value else []

    @staticmethod
    def _ensure_text(value: Any) -> str:
        if value is None:
            return ''
        if isinstance(value, list):
            return '\n'.join(f'• {item}' for item in value if str(item).strip())
        return str(value).strip()
