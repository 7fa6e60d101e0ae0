"""
Helpers for Telegram's legacy Markdown dialect.

Supported markup: ``*bold*``, ``_italic_``, ```code```, ``[text](url)``.
The reserved characters are ``* _ ` [`` plus the backslash used to
escape them. All functions are pure and accept any input; non-string
values are returned unchanged.
"""

import re
from typing import Any, List, Tuple

RESERVED_CHARS = ('*', '_', '`', '[')

_RESERVED_RE = re.compile(r'([*_`\[])')
_LINK_RE = re.compile(r'(?<!\\)\[([^\]\n]*)\]\(([^)\n]*)\)')
_LINK_AT_RE = re.compile(r'\[[^\]\n]*\]\([^)\n]*\)')
_TITLE_RE = re.compile(r'\*([^*\n]+)\*')

_USER_NAME_REPLACEMENTS = {
    '_': '-',
    '*': '·',
    '`': "'",
    '[': '(',
    ']': ')',
}


def escape(text: Any) -> Any:
    """Escape every reserved character so the text renders literally."""
    if not isinstance(text, str):
        return text
    text = text.replace('\\', '\\\\')
    return _RESERVED_RE.sub(r'\\\1', text)


def strip(text: Any) -> Any:
    """Remove all markup, keeping link text and escaped literals."""
    if not isinstance(text, str):
        return text
    text = _LINK_RE.sub(r'\1', text)
    text = re.sub(r'^#{1,6}\s*', '', text, flags=re.MULTILINE)
    text = re.sub(r'^>\s?', '', text, flags=re.MULTILINE)
    # Unescape literals that survive stripping, then drop the markers
    text = re.sub(r'\\([\\\[\]])', r'\1', text)
    text = re.sub(r'\\?[*_`]', '', text)
    return text


def repair(text: Any) -> Any:
    """Fix markup the legacy parser would reject.

    Doubled and nested marker pairs are collapsed, a marker with an odd
    number of unescaped occurrences has its last occurrence escaped, and
    a ``[`` that does not open a link is escaped. Text without unescaped
    markers is returned unchanged.
    """
    if not isinstance(text, str) or not text:
        return text

    text = _collapse_markers(text)
    text = _balance_marker(text, '`')
    for marker in ('*', '_'):
        text = _balance_marker(text, marker)
    return _escape_stray_brackets(text)


def smart_escape(text: Any) -> Any:
    """Escape raw text while keeping ``*section title*`` spans bold.

    Inside a title only characters that would break the bold span are
    escaped; everywhere else all reserved characters are escaped.
    """
    if not isinstance(text, str):
        return text

    titles: List[str] = []

    def _protect(match: re.Match) -> str:
        inner = match.group(1).replace('\\', '\\\\')
        inner = re.sub(r'([_`\[])', r'\\\1', inner)
        titles.append(f'*{inner}*')
        return f'\x00{len(titles) - 1}\x00'

    protected = _TITLE_RE.sub(_protect, text)
    escaped = escape(protected)
    return re.sub(r'\x00(\d+)\x00', lambda m: titles[int(m.group(1))], escaped)


def make_safe_user_name(name: Any) -> str:
    """Replace reserved characters in an author label before prompting."""
    if name is None:
        return ''
    name = str(name)
    for char, replacement in _USER_NAME_REPLACEMENTS.items():
        name = name.replace(char, replacement)
    return name


def _unescaped_positions(text: str, chars: Tuple[str, ...]) -> List[int]:
    positions = []
    i = 0
    while i < len(text):
        char = text[i]
        if char == '\\':
            i += 2
            continue
        if char in chars:
            positions.append(i)
        i += 1
    return positions


def _code_spans(text: str) -> List[Tuple[int, int]]:
    ticks = _unescaped_positions(text, ('`',))
    return [(ticks[i], ticks[i + 1]) for i in range(0, len(ticks) - 1, 2)]


def _is_bullet(text: str, pos: int) -> bool:
    line_start = text.rfind('\n', 0, pos) + 1
    return (
        text[line_start:pos].strip() == ''
        and pos + 1 < len(text)
        and text[pos + 1] == ' '
    )


def _balance_marker(text: str, marker: str) -> str:
    positions = _unescaped_positions(text, (marker,))
    if marker != '`':
        spans = _code_spans(text)
        positions = [
            p for p in positions
            if not any(start < p < end for start, end in spans)
        ]
        if marker == '*':
            positions = [p for p in positions if not _is_bullet(text, p)]

    if len(positions) % 2 == 0:
        return text
    last = positions[-1]
    return text[:last] + '\\' + text[last:]


def _escape_stray_brackets(text: str) -> str:
    for pos in reversed(_unescaped_positions(text, ('[',))):
        if not _LINK_AT_RE.match(text, pos):
            text = text[:pos] + '\\' + text[pos:]
    return text


def _collapse_markers(text: str) -> str:
    text = re.sub(r'(?<!\\)\*\*(?=\S)([^*\n]+?)(?<=\S)\*\*', r'*\1*', text)
    text = re.sub(r'(?<![\\\w])__(?=\S)([^_\n]+?)(?<=\S)__', r'_\1_', text)
    text = re.sub(r'(?<!\\)\*_([^*_\n]+)_\*', r'*\1*', text)
    text = re.sub(r'(?<!\\)_\*([^*_\n]+)\*_', r'_\1_', text)
    return text
