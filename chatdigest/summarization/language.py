"""
Dominant-language detection for a batch of chat messages.
"""

import logging
import re
from typing import Dict, Iterable

logger = logging.getLogger(__name__)

LANGUAGE_PATTERNS = {
    'zh': re.compile(r'[\u4e00-\u9fff]'),
    'zh-tw': re.compile(r'[繁體臺灣復興課時間]'),
    'ja': re.compile(r'[\u3040-\u309f\u30a0-\u30ff]'),
    'ko': re.compile(r'[\uac00-\ud7af]'),
    'ru': re.compile(r'[\u0400-\u04ff]'),
    'ar': re.compile(r'[\u0600-\u06ff]'),
    'th': re.compile(r'[\u0e00-\u0e7f]'),
    'de': re.compile(r'[äöüßÄÖÜ]'),
    'es': re.compile(r'[ñ¿¡]'),
    'fr': re.compile(r'[âêëïîôûÿç]'),
}


def detect_language(texts: Iterable[str]) -> str:
    """Return the language tag that best matches the given texts.

    Japanese kana outweighs shared CJK ideographs, and text that is mostly
    ASCII letters is treated as English. Defaults to ``en``.
    """
    all_text = ' '.join(text for text in texts if text)
    if not all_text.strip():
        return 'en'

    scores: Dict[str, float] = {
        lang: len(pattern.findall(all_text)) for lang, pattern in LANGUAGE_PATTERNS.items()
    }

    # Kana only appears in Japanese, so it should outrank the shared ideographs
    if scores['ja']:
        scores['ja'] += scores['zh']

    ascii_letters = len(re.findall(r'[a-zA-Z\s]', all_text))
    if ascii_letters / len(all_text) > 0.8 and scores['zh'] == 0:
        scores['en'] = len(all_text) * 0.8

    ranked = sorted(
        ((lang, score) for lang, score in scores.items() if score > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    detected = ranked[0][0] if ranked else 'en'

    # Traditional markers are a subset of the ideograph range
    if detected in ('zh', 'zh-tw'):
        detected = 'zh-tw' if scores['zh-tw'] * 10 >= scores['zh'] else 'zh'

    logger.debug(f"Detected chat language {detected} (top scores: {ranked[:3]})")
    return detected
