"""
Legacy Markdown helpers.
"""

from .sanitizer import (
    RESERVED_CHARS, escape, strip, repair, smart_escape, make_safe_user_name
)

__all__ = [
    'RESERVED_CHARS', 'escape', 'strip', 'repair', 'smart_escape',
    'make_safe_user_name',
]
