"""
Summarization job queue.
"""

from .queue import JobQueue
from .failures import classify_failure, is_content_policy_text

__all__ = ['JobQueue', 'classify_failure', 'is_content_policy_text']
