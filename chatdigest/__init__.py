"""
Chat Digest Bot - AI summaries of Telegram group conversations.
"""

__version__ = "1.0.0"
