"""
Telegram bot surface: commands, message archiving and throttling.
"""

from .admin import AdminHandlers
from .handlers import BotHandlers, parse_message_count
from .throttle import CommandThrottle

__all__ = ['AdminHandlers', 'BotHandlers', 'CommandThrottle', 'parse_message_count']
