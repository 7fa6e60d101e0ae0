"""
Delivery of summaries to Telegram chats.
"""

from .errors import DeliveryErrorKind, classify_send_error, is_send_forbidden
from .formatter import RenderMode, SummaryFormatter, split_segments
from .permissions import ChatPermissionService
from .transport import MessageTransport, TelegramTransport
from .manager import DeliveryManager, DeliveryResult

__all__ = [
    'DeliveryErrorKind',
    'classify_send_error',
    'is_send_forbidden',
    'RenderMode',
    'SummaryFormatter',
    'split_segments',
    'ChatPermissionService',
    'MessageTransport',
    'TelegramTransport',
    'DeliveryManager',
    'DeliveryResult',
]
