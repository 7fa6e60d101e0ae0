"""
Configuration management for Chat Digest Bot.
"""

from .settings import (
    BotConfig, ProviderConfig, ProviderKind, SummarizationConfig,
    QueueConfig, CacheConfig, DeliveryConfig, LogLevel
)
from .environment import EnvironmentLoader
from .validation import ConfigValidator

__all__ = [
    'BotConfig',
    'ProviderConfig',
    'ProviderKind',
    'SummarizationConfig',
    'QueueConfig',
    'CacheConfig',
    'DeliveryConfig',
    'LogLevel',
    'EnvironmentLoader',
    'ConfigValidator',
]
