"""
Configuration settings and data models for Chat Digest Bot.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..models.base import BaseModel
from . import constants


class LogLevel(Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProviderKind(Enum):
    """Supported AI backends."""
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    AZURE = "azure"


@dataclass
class ProviderConfig(BaseModel):
    """Connection settings for one AI backend."""
    kind: ProviderKind
    api_key: str = ""
    model: str = ""
    base_url: Optional[str] = None
    api_version: Optional[str] = None
    timeout: float = 60.0

    @property
    def is_configured(self) -> bool:
        if self.kind is ProviderKind.AZURE:
            return bool(self.api_key and self.base_url and self.model)
        return bool(self.api_key and self.model)


@dataclass
class SummarizationConfig(BaseModel):
    """Generation parameters shared by both backends."""
    max_tokens: int = constants.DEFAULT_SUMMARY_MAX_TOKENS
    temperature: float = constants.DEFAULT_SUMMARY_TEMPERATURE
    top_p: float = constants.DEFAULT_SUMMARY_TOP_P
    max_transcript_length: int = constants.MAX_TRANSCRIPT_LENGTH
    max_input_tokens: int = constants.MAX_INPUT_TOKENS


@dataclass
class QueueConfig(BaseModel):
    retention_seconds: int = constants.JOB_RETENTION_SECONDS


@dataclass
class CacheConfig(BaseModel):
    """Cache and throttling configuration."""
    summary_ttl: int = constants.SUMMARY_CACHE_TTL
    command_cooldown: int = constants.COMMAND_COOLDOWN_SECONDS
    max_size: int = 1000


@dataclass
class DeliveryConfig(BaseModel):
    """How summaries are posted back to the chat."""
    segment_threshold: int = constants.SEGMENT_THRESHOLD
    segment_limit: int = constants.SEGMENT_LIMIT
    truncated_length: int = constants.TRUNCATED_MESSAGE_LENGTH
    pacing_delay: float = constants.SEGMENT_PACING_DELAY
    max_retries: int = constants.SEND_MAX_RETRIES
    retry_delay: float = constants.SEND_RETRY_DELAY
    backoff_multiplier: float = constants.SEND_BACKOFF_MULTIPLIER
    restriction_ttl: int = constants.SEND_RESTRICTION_TTL


@dataclass
class BotConfig(BaseModel):
    """Main bot configuration."""
    telegram_token: str
    primary_provider: ProviderConfig
    secondary_provider: ProviderConfig
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    admin_user_ids: List[int] = field(default_factory=list)
    database_path: str = "data/messages.db"
    log_level: LogLevel = LogLevel.INFO

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["telegram_token"] = "***" if self.telegram_token else ""
        for key in ("primary_provider", "secondary_provider"):
            if data[key].get("api_key"):
                data[key]["api_key"] = "***"
        return data
