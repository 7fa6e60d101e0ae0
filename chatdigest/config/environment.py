"""
Environment variable handling for Chat Digest Bot configuration.
"""

import os
from typing import List, Optional

from dotenv import load_dotenv

from . import constants
from .settings import (
    BotConfig, ProviderConfig, ProviderKind, SummarizationConfig,
    QueueConfig, CacheConfig, DeliveryConfig, LogLevel
)


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config(dotenv: bool = True) -> BotConfig:
        """Load configuration from environment variables."""
        if dotenv:
            # Prefer .env over the shell environment
            load_dotenv(override=True)

        timeout = EnvironmentLoader._parse_float('PROVIDER_TIMEOUT', 60.0)

        primary = ProviderConfig(
            kind=ProviderKind.GEMINI,
            api_key=os.getenv('GEMINI_API_KEY', ''),
            model=os.getenv('GEMINI_MODEL', constants.DEFAULT_PRIMARY_MODEL),
            base_url=os.getenv('GEMINI_BASE_URL') or None,
            timeout=timeout,
        )

        secondary = EnvironmentLoader._load_secondary_provider(timeout)

        summarization = SummarizationConfig(
            max_tokens=EnvironmentLoader._parse_int(
                'SUMMARY_MAX_TOKENS', constants.DEFAULT_SUMMARY_MAX_TOKENS),
            temperature=EnvironmentLoader._parse_float(
                'SUMMARY_TEMPERATURE', constants.DEFAULT_SUMMARY_TEMPERATURE),
        )

        queue = QueueConfig(
            retention_seconds=EnvironmentLoader._parse_int(
                'JOB_RETENTION_SECONDS', constants.JOB_RETENTION_SECONDS),
        )

        cache = CacheConfig(
            summary_ttl=EnvironmentLoader._parse_int('SUMMARY_CACHE_TTL', constants.SUMMARY_CACHE_TTL),
            command_cooldown=EnvironmentLoader._parse_int(
                'COMMAND_COOLDOWN_SECONDS', constants.COMMAND_COOLDOWN_SECONDS),
        )

        delivery = DeliveryConfig(
            segment_threshold=EnvironmentLoader._parse_int('SEGMENT_THRESHOLD', constants.SEGMENT_THRESHOLD),
            segment_limit=EnvironmentLoader._parse_int('SEGMENT_LIMIT', constants.SEGMENT_LIMIT),
            max_retries=EnvironmentLoader._parse_int('SEND_MAX_RETRIES', constants.SEND_MAX_RETRIES),
            retry_delay=EnvironmentLoader._parse_float('SEND_RETRY_DELAY', constants.SEND_RETRY_DELAY),
            restriction_ttl=EnvironmentLoader._parse_int(
                'SEND_RESTRICTION_TTL', constants.SEND_RESTRICTION_TTL),
        )

        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_level = LogLevel.INFO  # default
        try:
            log_level = LogLevel(log_level_str)
        except ValueError:
            pass  # Use default

        return BotConfig(
            telegram_token=os.getenv('TELEGRAM_BOT_TOKEN', ''),
            primary_provider=primary,
            secondary_provider=secondary,
            summarization=summarization,
            queue=queue,
            cache=cache,
            delivery=delivery,
            admin_user_ids=EnvironmentLoader._parse_id_list('ADMIN_USER_IDS'),
            database_path=os.getenv('DATABASE_PATH', 'data/messages.db'),
            log_level=log_level,
        )

    @staticmethod
    def _load_secondary_provider(timeout: float) -> ProviderConfig:
        """Secondary backend is Claude unless SECONDARY_PROVIDER selects Azure."""
        kind_str = os.getenv('SECONDARY_PROVIDER', ProviderKind.ANTHROPIC.value).strip().lower()
        if kind_str == ProviderKind.AZURE.value:
            return ProviderConfig(
                kind=ProviderKind.AZURE,
                api_key=os.getenv('AZURE_OPENAI_API_KEY', ''),
                model=os.getenv('AZURE_OPENAI_DEPLOYMENT_NAME', ''),
                base_url=os.getenv('AZURE_OPENAI_ENDPOINT') or None,
                api_version=os.getenv('AZURE_OPENAI_API_VERSION', constants.DEFAULT_AZURE_API_VERSION),
                timeout=timeout,
            )

        return ProviderConfig(
            kind=ProviderKind.ANTHROPIC,
            api_key=os.getenv('ANTHROPIC_API_KEY', ''),
            model=os.getenv('ANTHROPIC_MODEL', constants.DEFAULT_SECONDARY_MODEL),
            base_url=os.getenv('ANTHROPIC_BASE_URL') or None,
            timeout=timeout,
        )

    @staticmethod
    def _parse_int(key: str, default: int) -> int:
        value: Optional[str] = os.getenv(key)
        if value is None or not value.strip():
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"Environment variable {key} must be an integer, got '{value}'")

    @staticmethod
    def _parse_float(key: str, default: float) -> float:
        value: Optional[str] = os.getenv(key)
        if value is None or not value.strip():
            return default
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"Environment variable {key} must be a number, got '{value}'")

    @staticmethod
    def _parse_id_list(key: str) -> List[int]:
        """Comma separated Telegram user ids. Entries that are not integers are skipped."""
        ids = []
        for item in os.getenv(key, '').split(','):
            item = item.strip()
            try:
                ids.append(int(item))
            except ValueError:
                continue
        return ids
