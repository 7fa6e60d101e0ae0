"""
Configuration validation for Chat Digest Bot.
"""

import re
from typing import List

from .settings import BotConfig, ProviderConfig, ProviderKind


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: BotConfig) -> List[str]:
        """Validate the entire bot configuration."""
        errors = []

        errors.extend(ConfigValidator._validate_telegram_token(config.telegram_token))
        errors.extend(ConfigValidator._validate_providers(config))
        errors.extend(ConfigValidator._validate_numeric_ranges(config))

        return errors

    @staticmethod
    def _validate_telegram_token(token: str) -> List[str]:
        """Validate Telegram bot token format."""
        errors = []

        if not token:
            errors.append("TELEGRAM_BOT_TOKEN is required")
            return errors

        # Bot tokens look like "<bot id>:<secret>"
        if not re.match(r'^\d+:[A-Za-z0-9_-]+$', token):
            errors.append("Telegram bot token has an invalid format")

        return errors

    @staticmethod
    def _validate_providers(config: BotConfig) -> List[str]:
        """At least one backend must be usable."""
        errors = []

        primary = config.primary_provider
        secondary = config.secondary_provider

        if not primary.is_configured and not secondary.is_configured:
            errors.append(
                "No AI backend configured: set GEMINI_API_KEY or configure the secondary provider"
            )

        errors.extend(ConfigValidator._validate_provider(primary))
        errors.extend(ConfigValidator._validate_provider(secondary))

        return errors

    @staticmethod
    def _validate_provider(provider: ProviderConfig) -> List[str]:
        errors = []

        if provider.timeout <= 0:
            errors.append(f"{provider.kind.value} timeout must be positive")

        if provider.kind is ProviderKind.AZURE and provider.api_key:
            if not provider.base_url:
                errors.append("AZURE_OPENAI_ENDPOINT is required when using Azure OpenAI")
            if not provider.model:
                errors.append("AZURE_OPENAI_DEPLOYMENT_NAME is required when using Azure OpenAI")

        if provider.base_url and not ConfigValidator._is_valid_url(provider.base_url):
            errors.append(f"Invalid {provider.kind.value} base URL: {provider.base_url}")

        return errors

    @staticmethod
    def _validate_numeric_ranges(config: BotConfig) -> List[str]:
        """Validate numeric configuration values are within acceptable ranges."""
        errors = []

        summarization = config.summarization
        if not (0.0 <= summarization.temperature <= 2.0):
            errors.append(f"Temperature {summarization.temperature} must be between 0.0 and 2.0")
        if summarization.max_tokens < 100:
            errors.append("Max tokens must be at least 100")

        if config.queue.retention_seconds <= 0:
            errors.append("Job retention must be positive")

        if config.cache.summary_ttl <= 0:
            errors.append("Summary cache TTL must be positive")
        if config.cache.command_cooldown < 0:
            errors.append("Command cooldown cannot be negative")

        delivery = config.delivery
        if delivery.segment_limit <= 0:
            errors.append("Segment limit must be positive")
        if delivery.segment_limit > 4096:
            errors.append("Segment limit cannot exceed Telegram's 4096 character message limit")
        if delivery.segment_threshold < delivery.segment_limit:
            errors.append("Segment threshold must not be lower than the segment limit")
        if delivery.max_retries < 0:
            errors.append("Send retries cannot be negative")
        if delivery.retry_delay < 0:
            errors.append("Send retry delay cannot be negative")
        if delivery.restriction_ttl <= 0:
            errors.append("Send restriction TTL must be positive")

        return errors

    @staticmethod
    def _is_valid_url(url: str) -> bool:
        return bool(re.match(r'^https?://[^\s/$.?#].[^\s]*$', url))
