"""
Main entry point for Chat Digest Bot.
"""

import asyncio
import logging
import sys
from typing import Optional

from telegram.ext import Application

from .bot.admin import AdminHandlers
from .bot.handlers import BotHandlers
from .bot.throttle import CommandThrottle
from .cache import SummaryResultCache
from .config import BotConfig, ConfigValidator, EnvironmentLoader, ProviderConfig, ProviderKind
from .delivery.formatter import SummaryFormatter
from .delivery.manager import DeliveryManager
from .delivery.permissions import ChatPermissionService
from .delivery.transport import TelegramTransport
from .exceptions import ConfigurationError, handle_unexpected_error
from .jobs.queue import JobQueue
from .storage.archive import MessageArchive
from .summarization.engine import SummarizationEngine
from .summarization.gateway import ProviderGateway
from .summarization.providers import (
    ClaudeBackend, CompletionBackend, GEMINI_OPENAI_BASE_URL, OpenAICompatibleBackend
)

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Request-level noise from the HTTP client and the polling loop
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.WARNING)


def build_backend(provider: ProviderConfig) -> Optional[CompletionBackend]:
    """Create the completion backend for a provider, or None if it is not configured."""
    if not provider.is_configured:
        logger.warning(f"{provider.kind.value} backend is not configured")
        return None

    if provider.kind is ProviderKind.GEMINI:
        return OpenAICompatibleBackend(
            api_key=provider.api_key,
            model=provider.model,
            base_url=provider.base_url or GEMINI_OPENAI_BASE_URL,
            timeout=provider.timeout,
        )
    if provider.kind is ProviderKind.AZURE:
        return OpenAICompatibleBackend.for_azure(
            api_key=provider.api_key,
            endpoint=provider.base_url,
            deployment=provider.model,
            api_version=provider.api_version,
            timeout=provider.timeout,
        )
    return ClaudeBackend(
        api_key=provider.api_key,
        model=provider.model,
        base_url=provider.base_url,
        timeout=provider.timeout,
    )


class ChatDigestApp:
    """Wires configuration, storage, the job pipeline and the Telegram application."""

    def __init__(self, config: BotConfig):
        self.config = config
        self.application: Optional[Application] = None
        self.archive: Optional[MessageArchive] = None
        self.gateway: Optional[ProviderGateway] = None
        self.queue: Optional[JobQueue] = None
        self.delivery: Optional[DeliveryManager] = None
        self._consumer_task: Optional[asyncio.Task] = None

    def build(self) -> Application:
        """Create every component and the python-telegram-bot application."""
        config = self.config
        logger.info("Initializing Chat Digest Bot...")

        self.archive = MessageArchive(config.database_path)

        self.gateway = ProviderGateway(
            primary=build_backend(config.primary_provider),
            secondary=build_backend(config.secondary_provider),
        )
        engine = SummarizationEngine(
            gateway=self.gateway,
            max_transcript_length=config.summarization.max_transcript_length,
            max_input_tokens=config.summarization.max_input_tokens,
            max_tokens=config.summarization.max_tokens,
            temperature=config.summarization.temperature,
            top_p=config.summarization.top_p,
        )

        result_cache = SummaryResultCache(ttl=config.cache.summary_ttl)
        self.queue = JobQueue(
            workflow=engine,
            result_cache=result_cache,
            retention_seconds=config.queue.retention_seconds,
        )

        self.application = (
            Application.builder()
            .token(config.telegram_token)
            .post_init(self._post_init)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        permissions = ChatPermissionService(ttl=config.delivery.restriction_ttl)
        self.delivery = DeliveryManager(
            transport=TelegramTransport(self.application.bot),
            permissions=permissions,
            formatter=SummaryFormatter(
                cooldown_seconds=config.cache.command_cooldown,
                truncated_length=config.delivery.truncated_length,
            ),
            config=config.delivery,
        )

        handlers = BotHandlers(
            archive=self.archive,
            queue=self.queue,
            result_cache=result_cache,
            throttle=CommandThrottle(cooldown_seconds=config.cache.command_cooldown),
            delivery=self.delivery,
        )
        handlers.register(self.application)

        admin_handlers = AdminHandlers(
            archive=self.archive,
            queue=self.queue,
            gateway=self.gateway,
            result_cache=result_cache,
            permissions=permissions,
            admin_user_ids=config.admin_user_ids,
        )
        admin_handlers.register(self.application)
        if not config.admin_user_ids:
            logger.warning("ADMIN_USER_IDS is empty, /status and /admin will refuse everyone")

        logger.info("All components initialized")
        return self.application

    async def _post_init(self, application: Application) -> None:
        await self.archive.initialize()
        await self.archive.prune()
        self._consumer_task = asyncio.create_task(self.delivery.run(self.queue.events()))

        status = self.gateway.get_status()
        logger.info(f"AI backends: {status}")

        health = await self.gateway.health_check()
        for slot, healthy in health.items():
            if healthy:
                logger.info(f"{slot} AI backend is reachable")
            elif status[slot]["configured"]:
                logger.warning(f"{slot} AI backend failed its health check")
        if not any(health.values()):
            logger.warning("No AI backend passed the health check, summaries will fail until one recovers")

        logger.info("Chat Digest Bot is now online!")

    async def _post_shutdown(self, application: Application) -> None:
        logger.info("Initiating graceful shutdown...")

        await self.queue.shutdown()
        if self._consumer_task is not None:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass

        await self.gateway.close()
        await self.archive.close()
        logger.info("Chat Digest Bot stopped cleanly")

    def run(self) -> None:
        """Run long polling until interrupted."""
        application = self.application or self.build()
        application.run_polling(allowed_updates=["message"])


def load_validated_config() -> BotConfig:
    config = EnvironmentLoader.load_config()
    errors = ConfigValidator.validate_config(config)
    if errors:
        raise ConfigurationError(f"Invalid configuration: {'; '.join(errors)}")
    return config


def main() -> None:
    """Load configuration and run the bot."""
    configure_logging()

    try:
        config = load_validated_config()
    except ConfigurationError as e:
        logger.error(e.to_log_string())
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    logging.getLogger().setLevel(config.log_level.value)
    logger.info(f"Configuration loaded: {config.to_dict()}")

    try:
        ChatDigestApp(config).run()
    except Exception as e:
        error = handle_unexpected_error(e)
        logger.error(f"Fatal error: {error.to_log_string()}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
