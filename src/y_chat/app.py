"""Application wiring: database, repositories, bot resolution and per-turn services."""

from __future__ import annotations

import httpx

from y_chat.ai.chat_service import ChatService
from y_chat.ai.client import ChatProvider, OpenAIFormatProvider
from y_chat.config import AppConfig, is_unset, with_defaults
from y_chat.core.models import BotConfig
from y_chat.core.types import StatusKind
from y_chat.core.writer import StreamWriter
from y_chat.log import get_logger
from y_chat.mcp.manager import McpManager
from y_chat.mcp.session import SessionFactory, open_session
from y_chat.storage.chat_repo import ChatRepository
from y_chat.storage.config_repo import BotRepository, IntegrationRepository, McpServerRepository
from y_chat.storage.database import Database

logger = get_logger(__name__)


class YChatApp:
    """Top-level application object shared by every front end."""

    def __init__(self, config: AppConfig, session_factory: SessionFactory = open_session):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.chat_repo = ChatRepository(self.db)
        self.bot_repo = BotRepository(self.db)
        self.server_repo = McpServerRepository(self.db)
        self.integration_repo = IntegrationRepository(self.db)
        self._session_factory = session_factory
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        await self.db.initialize()
        self._http = httpx.AsyncClient(timeout=None)
        logger.info("y_chat_started", db=self.config.storage.db_path)

    async def stop(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
        await self.db.close()
        logger.info("y_chat_stopped")

    async def list_bots(self) -> list[BotConfig]:
        return with_defaults(await self.bot_repo.list_all(), self.config.default_bots)

    async def resolve_bot(self, name: str | None = None) -> BotConfig | None:
        """Find a bot by name (or the configured default), filling in free-tier credentials."""
        bots = await self.list_bots()
        name = name or self.config.default_bot
        if name is None:
            bot = bots[0] if bots else None
        else:
            bot = next((b for b in bots if b.name == name), None)
        if bot is None:
            logger.warning("bot_not_found", bot=name)
            return None

        if is_unset(bot.api_key) or is_unset(bot.base_url):
            logger.debug("bot_free_tier_fallback", bot=bot.name)
            bot = bot.model_copy(
                update={
                    "api_key": self.config.provider.free_api_key,
                    "base_url": self.config.provider.free_base_url,
                }
            )
        return bot

    def provider_for(self, bot: BotConfig) -> ChatProvider:
        return OpenAIFormatProvider(bot, self.config.provider, client=self._http)

    def mcp_manager(self, writer: StreamWriter | None = None) -> McpManager:
        """A fresh manager whose status events go to ``writer`` (if given)."""

        async def on_status(kind: StatusKind, message: str, server: str | None) -> None:
            await writer.write_status(kind, message, server)

        return McpManager(
            self.server_repo,
            self.integration_repo,
            default_servers=self.config.default_mcp_servers,
            on_status=on_status if writer is not None else None,
            connect_timeout=self.config.mcp.connect_timeout,
            session_factory=self._session_factory,
        )

    def chat_service(
        self,
        bot: BotConfig,
        chat_id: str = "",
        writer: StreamWriter | None = None,
        provider: ChatProvider | None = None,
    ) -> ChatService:
        return ChatService(
            self.chat_repo,
            provider or self.provider_for(bot),
            self.mcp_manager(writer),
            bot,
            chat_id,
        )
