"""Chat turn orchestration: stream a reply, detect a tool call, persist the chat.

A turn never executes a tool inline. When the finished reply carries a tool
call, a confirmation record is written to the output stream and the turn ends;
the caller runs :meth:`ChatService.confirm_tool` once the call is approved,
which feeds the tool output back as a new user-role turn.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from y_chat.ai.client import ChatProvider, ProviderError
from y_chat.ai.system_prompt import build_system_prompt
from y_chat.ai.tool_parser import contains_tool_use, extract_tool_call, split_content
from y_chat.core.models import BotConfig, Chat, Message, create_message
from y_chat.core.types import ErrorType, Role
from y_chat.core.writer import StreamWriter
from y_chat.log import get_logger
from y_chat.mcp.manager import McpManager
from y_chat.storage.chat_repo import ChatRepository

logger = get_logger(__name__)

DEFAULT_TOOL_PROSE = "I'll execute this operation for you."
EMPTY_RESPONSE_MESSAGE = "No response content received from provider"
ERROR_MODEL = "error"
ERROR_PROVIDER = "system"


class ChatService:
    """Runs turns of one chat against one bot."""

    def __init__(
        self,
        chat_repo: ChatRepository,
        provider: ChatProvider,
        mcp_manager: McpManager,
        bot: BotConfig,
        chat_id: str = "",
    ):
        self._chat_repo = chat_repo
        self._provider = provider
        self._mcp = mcp_manager
        self._bot = bot
        self._chat_id = chat_id
        self._chat: Chat | None = None
        self.system_prompt = ""

    @property
    def chat(self) -> Chat:
        if self._chat is None:
            raise RuntimeError("Chat not initialized. Call initialize_chat() first.")
        return self._chat

    async def initialize_chat(self) -> tuple[Chat, str]:
        """Load (or start, unsaved) the chat and build the system prompt from cached catalogs."""
        self._chat = await self._chat_repo.get_or_create_chat(self._chat_id)
        self.system_prompt = await build_system_prompt(self._mcp, self._bot.mcp_servers)
        logger.debug(
            "chat_initialized",
            chat_id=self._chat.id or None,
            messages=len(self._chat.messages),
            bot=self._bot.name,
        )
        return self._chat, self.system_prompt

    async def reload_tools(self) -> str:
        """Re-list every server's tools and rebuild the system prompt from the new catalog."""
        await self._mcp.refresh_all()
        self.system_prompt = await build_system_prompt(self._mcp, self._bot.mcp_servers)
        return self.system_prompt

    async def process_user_message(
        self,
        user_message: Message,
        writer: StreamWriter,
        branch_from: str | None = None,
    ) -> Message:
        """Append ``user_message`` and stream the assistant's reply to ``writer``.

        With ``branch_from`` the model only sees the path from that message back
        to the root, and the new message is linked under it. Returns the
        assistant (or error) message that ended the turn.
        """
        chat = self.chat
        if branch_from:
            history = chat.message_path(branch_from)
            if user_message.parent_id is None:
                user_message.parent_id = branch_from
        else:
            history = list(chat.messages)
            if user_message.parent_id is None and chat.selected_message_id:
                user_message.parent_id = chat.selected_message_id

        if not any(m is user_message for m in chat.messages):
            chat.messages.append(user_message)
        # the new message goes last, exactly once
        context = [m for m in history if m is not user_message]
        context.append(user_message)
        return await self._complete(context, user_message, writer)

    async def refresh(self, user_message_id: str, writer: StreamWriter) -> Message | None:
        """Generate a new reply to an existing user message.

        The model sees only messages at or before that user message; later
        messages stay in the chat and the new reply is appended after them.
        """
        chat = self.chat
        target = chat.find_message(user_message_id)
        if target is None or target.role != Role.USER:
            logger.warning("refresh_message_not_found", message_id=user_message_id)
            await writer.write({"error": "User message not found"})
            return None

        context = chat.messages_until(target.unix_timestamp)
        return await self._complete(context, target, writer)

    async def confirm_tool(
        self,
        server: str,
        tool: str,
        arguments: dict[str, Any],
        writer: StreamWriter,
    ) -> Message:
        """Run an approved tool call and continue the conversation with its output."""
        result = await self._mcp.execute_tool(server, tool, arguments)
        tool_message = create_message(
            Role.USER,
            result,
            server=server,
            tool=tool,
            arguments=arguments,
            parent_id=self.chat.selected_message_id,
        )
        await writer.write(
            {"type": "tool_result", "message": tool_message.model_dump(mode="json", exclude_none=True)}
        )
        return await self.process_user_message(tool_message, writer)

    # ── turn internals ──────────────────────────────────────────

    async def _complete(
        self, context: Sequence[Message], user_message: Message, writer: StreamWriter
    ) -> Message:
        content_parts: list[str] = []
        reasoning_parts: list[str] = []
        model: str | None = None
        provider: str | None = None

        try:
            async for chunk in self._provider.stream_chat(context, self.system_prompt):
                content_parts.append(chunk.content)
                if chunk.reasoning_content:
                    reasoning_parts.append(chunk.reasoning_content)
                model = chunk.model or model
                provider = chunk.provider or provider

                delta: dict[str, Any] = {"content": chunk.content}
                if chunk.reasoning_content:
                    delta["reasoning_content"] = chunk.reasoning_content
                await writer.write(
                    {"choices": [{"delta": delta}], "model": chunk.model, "provider": chunk.provider}
                )
        except asyncio.CancelledError:
            partial = "".join(content_parts)
            logger.info("chat_turn_cancelled", partial_length=len(partial))
            if partial.strip():
                await self._finish(
                    create_message(
                        Role.ASSISTANT,
                        partial,
                        model=model,
                        provider=provider,
                        parent_id=user_message.id,
                    )
                )
            else:
                await self._save()
            raise
        except ProviderError as e:
            logger.warning("chat_turn_provider_error", error_type=str(e.error_type), status=e.status)
            return await self._fail(user_message, e, writer)
        except Exception as e:
            logger.exception("chat_turn_error")
            error = ProviderError(ErrorType.UNKNOWN, 500, str(e) or "An unknown error occurred")
            return await self._fail(user_message, error, writer)

        text = "".join(content_parts)
        if not text.strip():
            logger.warning("chat_turn_empty_response", model=model)
            error = ProviderError(ErrorType.EMPTY_RESPONSE, 500, EMPTY_RESPONSE_MESSAGE)
            return await self._fail(user_message, error, writer)

        assistant = create_message(
            Role.ASSISTANT,
            text,
            model=model,
            provider=provider,
            parent_id=user_message.id,
            reasoning_content="".join(reasoning_parts) or None,
            reasoning_effort=self._bot.reasoning_effort,
        )
        try:
            await self._handle_tool_call(assistant, text, writer)
        finally:
            # saved even when the confirmation cannot be delivered
            await self._finish(assistant)
        return assistant

    async def _handle_tool_call(self, assistant: Message, text: str, writer: StreamWriter) -> None:
        if not contains_tool_use(text):
            return

        prose, block = split_content(text)
        call = extract_tool_call(block) if block else None
        if call is None:
            # kept verbatim, raw tags included
            logger.warning("tool_call_malformed", message_id=assistant.id)
            return

        assistant.content = prose or DEFAULT_TOOL_PROSE
        assistant.attach_tool_call(call.server, call.tool, call.arguments)
        auto_approve = await self._mcp.is_auto_approved(call.server, call.tool)
        logger.info("tool_call_requested", server=call.server, tool=call.tool, auto_approve=auto_approve)
        await writer.write(
            {
                "type": "tool_confirmation",
                "prose": prose,
                "server": call.server,
                "tool": call.tool,
                "arguments": call.arguments,
                "auto_approve": auto_approve,
            }
        )

    async def _fail(self, user_message: Message, error: ProviderError, writer: StreamWriter) -> Message:
        message = create_message(
            Role.ASSISTANT,
            f"Error: {error.message}",
            model=ERROR_MODEL,
            provider=ERROR_PROVIDER,
            parent_id=user_message.id,
        )
        await self._finish(message)
        await writer.write(error.to_payload())
        return message

    async def _finish(self, message: Message) -> None:
        self.chat.messages.append(message)
        self.chat.selected_message_id = message.id
        await self._save()

    async def _save(self) -> None:
        saved = await self._chat_repo.save_chat(self.chat)
        self._chat_id = saved.id
