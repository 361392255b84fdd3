"""Interactive terminal front end."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, TextIO

from y_chat.ai.chat_service import ChatService
from y_chat.app import YChatApp
from y_chat.core.models import create_message
from y_chat.core.types import Role
from y_chat.core.writer import StreamWriter
from y_chat.log import bind_context


HELP_TEXT = "Commands: /refresh (regenerate last reply), /tools (reload tool catalogs), /quit"


class ConsoleWriter(StreamWriter):
    """Renders turn records as terminal text instead of SSE frames."""

    def __init__(self, out: TextIO = sys.stdout):
        super().__init__()
        self._out = out
        self.pending_confirmation: dict[str, Any] | None = None

    async def write(self, data: dict[str, Any]) -> None:
        if self.closed:
            return
        if "choices" in data:
            delta = data["choices"][0].get("delta", {})
            self._out.write(delta.get("content") or "")
        elif data.get("type") == "mcp_status":
            self._out.write(f"\n  [{data['status']}] {data['message']}\n")
        elif data.get("type") == "tool_confirmation":
            self.pending_confirmation = data
        elif data.get("type") == "tool_result":
            text = data["message"].get("content", "")
            self._out.write(f"\n  [tool result] {text}\n")
        elif "error" in data:
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else error
            self._out.write(f"\n  [error] {message}\n")
        self._out.flush()

    async def done(self) -> None:
        self._out.write("\n")
        self._out.flush()


async def _prompt(text: str) -> str:
    return await asyncio.to_thread(input, text)


async def run_chat(app: YChatApp, bot_name: str | None = None, chat_id: str = "") -> None:
    bot = await app.resolve_bot(bot_name)
    if bot is None:
        print(f"Bot not found: {bot_name or '(default)'}", file=sys.stderr)
        return

    writer = ConsoleWriter()
    service = app.chat_service(bot, chat_id, writer)
    chat, _ = await service.initialize_chat()
    bind_context(bot=bot.name, chat_id=chat.id or None)
    print(f"Chatting with {bot.name} ({bot.model}). {HELP_TEXT}")

    while True:
        try:
            line = (await _prompt("\nyou> ")).strip()
        except EOFError:
            break
        if not line:
            continue

        match line:
            case "/quit" | "/exit":
                break
            case "/tools":
                await service.reload_tools()
                continue
            case "/refresh":
                last_user = next((m for m in reversed(service.chat.messages) if m.role == Role.USER), None)
                if last_user is None or last_user.id is None:
                    print("Nothing to refresh.")
                    continue
                await service.refresh(last_user.id, writer)
            case _:
                await service.process_user_message(create_message(Role.USER, line), writer)

        await writer.done()
        await _resolve_confirmations(service, writer)
        bind_context(chat_id=service.chat.id or None)


async def _resolve_confirmations(service: ChatService, writer: ConsoleWriter) -> None:
    # each approved tool result starts a new turn, which may request another tool
    while writer.pending_confirmation is not None:
        request, writer.pending_confirmation = writer.pending_confirmation, None
        summary = f"{request['server']}.{request['tool']}({json.dumps(request['arguments'], ensure_ascii=False)})"
        if request.get("auto_approve"):
            print(f"  [auto-approved] {summary}")
        else:
            answer = (await _prompt(f"  Run {summary}? [y/N] ")).strip().lower()
            if answer not in ("y", "yes"):
                print("  Tool call skipped.")
                return
        await service.confirm_tool(request["server"], request["tool"], request["arguments"], writer)
        await writer.done()
