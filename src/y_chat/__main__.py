"""CLI entry point for y-chat."""

from __future__ import annotations

import argparse
import asyncio
import sys

from y_chat.app import YChatApp
from y_chat.config import AppConfig, load_config
from y_chat.console import ConsoleWriter, run_chat
from y_chat.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="y-chat",
        description="Chat with LLM bots that can call tools on MCP servers",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Start an interactive chat")
    _add_config_args(chat_parser)
    chat_parser.add_argument("-b", "--bot", default=None, help="Bot name (defaults to default_bot)")
    chat_parser.add_argument("--chat-id", default="", help="Continue an existing chat")

    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    refresh_parser = subparsers.add_parser("refresh-tools", help="Re-list tools on every MCP server")
    _add_config_args(refresh_parser)

    list_parser = subparsers.add_parser("list-chats", help="List stored chats, newest first")
    _add_config_args(list_parser)
    list_parser.add_argument("-s", "--search", default="", help="Only chats containing every term")
    list_parser.add_argument("-p", "--page", type=int, default=1)
    list_parser.add_argument("-l", "--limit", type=int, default=10)

    args = parser.parse_args()

    if args.command is None:
        # Default to chat
        args.command = "chat"
        args.config = "config.yaml"
        args.env = ".env"
        args.bot = None
        args.chat_id = ""

    if args.command == "config-check":
        _check_config(args.config, args.env)
        return

    config = _load(args.config, args.env)
    setup_logging(config.log_level, config.log_format)

    match args.command:
        case "chat":
            asyncio.run(_with_app(config, lambda app: run_chat(app, args.bot, args.chat_id)))
        case "refresh-tools":
            asyncio.run(_with_app(config, _refresh_tools))
        case "list-chats":
            asyncio.run(_with_app(config, lambda app: _list_chats(app, args.search, args.page, args.limit)))


def _add_config_args(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    sub.add_argument("-e", "--env", default=".env", help="Path to .env file")


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml first")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path}")
    print(f"  Provider: {config.provider.free_base_url} (timeout={config.provider.request_timeout:g}s)")
    print(f"  Free-tier key: {'set' if config.provider.free_api_key else 'missing'}")
    print(f"  Default bots: {len(config.default_bots)}")
    for bot in config.default_bots:
        marker = " (default)" if bot.name == config.default_bot else ""
        print(f"    - {bot.name} [{bot.model}]{marker}")
    print(f"  Default MCP servers: {len(config.default_mcp_servers)}")
    for server in config.default_mcp_servers:
        target = server.url or server.command or "(no target)"
        print(f"    - {server.name} -> {target}")


async def _with_app(config: AppConfig, run) -> None:
    app = YChatApp(config)
    await app.start()
    try:
        await run(app)
    finally:
        await app.stop()


async def _refresh_tools(app: YChatApp) -> None:
    writer = ConsoleWriter()
    manager = app.mcp_manager(writer)
    await manager.refresh_all()
    for server in await manager.servers():
        print(f"{server.name}: {server.status} ({len(server.tools)} tools)")
        if server.error_message:
            print(f"  error: {server.error_message}")


async def _list_chats(app: YChatApp, search: str, page: int, limit: int) -> None:
    result = await app.chat_repo.list_chats(search, page, limit)
    print(f"{result.total} chat(s), page {result.page}")
    for chat in result.chats:
        first = next((m.text for m in chat.messages if not m.is_tool_result), "")
        print(f"  {chat.id}  {chat.update_time}  {first[:60]!r}")


if __name__ == "__main__":
    main()
