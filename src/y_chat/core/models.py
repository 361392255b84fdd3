"""Domain models: chats, messages, bots, MCP servers and integrations."""

from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from y_chat.core.types import AuthType, McpStatus, Role

_ID_ALPHABET = string.ascii_lowercase + string.digits


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def unix_now_ms() -> int:
    return int(time.time() * 1000)


def new_message_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))
    return f"msg_{unix_now_ms()}_{suffix}"


class ContentBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


MessageContent = Union[str, list[ContentBlock]]


def extract_content_text(content: MessageContent) -> str:
    """Return the plain text of a message body, joining text blocks with newlines."""
    if isinstance(content, str):
        return content
    return "\n".join(block.text for block in content if block.type == "text")


class Message(BaseModel):
    role: Role
    content: MessageContent
    timestamp: str = Field(default_factory=iso_now)
    unix_timestamp: int = Field(default_factory=unix_now_ms)
    id: Optional[str] = None
    parent_id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    reasoning_content: Optional[str] = None
    reasoning_effort: Optional[str] = None
    tool: Optional[str] = None
    server: Optional[str] = None
    arguments: Optional[dict[str, Any]] = None
    links: Optional[list[str]] = None

    @model_validator(mode="after")
    def _tool_fields_together(self) -> Message:
        present = [v is not None for v in (self.tool, self.server, self.arguments)]
        if any(present) and not all(present):
            raise ValueError("tool, server and arguments must be set together")
        return self

    @property
    def text(self) -> str:
        return extract_content_text(self.content)

    @property
    def is_tool_result(self) -> bool:
        """A user-role message carrying a server is a tool result, not a human turn."""
        return self.role == Role.USER and self.server is not None

    def attach_tool_call(self, server: str, tool: str, arguments: dict[str, Any]) -> None:
        self.server = server
        self.tool = tool
        self.arguments = arguments


def create_message(
    role: Role | str,
    content: MessageContent,
    *,
    id: Optional[str] = None,
    **options: Any,
) -> Message:
    """Build a timestamped message with a fresh id unless one is given."""
    fields = {k: v for k, v in options.items() if v is not None}
    return Message(role=Role(role), content=content, id=id or new_message_id(), **fields)


class Chat(BaseModel):
    id: str = ""
    messages: list[Message] = Field(default_factory=list)
    create_time: str = Field(default_factory=iso_now)
    update_time: str = Field(default_factory=iso_now)
    selected_message_id: Optional[str] = None
    origin_chat_id: Optional[str] = None
    origin_message_id: Optional[str] = None

    def find_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def messages_until(self, unix_timestamp: int) -> list[Message]:
        """Copy of the history containing messages at or before the given time."""
        return [m for m in self.messages if m.unix_timestamp <= unix_timestamp]

    def message_path(self, message_id: str) -> list[Message]:
        """Walk parent links from a message back to its root, oldest first."""
        by_id = {m.id: m for m in self.messages if m.id}
        path: list[Message] = []
        current = by_id.get(message_id)
        seen: set[str] = set()
        while current is not None and current.id not in seen:
            seen.add(current.id)  # type: ignore[arg-type]
            path.append(current)
            current = by_id.get(current.parent_id) if current.parent_id else None
        path.reverse()
        return path


class ChatPage(BaseModel):
    chats: list[Chat]
    total: int
    page: int
    limit: int


class BotConfig(BaseModel):
    name: str
    model: str
    base_url: str = ""
    api_key: str = ""
    openrouter_config: Optional[dict[str, Any]] = None
    mcp_servers: Optional[list[str]] = None
    max_tokens: Optional[int] = None
    reasoning_effort: Optional[str] = None
    custom_api_path: Optional[str] = None


class McpTool(BaseModel):
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)


class McpServerConfig(BaseModel):
    name: str
    url: Optional[str] = None
    token: Optional[str] = None
    transport: Literal["sse", "streamable_http"] = "sse"
    command: Optional[str] = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    tools: list[McpTool] = Field(default_factory=list)
    status: McpStatus = McpStatus.PENDING
    last_updated: Optional[str] = None
    error_message: Optional[str] = None
    allow_tools: list[str] = Field(default_factory=list)
    is_default: bool = False

    @property
    def has_target(self) -> bool:
        return bool(self.url or self.command)


class IntegrationCredentials(BaseModel):
    api_key: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry_date: Optional[int] = None


class IntegrationConfig(BaseModel):
    name: str
    auth_type: AuthType = AuthType.API_KEY
    connected: bool = False
    credentials: IntegrationCredentials = Field(default_factory=IntegrationCredentials)

    def bearer_token(self) -> str | None:
        if self.auth_type == AuthType.OAUTH:
            return self.credentials.access_token
        return self.credentials.api_key
