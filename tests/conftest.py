"""Shared fixtures: a temporary database, fake MCP sessions, a scripted provider."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from y_chat.ai.client import ChatProvider, StreamChunk
from y_chat.core.models import McpServerConfig, McpTool
from y_chat.core.writer import StreamWriter
from y_chat.mcp.manager import McpManager
from y_chat.storage.chat_repo import ChatRepository
from y_chat.storage.config_repo import BotRepository, IntegrationRepository, McpServerRepository
from y_chat.storage.database import Database


class RecordingWriter(StreamWriter):
    """Keeps every record instead of encoding it."""

    def __init__(self) -> None:
        super().__init__()
        self.records: list[dict[str, Any]] = []

    async def write(self, data: dict[str, Any]) -> None:
        if not self.closed:
            self.records.append(data)

    def of_type(self, record_type: str) -> list[dict[str, Any]]:
        return [r for r in self.records if r.get("type") == record_type]

    @property
    def text(self) -> str:
        return "".join(
            r["choices"][0]["delta"].get("content", "") for r in self.records if "choices" in r
        )


class FakeSession:
    def __init__(self, server_name: str, factory: FakeSessionFactory):
        self.server_name = server_name
        self._factory = factory
        self.closed = False

    async def list_tools(self) -> list[McpTool]:
        if self.server_name in self._factory.list_hang:
            await asyncio.sleep(3600)
        error = self._factory.list_errors.get(self.server_name)
        if error is not None:
            raise error
        return list(self._factory.tools.get(self.server_name, []))

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[dict[str, Any]]:
        self._factory.calls.append((self.server_name, name, arguments))
        error = self._factory.call_errors.get(self.server_name)
        if error is not None:
            raise error
        return self._factory.results.get(self.server_name, [])

    async def close(self) -> None:
        self.closed = True
        self._factory.events.append(("close", self.server_name))


class FakeSessionFactory:
    """Stands in for ``open_session``; records opens, closes and headers."""

    def __init__(self) -> None:
        self.tools: dict[str, list[McpTool]] = {}
        self.results: dict[str, list[dict[str, Any]]] = {}
        self.connect_errors: dict[str, BaseException] = {}
        self.list_errors: dict[str, BaseException] = {}
        self.call_errors: dict[str, BaseException] = {}
        self.hang: set[str] = set()
        self.list_hang: set[str] = set()
        self.events: list[tuple[str, str]] = []
        self.headers: list[tuple[str, dict[str, str]]] = []
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.sessions: list[FakeSession] = []

    async def __call__(self, server: McpServerConfig, headers: dict[str, str]) -> FakeSession:
        self.headers.append((server.name, headers))
        if server.name in self.hang:
            await asyncio.sleep(3600)
        error = self.connect_errors.get(server.name)
        if error is not None:
            raise error
        session = FakeSession(server.name, self)
        self.sessions.append(session)
        self.events.append(("open", server.name))
        return session

    @property
    def open_sessions(self) -> list[FakeSession]:
        return [s for s in self.sessions if not s.closed]


class ScriptedProvider(ChatProvider):
    """Replays one scripted reply (chunk list or exception) per call."""

    def __init__(self, *replies: list[StreamChunk] | BaseException):
        self._replies = list(replies)
        self.calls: list[tuple[list, str | None]] = []

    async def stream_chat(self, messages, system_prompt=None):
        self.calls.append((list(messages), system_prompt))
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        for chunk in reply:
            yield chunk


def chunks(*texts: str, model: str = "test-model", provider: str = "test-provider") -> list[StreamChunk]:
    return [StreamChunk(content=t, model=model, provider=provider) for t in texts]


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def chat_repo(db):
    return ChatRepository(db)


@pytest.fixture
def bot_repo(db):
    return BotRepository(db)


@pytest.fixture
def server_repo(db):
    return McpServerRepository(db)


@pytest.fixture
def integration_repo(db):
    return IntegrationRepository(db)


@pytest.fixture
def session_factory():
    return FakeSessionFactory()


@pytest.fixture
def status_log():
    return []


@pytest.fixture
def manager(server_repo, integration_repo, session_factory, status_log):
    async def on_status(kind, message, server):
        status_log.append((str(kind), message, server))

    return McpManager(
        server_repo,
        integration_repo,
        on_status=on_status,
        connect_timeout=0.5,
        session_factory=session_factory,
    )
