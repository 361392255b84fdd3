"""Repositories for named configuration documents: bots, MCP servers, integrations.

Only stored entries are returned; merging configured defaults is left to the
caller (see :func:`y_chat.config.with_defaults`).
"""

from __future__ import annotations

from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel

from y_chat.core.models import BotConfig, IntegrationConfig, McpServerConfig
from y_chat.log import get_logger
from y_chat.storage.database import Database

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class NotFoundError(LookupError):
    """No stored entry has the requested name."""


class AlreadyExistsError(ValueError):
    """An entry with this name is already stored."""


class NamedConfigRepository(Generic[ModelT]):
    """CRUD over one table of ``(name, json_content)`` rows."""

    table: ClassVar[str]
    model: ClassVar[type[BaseModel]]

    def __init__(self, db: Database):
        self._db = db

    async def list_all(self) -> list[ModelT]:
        cursor = await self._db.conn.execute(
            f"SELECT json_content FROM {self.table} ORDER BY rowid ASC"
        )
        rows = await cursor.fetchall()
        return [self.model.model_validate_json(row["json_content"]) for row in rows]  # type: ignore[misc]

    async def get(self, name: str) -> ModelT | None:
        cursor = await self._db.conn.execute(
            f"SELECT json_content FROM {self.table} WHERE name = ?", (name,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self.model.model_validate_json(row["json_content"])  # type: ignore[return-value]

    async def add(self, item: ModelT) -> None:
        if await self.get(item.name) is not None:  # type: ignore[attr-defined]
            raise AlreadyExistsError(f"{self.table} entry '{item.name}' already exists")  # type: ignore[attr-defined]
        await self._db.conn.execute(
            f"INSERT INTO {self.table} (name, json_content) VALUES (?, ?)",
            (item.name, item.model_dump_json()),  # type: ignore[attr-defined]
        )
        await self._db.conn.commit()
        logger.info("config_added", table=self.table, name=item.name)  # type: ignore[attr-defined]

    async def update(self, name: str, item: ModelT) -> None:
        """Replace the entry called ``name``; the item may carry a new name."""
        cursor = await self._db.conn.execute(
            f"""UPDATE {self.table}
                SET name = ?, json_content = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')
                WHERE name = ?""",
            (item.name, item.model_dump_json(), name),  # type: ignore[attr-defined]
        )
        await self._db.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"{self.table} entry '{name}' not found")
        logger.info("config_updated", table=self.table, name=name)

    async def upsert(self, item: ModelT) -> None:
        await self._db.conn.execute(
            f"""INSERT INTO {self.table} (name, json_content) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    json_content = excluded.json_content,
                    updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (item.name, item.model_dump_json()),  # type: ignore[attr-defined]
        )
        await self._db.conn.commit()

    async def delete(self, name: str) -> None:
        cursor = await self._db.conn.execute(f"DELETE FROM {self.table} WHERE name = ?", (name,))
        await self._db.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"{self.table} entry '{name}' not found")
        logger.info("config_deleted", table=self.table, name=name)


class BotRepository(NamedConfigRepository[BotConfig]):
    table = "bots"
    model = BotConfig


class McpServerRepository(NamedConfigRepository[McpServerConfig]):
    table = "mcp_servers"
    model = McpServerConfig


class IntegrationRepository(NamedConfigRepository[IntegrationConfig]):
    table = "integrations"
    model = IntegrationConfig
