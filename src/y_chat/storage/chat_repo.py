"""Chat repository: whole-document persistence of chats with search and paging."""

from __future__ import annotations

import secrets

from pydantic import ValidationError

from y_chat.core.models import Chat, ChatPage, iso_now
from y_chat.log import get_logger
from y_chat.storage.database import Database

logger = get_logger(__name__)


class ChatRepository:
    """CRUD + substring search over stored chats. Saves are last-writer-wins."""

    def __init__(self, db: Database):
        self._db = db

    async def get_chat(self, chat_id: str) -> Chat | None:
        cursor = await self._db.conn.execute(
            "SELECT json_content FROM chats WHERE chat_id = ?", (chat_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_chat(row)

    async def get_or_create_chat(self, chat_id: str) -> Chat:
        """Return the stored chat or a new empty one; a new chat is not saved here."""
        chat = await self.get_chat(chat_id)
        if chat is not None:
            return chat
        now = iso_now()
        return Chat(id=chat_id, create_time=now, update_time=now)

    async def exists(self, chat_id: str) -> bool:
        cursor = await self._db.conn.execute("SELECT 1 FROM chats WHERE chat_id = ?", (chat_id,))
        return await cursor.fetchone() is not None

    async def save_chat(self, chat: Chat) -> Chat:
        """Insert or overwrite the whole chat, assigning an id when it has none."""
        if not chat.id:
            chat.id = await self.generate_unique_id()
        chat.update_time = iso_now()
        await self._db.conn.execute(
            """INSERT INTO chats (chat_id, json_content, update_time)
               VALUES (?, ?, ?)
               ON CONFLICT(chat_id)
               DO UPDATE SET json_content = excluded.json_content,
                             update_time = excluded.update_time""",
            (chat.id, chat.model_dump_json(exclude_none=True), chat.update_time),
        )
        await self._db.conn.commit()
        logger.debug("chat_saved", chat_id=chat.id, message_count=len(chat.messages))
        return chat

    async def delete_chat(self, chat_id: str) -> bool:
        cursor = await self._db.conn.execute("DELETE FROM chats WHERE chat_id = ?", (chat_id,))
        await self._db.conn.commit()
        return cursor.rowcount > 0

    async def list_chats(self, search: str = "", page: int = 1, limit: int = 10) -> ChatPage:
        """Newest-first page of chats whose JSON contains every search term."""
        page = max(page, 1)
        where = ""
        params: list[object] = []
        terms = search.split()
        if terms:
            where = "WHERE " + " AND ".join("json_content LIKE ?" for _ in terms)
            params.extend(f"%{term}%" for term in terms)

        cursor = await self._db.conn.execute(f"SELECT COUNT(*) FROM chats {where}", params)
        total = (await cursor.fetchone())[0]

        cursor = await self._db.conn.execute(
            f"""SELECT json_content FROM chats {where}
                ORDER BY update_time DESC, rowid DESC
                LIMIT ? OFFSET ?""",
            [*params, limit, (page - 1) * limit],
        )
        rows = await cursor.fetchall()
        chats = [chat for chat in (self._row_to_chat(row) for row in rows) if chat is not None]
        return ChatPage(chats=chats, total=total, page=page, limit=limit)

    async def generate_unique_id(self) -> str:
        """A 6-character hex id not used by any stored chat."""
        while True:
            candidate = secrets.token_hex(3)
            if not await self.exists(candidate):
                return candidate

    @staticmethod
    def _row_to_chat(row) -> Chat | None:
        try:
            return Chat.model_validate_json(row["json_content"])
        except ValidationError as e:
            logger.error("chat_decode_error", error=str(e))
            return None
