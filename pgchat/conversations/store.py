"""Chat persistence in the system database."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from typing import Any

import asyncpg

from pgchat.config import get_settings
from pgchat.connectors import normalize_postgres_url
from pgchat.models.api import MAX_CHAT_NAME_LENGTH
from pgchat.models.transcript import Message, ensure_resolved, serialize_transcript

logger = logging.getLogger(__name__)

_CREATE_CHATS_TABLE = """
CREATE TABLE IF NOT EXISTS chats (
    id UUID PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL,
    messages JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);
"""

_CREATE_CHATS_OWNER_INDEX = """
CREATE INDEX IF NOT EXISTS chats_owner_created_at_idx
ON chats (owner_id, created_at DESC);
"""


class ChatStoreError(Exception):
    """Base exception for chat persistence."""


class ChatNotFoundError(ChatStoreError):
    pass


class ChatOwnershipError(ChatStoreError):
    pass


def default_chat_name(existing_count: int | None) -> str:
    """Ordinal name for an owner's next chat; the first one is "Chat 1"."""
    return f"Chat {(existing_count or 0) + 1}"


class ChatStore:
    """
    Persist chat transcripts, one row per chat.

    Writes are last-write-wins: two turns completing on the same chat
    overwrite each other's transcript without a version check.
    """

    def __init__(self, database_url: str | None = None) -> None:
        settings = get_settings()
        self._database_url = database_url or (
            str(settings.system_database.url) if settings.system_database.url else None
        )
        self._min_size = settings.system_database.pool_min_size
        self._max_size = settings.system_database.pool_max_size
        self._pool: asyncpg.Pool | None = None

    async def initialize(self) -> None:
        if self._pool is None:
            if not self._database_url:
                raise ValueError("SYSTEM_DATABASE_URL must be set for chat storage.")
            dsn = normalize_postgres_url(self._database_url)
            self._pool = await asyncpg.create_pool(
                dsn=dsn, min_size=self._min_size, max_size=self._max_size
            )
        await self._pool.execute(_CREATE_CHATS_TABLE)
        await self._pool.execute(_CREATE_CHATS_OWNER_INDEX)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def find_chat(self, chat_id: str) -> dict[str, Any] | None:
        """Fetch a chat regardless of owner, or None."""
        self._ensure_pool()
        row = await self._pool.fetchrow(
            """
            SELECT id, owner_id, name, messages, created_at
            FROM chats
            WHERE id = $1
            """,
            uuid.UUID(str(chat_id)),
        )
        return self._row_to_payload(row) if row is not None else None

    async def get_chat(self, owner_id: str, chat_id: str) -> dict[str, Any]:
        """
        Fetch a chat owned by ``owner_id``.

        Raises:
            ChatNotFoundError: No chat has this id
            ChatOwnershipError: The chat belongs to another owner
        """
        chat = await self.find_chat(chat_id)
        if chat is None:
            raise ChatNotFoundError(f"Chat not found: {chat_id}")
        if chat["owner_id"] != owner_id:
            raise ChatOwnershipError(f"Chat {chat_id} is not owned by the caller")
        return chat

    async def list_chats(self, owner_id: str) -> list[dict[str, Any]]:
        self._ensure_pool()
        rows = await self._pool.fetch(
            """
            SELECT id, name, created_at
            FROM chats
            WHERE owner_id = $1
            ORDER BY created_at DESC
            """,
            owner_id,
        )
        return [
            {"id": str(row["id"]), "name": row["name"], "created_at": row["created_at"]}
            for row in rows
        ]

    async def count_chats(self, owner_id: str) -> int:
        self._ensure_pool()
        count = await self._pool.fetchval(
            "SELECT COUNT(*) FROM chats WHERE owner_id = $1", owner_id
        )
        return int(count or 0)

    async def save_turn(
        self, owner_id: str, chat_id: str, messages: list[Message]
    ) -> dict[str, Any]:
        """
        Create the chat on its first turn, otherwise overwrite its transcript.

        Raises:
            ChatOwnershipError: The chat exists under another owner
            ValueError: The transcript holds unresolved tool invocations
        """
        ensure_resolved(messages)
        payload = json.dumps(serialize_transcript(messages))

        existing = await self.find_chat(chat_id)
        if existing is None:
            name = default_chat_name(await self.count_chats(owner_id))
            row = await self._pool.fetchrow(
                """
                INSERT INTO chats (id, owner_id, name, messages, created_at)
                VALUES ($1, $2, $3, $4::jsonb, $5)
                RETURNING id, owner_id, name, messages, created_at
                """,
                uuid.UUID(str(chat_id)),
                owner_id,
                name,
                payload,
                datetime.now(UTC),
            )
            logger.info("Chat created", extra={"chat_id": str(chat_id), "chat_name": name})
            return self._row_to_payload(row)

        if existing["owner_id"] != owner_id:
            raise ChatOwnershipError(f"Chat {chat_id} is not owned by the caller")

        row = await self._pool.fetchrow(
            """
            UPDATE chats
            SET messages = $3::jsonb
            WHERE id = $1 AND owner_id = $2
            RETURNING id, owner_id, name, messages, created_at
            """,
            uuid.UUID(str(chat_id)),
            owner_id,
            payload,
        )
        if row is None:
            raise ChatNotFoundError(f"Chat not found: {chat_id}")
        return self._row_to_payload(row)

    async def rename_chat(self, owner_id: str, chat_id: str, name: str) -> None:
        """
        Rename a chat owned by ``owner_id``.

        Raises:
            ValueError: Empty name or longer than 100 characters
            ChatNotFoundError / ChatOwnershipError: As for ``get_chat``
        """
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValueError("Name is required")
        if len(cleaned) > MAX_CHAT_NAME_LENGTH:
            raise ValueError(f"Name must be at most {MAX_CHAT_NAME_LENGTH} characters")

        await self.get_chat(owner_id, chat_id)
        await self._pool.execute(
            "UPDATE chats SET name = $3 WHERE id = $1 AND owner_id = $2",
            uuid.UUID(str(chat_id)),
            owner_id,
            cleaned,
        )

    def _ensure_pool(self) -> None:
        if self._pool is None:
            raise RuntimeError("ChatStore not initialized")

    @staticmethod
    def _decode_json_field(value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return None
        return value

    @classmethod
    def _row_to_payload(cls, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": str(row["id"]),
            "owner_id": row["owner_id"],
            "name": row["name"],
            "messages": cls._decode_json_field(row["messages"]) or [],
            "created_at": row["created_at"],
        }
