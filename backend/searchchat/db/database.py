"""Database connection and queries"""
import json
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional, Sequence

import aiosqlite

from ..config import config
from ..utils.structured_logger import get_logger
from .models import ChatMessage, Conversation, ConversationSummary

logger = get_logger(__name__)


class OwnershipViolation(Exception):
    """The conversation id belongs to another user"""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat {chat_id} does not belong to the current user")
        self.chat_id = chat_id


@asynccontextmanager
async def _connect():
    """Open a connection in autocommit mode; writers open their own transaction"""
    async with aiosqlite.connect(config.DATABASE_PATH, isolation_level=None) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys = ON")
        yield db


@asynccontextmanager
async def _transaction():
    """BEGIN IMMEDIATE ... COMMIT, rolled back on any error"""
    async with _connect() as db:
        await db.execute("BEGIN IMMEDIATE")
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        else:
            await db.commit()


async def init_db():
    """Create tables and indexes"""
    config.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

    async with _connect() as db:
        await db.execute("PRAGMA journal_mode = WAL")
        await db.executescript("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT,
                email TEXT,
                is_admin INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_requests (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                day TEXT NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                UNIQUE (user_id, day)
            );

            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                chat_id TEXT NOT NULL REFERENCES chats(id) ON DELETE CASCADE,
                role TEXT NOT NULL,
                position INTEGER NOT NULL,
                content TEXT,
                parts TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (chat_id, position)
            );

            CREATE INDEX IF NOT EXISTS idx_chats_user_updated
            ON chats(user_id, updated_at DESC);

            CREATE INDEX IF NOT EXISTS idx_messages_chat_position
            ON messages(chat_id, position);
        """)
    logger.info("Database initialized", path=str(config.DATABASE_PATH))


async def ping() -> bool:
    """True when the database answers a trivial query"""
    try:
        async with _connect() as db:
            await db.execute("SELECT 1")
    except (aiosqlite.Error, OSError) as e:
        logger.error("Database ping failed", error=str(e))
        return False
    return True


# ==================== Users ====================

async def upsert_user(user_id: str, name: Optional[str] = None, email: Optional[str] = None,
                      is_admin: bool = False):
    """Create or update a user row (identities themselves come from the auth provider)"""
    async with _connect() as db:
        await db.execute("""
            INSERT INTO users (id, name, email, is_admin, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                email = excluded.email,
                is_admin = excluded.is_admin
        """, (user_id, name, email, int(is_admin), datetime.now().isoformat()))


async def is_user_admin(user_id: str) -> bool:
    """Unknown users are not admins"""
    async with _connect() as db:
        cursor = await db.execute("SELECT is_admin FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
    return bool(row and row["is_admin"])


# ==================== Daily usage ====================

async def get_user_requests_today(user_id: str, today: date) -> int:
    """Number of requests the user made on the given day"""
    async with _connect() as db:
        cursor = await db.execute(
            "SELECT count FROM user_requests WHERE user_id = ? AND day = ?",
            (user_id, today.isoformat()),
        )
        row = await cursor.fetchone()
    return row["count"] if row else 0


async def consume_daily_request(user_id: str, today: date, limit: int) -> bool:
    """
    Count one request against today's quota

    Check and increment happen in one conditional upsert, so concurrent
    requests can never push the counter past the limit.

    Returns:
        bool: True when the request was counted, False when the quota is used up
    """
    if limit <= 0:
        return False

    async with _transaction() as db:
        cursor = await db.execute("""
            INSERT INTO user_requests (user_id, day, count)
            VALUES (?, ?, 1)
            ON CONFLICT(user_id, day) DO UPDATE SET count = count + 1
            WHERE user_requests.count < ?
        """, (user_id, today.isoformat(), limit))
        return cursor.rowcount == 1


# ==================== Conversations ====================

def derive_title(messages: Sequence[ChatMessage]) -> str:
    """First user message, truncated; "New Chat" when there is none"""
    first_user = next((m for m in messages if m.role == "user"), None)
    title = first_user.text()[:config.TITLE_MAX_CHARS] if first_user else ""
    return title or config.DEFAULT_TITLE


def _serialize_parts(message: ChatMessage) -> Optional[str]:
    if message.parts is None:
        return None
    return json.dumps(
        [part.model_dump(by_alias=True, mode="json") for part in message.parts],
        ensure_ascii=False,
    )


async def _chat_owner(db: aiosqlite.Connection, chat_id: str) -> Optional[str]:
    cursor = await db.execute("SELECT user_id FROM chats WHERE id = ?", (chat_id,))
    row = await cursor.fetchone()
    return row["user_id"] if row else None


async def _write_chat(user_id: str, chat_id: str, title: str, messages: Sequence[ChatMessage]):
    """Insert or update the chat row and replace all of its messages in one transaction"""
    now = datetime.now().isoformat()

    async with _transaction() as db:
        owner = await _chat_owner(db, chat_id)
        if owner is not None and owner != user_id:
            raise OwnershipViolation(chat_id)

        if owner is None:
            await db.execute("""
                INSERT INTO chats (id, user_id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, (chat_id, user_id, title, now, now))
        else:
            await db.execute("""
                UPDATE chats SET title = ?, updated_at = ? WHERE id = ?
            """, (title, now, chat_id))
            await db.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))

        await db.executemany("""
            INSERT INTO messages (chat_id, role, position, content, parts, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [
            (chat_id, message.role, position, message.content, _serialize_parts(message), now)
            for position, message in enumerate(messages)
        ])

    logger.info("Chat saved", chat_id=chat_id, message_count=len(messages), created=owner is None)


async def create_chat(user_id: str, chat_id: str, title: str, messages: Sequence[ChatMessage]):
    """
    Create a conversation at the start of its first turn

    A conversation already owned by the same user (a retried first turn) is
    overwritten rather than duplicated.

    Raises:
        OwnershipViolation: the id belongs to another user
    """
    await _write_chat(user_id, chat_id, title, messages)


async def replace_chat(user_id: str, chat_id: str, title: str, messages: Sequence[ChatMessage]):
    """
    Save the full message list of a conversation, creating it when missing

    Raises:
        OwnershipViolation: the id belongs to another user
    """
    await _write_chat(user_id, chat_id, title, messages)


async def get_chat_owner(chat_id: str) -> Optional[str]:
    """Owner of a conversation, None when it does not exist"""
    async with _connect() as db:
        return await _chat_owner(db, chat_id)


async def get_chat(chat_id: str, user_id: str) -> Optional[Conversation]:
    """Conversation with messages ordered by position; None when missing or not owned by user_id"""
    async with _connect() as db:
        cursor = await db.execute(
            "SELECT * FROM chats WHERE id = ? AND user_id = ?",
            (chat_id, user_id),
        )
        chat = await cursor.fetchone()
        if not chat:
            return None

        cursor = await db.execute(
            "SELECT role, content, parts FROM messages WHERE chat_id = ? ORDER BY position",
            (chat_id,),
        )
        rows = await cursor.fetchall()

    return Conversation(
        id=chat["id"],
        user_id=chat["user_id"],
        title=chat["title"],
        created_at=datetime.fromisoformat(chat["created_at"]),
        updated_at=datetime.fromisoformat(chat["updated_at"]),
        messages=[
            ChatMessage.model_validate({
                "role": row["role"],
                "content": row["content"],
                "parts": json.loads(row["parts"]) if row["parts"] is not None else None,
            })
            for row in rows
        ],
    )


async def get_chats(user_id: str) -> List[ConversationSummary]:
    """All conversations of a user, most recently updated first"""
    async with _connect() as db:
        cursor = await db.execute("""
            SELECT id, title, created_at, updated_at FROM chats
            WHERE user_id = ?
            ORDER BY updated_at DESC
        """, (user_id,))
        rows = await cursor.fetchall()

    return [
        ConversationSummary(
            id=row["id"],
            title=row["title"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
        for row in rows
    ]


async def delete_chat(chat_id: str, user_id: str) -> bool:
    """Delete a conversation and its messages; False when missing or not owned"""
    async with _transaction() as db:
        cursor = await db.execute(
            "DELETE FROM chats WHERE id = ? AND user_id = ?",
            (chat_id, user_id),
        )
        deleted = cursor.rowcount > 0
    if deleted:
        logger.info("Chat deleted", chat_id=chat_id)
    return deleted
