"""
SQLite storage for conversations and messages.
This is the source of truth: one row per conversation (keyed by the
client session id) and one immutable row per message.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from helpline.errors import ConstraintViolation, StoreError
from helpline.storage.models import Conversation, Message, Sender, new_id, utcnow

logger = logging.getLogger(__name__)

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    sender TEXT NOT NULL CHECK (sender IN ('user', 'ai')),
    text TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation_id
    ON messages(conversation_id);
CREATE INDEX IF NOT EXISTS idx_messages_timestamp
    ON messages(timestamp);
CREATE INDEX IF NOT EXISTS idx_conversations_session_id
    ON conversations(session_id);
"""


class SQLiteStore:
    """SQLite conversation store. One short-lived connection per operation."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with self._connect() as conn:
            conn.executescript(CREATE_TABLES)
        logger.info("SQLite store initialized at %s", self.db_path)

    @contextmanager
    def _connect(self):
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise ConstraintViolation(str(e)) from e
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ping(self) -> None:
        """Raise StoreError if the database cannot answer a trivial query."""
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    # ─ Conversations ─────────────────────────────────────────────────────────

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        return Conversation.from_row(row) if row else None

    def find_conversation_by_session(self, session_id: str) -> Conversation | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        return Conversation.from_row(row) if row else None

    def insert_conversation(self, session_id: str) -> str:
        """Insert a new conversation row. Raises ConstraintViolation on a duplicate session."""
        conversation_id = new_id()
        now = utcnow()
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO conversations (id, session_id, created_at, updated_at)
                   VALUES (?, ?, ?, ?)""",
                (conversation_id, session_id, now, now),
            )
        logger.debug("Created conversation %s for session %s", conversation_id, session_id)
        return conversation_id

    def touch_conversation(self, conversation_id: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (utcnow(), conversation_id),
            )

    def delete_conversation(self, conversation_id: str) -> int:
        """Delete a conversation; its messages go with it. Returns rows deleted (0 or 1)."""
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        logger.info("Deleted conversation %s (rows=%d)", conversation_id, cur.rowcount)
        return cur.rowcount

    # ─ Messages ──────────────────────────────────────────────────────────────

    def insert_message(self, conversation_id: str, sender: Sender, text: str) -> str:
        """Append a message. Raises ConstraintViolation if the conversation does not exist."""
        message_id = new_id()
        now = utcnow()
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO messages
                   (id, conversation_id, sender, text, timestamp, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (message_id, conversation_id, Sender(sender).value, text, now, now),
            )
        logger.debug("Stored message %s (sender=%s, conv=%s)", message_id, sender, conversation_id)
        return message_id

    def get_message(self, message_id: str) -> Message | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE id = ?",
                (message_id,),
            ).fetchone()
        return Message.from_row(row) if row else None

    def list_messages(self, conversation_id: str) -> list[Message]:
        """All messages for a conversation, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM messages
                   WHERE conversation_id = ?
                   ORDER BY timestamp ASC, rowid ASC""",
                (conversation_id,),
            ).fetchall()
        return [Message.from_row(r) for r in rows]

    # ─ Administrative ────────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        """Return row counts for the operator CLI."""
        with self._connect() as conn:
            conv_count = conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]
            msg_count = conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0]
            user_count = conn.execute("SELECT COUNT(*) FROM messages WHERE sender='user'").fetchone()[0]
            ai_count = conn.execute("SELECT COUNT(*) FROM messages WHERE sender='ai'").fetchone()[0]
        return {
            "conversations": conv_count,
            "messages": msg_count,
            "user_messages": user_count,
            "ai_messages": ai_count,
        }

    def export_all_json(self) -> list[dict]:
        """Export every conversation with its ordered messages."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversations ORDER BY created_at, rowid"
            ).fetchall()
        conversations = [Conversation.from_row(r) for r in rows]

        return [
            {
                "conversation_id": conv.id,
                "session_id": conv.session_id,
                "created_at": conv.created_at,
                "updated_at": conv.updated_at,
                "messages": [m.to_dict() for m in self.list_messages(conv.id)],
            }
            for conv in conversations
        ]
