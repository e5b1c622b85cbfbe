from __future__ import annotations

import sqlite3
import uuid
from typing import Any

from .database import SQLiteChatDB
from .errors import ConversationNotFoundError, StoreError
from .time_utils import to_iso, utc_now

MESSAGE_TYPES = {"text", "audio"}


def _conversation_from_row(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "userId": row["user_id"],
        "title": row["title"],
        "createdAt": row["created_at"],
        "updatedAt": row["updated_at"],
    }


def _message_from_row(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "conversationId": row["conversation_id"],
        "content": row["content"],
        "isFromUser": bool(row["is_from_user"]),
        "messageType": row["message_type"],
        "audioUrl": row["audio_url"],
        "createdAt": row["created_at"],
    }


class ConversationStore:
    def __init__(self, db: SQLiteChatDB) -> None:
        self._db = db

    def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, user_id, title, created_at, updated_at
                FROM conversations
                WHERE user_id = ?
                ORDER BY updated_at DESC, rowid DESC
                """,
                (user_id,),
            ).fetchall()
        return [_conversation_from_row(row) for row in rows]

    def get(self, conversation_id: str) -> dict[str, Any] | None:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT id, user_id, title, created_at, updated_at FROM conversations WHERE id = ?",
                (conversation_id,),
            ).fetchone()
        return _conversation_from_row(row) if row else None

    def create(self, *, user_id: str, title: str) -> dict[str, Any]:
        conversation_id = str(uuid.uuid4())
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO conversations (id, user_id, title, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (conversation_id, user_id, title, now, now),
                )
            except sqlite3.IntegrityError as exc:
                raise StoreError(f"Unknown user: {user_id}") from exc
        return {
            "id": conversation_id,
            "userId": user_id,
            "title": title,
            "createdAt": now,
            "updatedAt": now,
        }

    def list_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        with self._db.connection() as conn:
            rows = conn.execute(
                """
                SELECT id, conversation_id, content, is_from_user, message_type, audio_url, created_at
                FROM messages
                WHERE conversation_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (conversation_id,),
            ).fetchall()
        return [_message_from_row(row) for row in rows]

    def add_message(
        self,
        *,
        conversation_id: str,
        content: str,
        is_from_user: bool,
        message_type: str = "text",
        audio_url: str | None = None,
    ) -> dict[str, Any]:
        kind = message_type or "text"
        if kind not in MESSAGE_TYPES:
            raise StoreError(f"Unsupported message type: {kind}")
        message_id = str(uuid.uuid4())
        now = to_iso(utc_now())
        with self._db.connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO messages (
                      id, conversation_id, content, is_from_user, message_type, audio_url, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (message_id, conversation_id, content, 1 if is_from_user else 0, kind, audio_url or None, now),
                )
            except sqlite3.IntegrityError as exc:
                raise ConversationNotFoundError(f"Conversation not found: {conversation_id}") from exc
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (now, conversation_id),
            )
        return {
            "id": message_id,
            "conversationId": conversation_id,
            "content": content,
            "isFromUser": is_from_user,
            "messageType": kind,
            "audioUrl": audio_url or None,
            "createdAt": now,
        }
