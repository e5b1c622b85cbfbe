from __future__ import annotations

from typing import Any

from .conversation_store import ConversationStore
from .database import SQLiteChatDB
from .passwords import verify_password
from .user_store import UserStore


class ChatStore:
    """Users, conversations and their message transcripts."""

    def __init__(self, db: SQLiteChatDB) -> None:
        self.db = db
        self.users = UserStore(db)
        self.conversations = ConversationStore(db)

    def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        return self.users.get_by_email(email)

    def create_user(self, *, email: str, password: str, full_name: str) -> dict[str, Any]:
        return self.users.create(email=email, password=password, full_name=full_name)

    def verify_password(self, password: str, hashed_password: str) -> bool:
        return verify_password(password, hashed_password)

    def get_conversations_by_user_id(self, user_id: str) -> list[dict[str, Any]]:
        return self.conversations.list_for_user(user_id)

    def create_conversation(self, *, user_id: str, title: str) -> dict[str, Any]:
        return self.conversations.create(user_id=user_id, title=title)

    def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        return self.conversations.get(conversation_id)

    def get_messages_by_conversation_id(self, conversation_id: str) -> list[dict[str, Any]]:
        return self.conversations.list_messages(conversation_id)

    def create_message(
        self,
        *,
        conversation_id: str,
        content: str,
        is_from_user: bool,
        message_type: str = "text",
        audio_url: str | None = None,
    ) -> dict[str, Any]:
        return self.conversations.add_message(
            conversation_id=conversation_id,
            content=content,
            is_from_user=is_from_user,
            message_type=message_type,
            audio_url=audio_url,
        )
