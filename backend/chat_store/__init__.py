from .database import SQLiteChatDB
from .errors import ConversationNotFoundError, DuplicateUserError, StoreError
from .service import ChatStore
from .user_store import public_user

__all__ = [
    "SQLiteChatDB",
    "ChatStore",
    "StoreError",
    "DuplicateUserError",
    "ConversationNotFoundError",
    "public_user",
]
