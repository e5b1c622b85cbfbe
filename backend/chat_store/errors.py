from __future__ import annotations


class StoreError(Exception):
    pass


class DuplicateUserError(StoreError):
    pass


class ConversationNotFoundError(StoreError):
    pass
