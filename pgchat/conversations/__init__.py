"""Chat persistence."""

from .store import (
    MAX_CHAT_NAME_LENGTH,
    ChatNotFoundError,
    ChatOwnershipError,
    ChatStore,
    ChatStoreError,
    default_chat_name,
)

__all__ = [
    "ChatNotFoundError",
    "ChatOwnershipError",
    "ChatStore",
    "ChatStoreError",
    "MAX_CHAT_NAME_LENGTH",
    "default_chat_name",
]
