from chatbridge.store.base import MessageStore
from chatbridge.store.chat_db import ChatDatabaseStore
from chatbridge.store.memory import InMemoryMessageStore

__all__ = ["ChatDatabaseStore", "InMemoryMessageStore", "MessageStore"]
