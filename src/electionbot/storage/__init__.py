"""Хранилище документов: транспорт, optimistic concurrency, репозиторий гильдий."""

from .repository import GuildRepository
from .transport import DocumentTransport, InMemoryTransport, JsonFileTransport
from .versioned_store import VersionedStateStore

__all__ = [
    "DocumentTransport",
    "InMemoryTransport",
    "JsonFileTransport",
    "VersionedStateStore",
    "GuildRepository",
]
