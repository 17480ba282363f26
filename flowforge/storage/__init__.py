from .base import MemoryStore, Store
from .manager import StorageManager
from .repositories import FlowStore, RunStore
from .sqlite_store import SqliteStore

__all__ = [
    "FlowStore",
    "MemoryStore",
    "RunStore",
    "SqliteStore",
    "StorageManager",
    "Store",
]
