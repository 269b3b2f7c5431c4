from .base import SnapshotStore
from .memory import InMemorySnapshotStore
from .sql import SqlSnapshotStore

__all__ = [
    "SnapshotStore",
    "InMemorySnapshotStore",
    "SqlSnapshotStore",
]
