from viralflow.persistence.resume import ResumeLayer
from viralflow.persistence.store import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "ResumeLayer",
    "SqliteKeyValueStore",
]
