from fxjournal.storage.kv_store import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore

__all__ = ["InMemoryKeyValueStore", "KeyValueStore", "SqliteKeyValueStore"]
