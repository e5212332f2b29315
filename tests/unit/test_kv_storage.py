from __future__ import annotations

import pytest

from attendance_sync.common.config import get_settings
from attendance_sync.common.errors import StorageError
from attendance_sync.storage.kv import (
    MemoryKeyValueStorage,
    RedisKeyValueStorage,
    SqlKeyValueStorage,
    build_storage,
)


class _FakeRedis:
    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self.down = False

    def get(self, key: str) -> str | None:
        if self.down:
            raise ConnectionError("redis down")
        return self._store.get(key)

    def set(self, key: str, value: str) -> bool:
        if self.down:
            raise ConnectionError("redis down")
        self._store[key] = value
        return True

    def delete(self, key: str) -> int:
        return 1 if self._store.pop(key, None) is not None else 0


def test_sql_storage_roundtrip_and_overwrite(tmp_path) -> None:
    storage = SqlKeyValueStorage.from_dsn(f"sqlite:///{tmp_path / 'nested' / 'q.db'}")
    assert storage.get("k") is None

    storage.set("k", "[1]")
    storage.set("k", "[1, 2]")
    assert storage.get("k") == "[1, 2]"

    storage.delete("k")
    storage.delete("k")
    assert storage.get("k") is None


def test_sql_storage_survives_reopen(tmp_path) -> None:
    dsn = f"sqlite:///{tmp_path / 'q.db'}"
    SqlKeyValueStorage.from_dsn(dsn).set("queue", '[{"type": "attendance"}]')

    reopened = SqlKeyValueStorage.from_dsn(dsn)
    assert reopened.get("queue") == '[{"type": "attendance"}]'


def test_redis_storage_wraps_errors() -> None:
    client = _FakeRedis()
    storage = RedisKeyValueStorage(client)
    storage.set("k", "v")
    assert storage.get("k") == "v"

    client.down = True
    with pytest.raises(StorageError):
        storage.get("k")
    with pytest.raises(StorageError):
        storage.set("k", "v2")


def test_memory_storage_delete_missing_is_noop() -> None:
    storage = MemoryKeyValueStorage()
    storage.delete("nope")
    assert storage.get("nope") is None


def test_build_storage_by_mode(monkeypatch, tmp_path) -> None:
    s = get_settings()
    monkeypatch.setattr(s, "queue_storage", "memory")
    assert isinstance(build_storage(s), MemoryKeyValueStorage)

    monkeypatch.setattr(s, "queue_storage", "sql")
    monkeypatch.setattr(s, "queue_sql_dsn", f"sqlite:///{tmp_path / 'x.db'}")
    assert isinstance(build_storage(s), SqlKeyValueStorage)

    monkeypatch.setattr(s, "queue_storage", "floppy")
    with pytest.raises(StorageError):
        build_storage(s)
