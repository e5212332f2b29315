"""
Key-value хранилища для локальной очереди.

Контракт:
- get(key) -> str | None
- set(key, value) — полная перезапись значения одной операцией
- delete(key) — no-op, если ключа нет

Любая ошибка бэкенда пробрасывается как StorageError.
"""

from __future__ import annotations

import threading
from typing import Any, Protocol

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from attendance_sync.common.config import Settings, get_settings
from attendance_sync.common.errors import StorageError
from attendance_sync.common.utils import short_err

from .db import build_engine, build_session_factory, db_session
from .models import KeyValueEntry


class KeyValueStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


# =============================================================================
# IN-MEMORY
# =============================================================================
class MemoryKeyValueStorage:
    """Для тестов и эфемерного режима (переживает только "перезапуск" объекта-владельца)."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


# =============================================================================
# SQL (SQLAlchemy)
# =============================================================================
class SqlKeyValueStorage:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._factory = build_session_factory(engine)

    @classmethod
    def from_dsn(cls, dsn: str) -> SqlKeyValueStorage:
        try:
            return cls(build_engine(dsn))
        except SQLAlchemyError as e:
            raise StorageError("Failed to open queue database", {"err": short_err(e)}) from e

    def get(self, key: str) -> str | None:
        try:
            with db_session(self._factory) as session:
                row = session.get(KeyValueEntry, key)
                return row.value if row else None
        except SQLAlchemyError as e:
            raise StorageError("Queue read failed", {"key": key, "err": short_err(e)}) from e

    def set(self, key: str, value: str) -> None:
        try:
            with db_session(self._factory) as session:
                row = session.get(KeyValueEntry, key)
                if row is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    row.value = value
        except SQLAlchemyError as e:
            raise StorageError("Queue write failed", {"key": key, "err": short_err(e)}) from e

    def delete(self, key: str) -> None:
        try:
            with db_session(self._factory) as session:
                row = session.get(KeyValueEntry, key)
                if row is not None:
                    session.delete(row)
        except SQLAlchemyError as e:
            raise StorageError("Queue delete failed", {"key": key, "err": short_err(e)}) from e


# =============================================================================
# REDIS
# =============================================================================
class RedisKeyValueStorage:
    def __init__(self, client: Any) -> None:
        self.client = client

    def get(self, key: str) -> str | None:
        try:
            value = self.client.get(key)
        except Exception as e:
            raise StorageError("Queue read failed", {"key": key, "err": short_err(e)}) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self.client.set(key, value)
        except Exception as e:
            raise StorageError("Queue write failed", {"key": key, "err": short_err(e)}) from e

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except Exception as e:
            raise StorageError("Queue delete failed", {"key": key, "err": short_err(e)}) from e


def build_storage(settings: Settings | None = None) -> KeyValueStorage:
    s = settings or get_settings()
    mode = (s.queue_storage or "sql").strip().lower()
    if mode == "sql":
        return SqlKeyValueStorage.from_dsn(s.queue_sql_dsn)
    if mode == "redis":
        from .redis import redis_client

        return RedisKeyValueStorage(redis_client())
    if mode == "memory":
        return MemoryKeyValueStorage()
    raise StorageError(f"Unknown QUEUE_STORAGE: {mode}", {"allowed": "sql,redis,memory"})
