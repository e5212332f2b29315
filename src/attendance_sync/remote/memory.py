"""
In-memory реализации remote-слоя.

Используются в тестах и в локальном режиме без сервера.
"""

from __future__ import annotations

import copy
import threading
from typing import Any

from .base import Document


class InMemoryGateway:
    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def seed(self, collection: str, key: str, data: dict[str, Any]) -> None:
        with self._lock:
            self.collections.setdefault(collection, {})[key] = copy.deepcopy(data)

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self.collections.get(collection, {}).get(key)
            return copy.deepcopy(doc) if doc is not None else None

    def put(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        with self._lock:
            doc = self.collections.setdefault(collection, {}).setdefault(key, {})
            doc.update(copy.deepcopy(fields))

    def delete(self, collection: str, key: str) -> None:
        with self._lock:
            self.collections.get(collection, {}).pop(key, None)

    def query(self, collection: str, filters: dict[str, Any]) -> list[Document]:
        with self._lock:
            docs = self.collections.get(collection, {})
            return [
                Document(key=k, data=copy.deepcopy(v))
                for k, v in docs.items()
                if all(v.get(f) == val for f, val in filters.items())
            ]


class InMemoryBackend:
    """Каноническое API с дедупом по естественному ключу (как на сервере)."""

    NATURAL_KEYS = {
        "attendance": ("studentId", "scanId"),
        "notifications": ("id",),
    }

    def __init__(self) -> None:
        self.records: dict[str, dict[tuple, dict[str, Any]]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def submit(self, resource: str, payload: dict[str, Any]) -> None:
        self.calls.append((resource, copy.deepcopy(payload)))
        fields = self.NATURAL_KEYS.get(resource)
        if fields and all(payload.get(f) is not None for f in fields):
            natural_key = tuple(str(payload[f]) for f in fields)
        else:
            natural_key = (str(len(self.calls)),)
        self.records.setdefault(resource, {})[natural_key] = copy.deepcopy(payload)
