"""
Абстракции remote-хранилища.

- RemoteGateway — точечные чтения/merge-записи/удаления и equality-запросы
  по именованным коллекциям денормализованных документов
- BackendApi — каноническое API (посещаемость, уведомления), дедуп на сервере
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class Document:
    key: str
    data: dict[str, Any]


class RemoteGateway(Protocol):
    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        """None, если документа нет."""
        ...

    def put(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        """Upsert с merge по полям: поля, которых нет в fields, сохраняются."""
        ...

    def delete(self, collection: str, key: str) -> None:
        """Нет документа — успешный no-op."""
        ...

    def query(self, collection: str, filters: dict[str, Any]) -> list[Document]:
        """Все документы, у которых каждое поле из filters равно значению."""
        ...


class BackendApi(Protocol):
    def submit(self, resource: str, payload: dict[str, Any]) -> None: ...
