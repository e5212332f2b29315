from __future__ import annotations

import json

import pytest

from attendance_sync.common.config import get_settings
from attendance_sync.common.errors import StorageError, TransientNetworkError, ValidationError
from attendance_sync.contracts.documents import CONVERSATIONS, messages_collection
from attendance_sync.contracts.tasks import ChatMessagePayload
from attendance_sync.domain.enums import SyncPassStatus, TaskType, TriggerSource
from attendance_sync.remote.memory import InMemoryBackend, InMemoryGateway
from attendance_sync.services.offline_sync import build_offline_sync
from attendance_sync.storage.kv import MemoryKeyValueStorage


def _sync(monkeypatch, **kwargs):
    monkeypatch.setattr(get_settings(), "sync_max_attempts", 2)
    backend = InMemoryBackend()
    sync = build_offline_sync(
        storage=MemoryKeyValueStorage(),
        gateway=InMemoryGateway(),
        backend=backend,
        **kwargs,
    )
    return sync, backend


def test_enqueue_accepts_request_dict_and_type_payload(monkeypatch) -> None:
    sync, _ = _sync(monkeypatch)
    sync.enqueue({"type": "attendance", "payload": {"studentId": "ST-001", "scanId": "s1"}})
    sync.enqueue(TaskType.notification, {"id": "n1", "title": "Late"})

    queue = sync.get_queue()
    assert [r["type"] for r in queue] == ["attendance", "notification"]
    assert sync.queue_length() == 2

    with pytest.raises(ValidationError):
        sync.enqueue({"payload": {}})


def test_attendance_and_notification_resend_is_deduplicated(monkeypatch) -> None:
    sync, backend = _sync(monkeypatch)
    for _ in range(2):
        sync.enqueue("attendance", {"studentId": "ST-001", "scanId": "s1", "entry": "IN"})
    sync.enqueue("notification", {"id": "n1"})

    result = sync.trigger_sync()

    assert result.to_dict()["processedCount"] == 3
    assert [c[0] for c in backend.calls] == ["attendance", "attendance", "notifications"]
    assert len(backend.records["attendance"]) == 1
    assert sync.queue_length() == 0


def test_clear_queue_and_dead_letter_surface(monkeypatch) -> None:
    sync, _ = _sync(monkeypatch)
    # payload без scanId никогда не пройдёт валидацию
    sync.enqueue("undo_attendance_scan", {"studentId": "ST-001"})

    sync.trigger_sync()
    assert sync.queue_length() == 1
    sync.trigger_sync()
    assert sync.queue_length() == 0
    [dead] = sync.dead_letters()
    assert dead["attempts"] == 2
    assert "scanId" in dead["lastError"]

    assert sync.retry_dead_letters() == 1
    assert sync.queue_length() == 1
    sync.clear_queue()
    assert sync.get_queue() == []


def test_foreground_trigger_skipped_while_offline(monkeypatch) -> None:
    sync, _ = _sync(monkeypatch, initially_connected=False)
    sync.enqueue("attendance", {"studentId": "ST-001", "scanId": "s1"})

    assert sync.on_app_foreground() is None
    assert sync.queue_length() == 1

    assert sync.on_connectivity_change(True).status == SyncPassStatus.completed
    # повторное "online" без смены состояния ничего не запускает
    assert sync.on_connectivity_change(True) is None
    assert sync.on_app_foreground().status == SyncPassStatus.empty


def test_trigger_sync_reports_source(monkeypatch) -> None:
    sync, _ = _sync(monkeypatch)
    assert sync.trigger_sync(TriggerSource.manual).status == SyncPassStatus.empty


class _ReadsFailAfterWrite(MemoryKeyValueStorage):
    def __init__(self) -> None:
        super().__init__()
        self.writes = 0

    def get(self, key: str) -> str | None:
        if self.writes:
            raise StorageError("disk unavailable")
        return super().get(key)

    def set(self, key: str, value: str) -> None:
        super().set(key, value)
        self.writes += 1


def test_enqueue_succeeds_when_depth_refresh_cannot_read(monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "sync_max_attempts", 2)
    storage = _ReadsFailAfterWrite()
    sync = build_offline_sync(
        storage=storage, gateway=InMemoryGateway(), backend=InMemoryBackend()
    )

    task = sync.enqueue("attendance", {"studentId": "ST-001", "scanId": "s1"})

    [record] = json.loads(storage._data["offline_sync_queue"])
    assert record["id"] == task.id
    assert storage.writes == 1


def test_queued_chat_message_is_sent_once_on_reconnect(monkeypatch) -> None:
    sync, _ = _sync(monkeypatch, initially_connected=False)
    gw = sync.ctx.gateway
    first = sync.enqueue_message("c-42", "ST-001", "running late")
    second = sync.enqueue_message("c-42", "ST-001", "here now")
    assert first.payload["id"] != second.payload["id"]

    result = sync.on_connectivity_change(True)

    assert result.processed_count == 2
    assert gw.get(CONVERSATIONS, "c-42")["id"] == "c-42"
    messages = gw.collections[messages_collection("c-42")]
    assert {m["text"] for m in messages.values()} == {"running late", "here now"}
    assert all(m["status"] == "sent" and m["senderId"] == "ST-001" for m in messages.values())

    # повторная отправка того же сообщения не создаёт копию
    sync.enqueue(first)
    sync.trigger_sync()
    assert len(gw.collections[messages_collection("c-42")]) == 2


def test_chat_message_failure_keeps_only_that_message(monkeypatch) -> None:
    sync, _ = _sync(monkeypatch)
    gw = sync.ctx.gateway
    original_put = gw.put

    def _put(collection, key, fields):
        if fields.get("text") == "boom":
            raise TransientNetworkError("offline")
        original_put(collection, key, fields)

    monkeypatch.setattr(gw, "put", _put)
    sync.enqueue_message("c-1", "P-1", "boom")
    kept = sync.get_queue()[0]["id"]
    sync.enqueue_message("c-1", "P-1", "fine")

    result = sync.trigger_sync()

    assert result.processed_count == 1
    assert [r["id"] for r in sync.get_queue()] == [kept]
    assert sync.get_queue()[0]["attempts"] == 0


def test_chat_message_without_sender_is_rejected() -> None:
    with pytest.raises(ValidationError):
        ChatMessagePayload.parse({"conversationId": "c-1", "id": "m1", "text": "hi"})
