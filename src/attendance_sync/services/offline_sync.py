"""
Фасад офлайн-синхронизации для UI-коллабораторов.

Содержит:
- enqueue / enqueue_message / get_queue / clear_queue / длина очереди (бейджи)
- trigger_sync и реакции на события сети / переднего плана
- сборку всех зависимостей из настроек (build_offline_sync)

Объект живёт столько же, сколько процесс приложения; глобального
состояния очереди нет.
"""

from __future__ import annotations

from typing import Any

from attendance_sync.common.config import Settings, get_settings
from attendance_sync.common.errors import StorageError
from attendance_sync.common.ids import new_task_id
from attendance_sync.common.logging import get_project_logger
from attendance_sync.common.metrics import set_queue_depth
from attendance_sync.common.time import utc_now_iso
from attendance_sync.common.utils import short_err
from attendance_sync.contracts.tasks import ChatMessagePayload, Task, task_from_request
from attendance_sync.domain.enums import TaskType, TriggerSource
from attendance_sync.handlers.base import HandlerContext
from attendance_sync.queue.task_store import TaskStore
from attendance_sync.remote.base import BackendApi, RemoteGateway
from attendance_sync.remote.http import HttpBackendApi, HttpClient, HttpDocumentGateway
from attendance_sync.storage.kv import KeyValueStorage, build_storage
from attendance_sync.sync.processor import SyncPassResult, SyncProcessor
from attendance_sync.sync.triggers import ConnectivityMonitor

log = get_project_logger()


class OfflineSync:
    def __init__(
        self,
        store: TaskStore,
        processor: SyncProcessor,
        *,
        initially_connected: bool = True,
    ) -> None:
        self.store = store
        self.processor = processor
        self.monitor = ConnectivityMonitor(
            self.processor.trigger_sync, initially_connected=initially_connected
        )

    @property
    def ctx(self) -> HandlerContext:
        return self.processor.ctx

    @property
    def is_online(self) -> bool:
        return self.monitor.is_connected

    # -------------------------------------------------------------------------
    # очередь
    # -------------------------------------------------------------------------
    def enqueue(
        self,
        request: dict[str, Any] | Task | str | TaskType,
        payload: dict[str, Any] | None = None,
    ) -> Task:
        """
        enqueue({"type": ..., "payload": {...}}) или enqueue(type, payload).
        StorageError — задача НЕ сохранена.
        """
        if isinstance(request, str | TaskType):
            task = Task.create(request, payload)
        else:
            task = task_from_request(request)
        self.store.enqueue(task)
        self._refresh_depth()
        return task

    def enqueue_message(self, conversation_id: str, sender_id: str, text: str) -> Task:
        """
        Отложенное сообщение беседы. id сообщения назначается здесь и
        остаётся ключом документа при любом числе повторов.
        """
        msg = ChatMessagePayload.parse(
            {
                "conversationId": conversation_id,
                "id": new_task_id("msg"),
                "senderId": sender_id,
                "text": text,
                "createdAt": utc_now_iso(),
            }
        )
        return self.enqueue(TaskType.chat_message, msg.to_payload())

    def _refresh_depth(self, *, dlq: int | None = None) -> None:
        # запись уже прошла: сбой чтения для метрики не должен выглядеть как сбой enqueue
        try:
            set_queue_depth(queue=self.store.length(), dlq=dlq)
        except StorageError as e:
            log.warning("queue_depth_refresh_failed", extra={"payload": {"err": short_err(e)}})

    def get_queue(self) -> list[dict[str, Any]]:
        return [t.to_record() for t in self.store.drain()]

    def clear_queue(self) -> None:
        self.store.clear()
        set_queue_depth(queue=0)
        log.info("queue_cleared")

    def queue_length(self) -> int:
        return self.store.length()

    def dead_letters(self) -> list[dict[str, Any]]:
        return [t.to_record() for t in self.store.dead_letters()]

    def retry_dead_letters(self) -> int:
        count = self.store.requeue_dead_letters()
        self._refresh_depth(dlq=0)
        return count

    # -------------------------------------------------------------------------
    # триггеры
    # -------------------------------------------------------------------------
    def trigger_sync(self, source: TriggerSource = TriggerSource.manual) -> SyncPassResult:
        log.info("sync_triggered", extra={"payload": {"source": source.value}})
        return self.processor.trigger_sync(source)

    def on_connectivity_change(self, is_connected: bool) -> SyncPassResult | None:
        result = self.monitor.update(is_connected)
        return result if isinstance(result, SyncPassResult) else None

    def on_app_foreground(self) -> SyncPassResult | None:
        result = self.monitor.app_foregrounded()
        return result if isinstance(result, SyncPassResult) else None


def build_offline_sync(
    settings: Settings | None = None,
    *,
    storage: KeyValueStorage | None = None,
    gateway: RemoteGateway | None = None,
    backend: BackendApi | None = None,
    initially_connected: bool = True,
) -> OfflineSync:
    s = settings or get_settings()
    if gateway is None or backend is None:
        client = HttpClient.from_settings(s)
        gateway = gateway or HttpDocumentGateway(client)
        backend = backend or HttpBackendApi(client)

    store = TaskStore(storage or build_storage(s), key=s.queue_key)
    processor = SyncProcessor(
        store,
        HandlerContext(gateway=gateway, backend=backend),
        max_attempts=int(s.sync_max_attempts),
    )
    log.info(
        "offline_sync_built",
        extra={
            "payload": {
                "queue_storage": s.queue_storage,
                "queue_key": s.queue_key,
                "max_attempts": int(s.sync_max_attempts),
            }
        },
    )
    return OfflineSync(store, processor, initially_connected=initially_connected)
