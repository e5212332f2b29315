"""
Локальная очередь задач (Task Store).

Назначение:
- durable FIFO отложенных мутаций (переживает перезапуск процесса)
- dead-letter список для задач, исчерпавших попытки

Важно:
- вся очередь хранится под одним ключом как JSON-массив
- каждая запись — полная перезапись массива одной операцией хранилища
- кэша в памяти нет: при ошибке записи вызывающий получает StorageError,
  а состояние хранилища остаётся прежним
- один writer на процесс (RLock); между процессами — last writer wins
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable

from attendance_sync.common.errors import StorageError, ValidationError
from attendance_sync.common.logging import get_project_logger
from attendance_sync.common.utils import short_err
from attendance_sync.contracts.tasks import Task
from attendance_sync.storage.kv import KeyValueStorage

log = get_project_logger()

DEFAULT_QUEUE_KEY = "offline_sync_queue"


def _dlq_key(queue_key: str) -> str:
    return f"{queue_key}:dlq"


class TaskStore:
    def __init__(self, storage: KeyValueStorage, key: str = DEFAULT_QUEUE_KEY) -> None:
        self.storage = storage
        self.key = key
        self.dlq_key = _dlq_key(key)
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # (де)сериализация снапшота
    # -------------------------------------------------------------------------
    def _load(self, key: str) -> list[Task]:
        raw = self.storage.get(key)
        if raw is None or raw == "":
            return []
        try:
            records = json.loads(raw)
        except ValueError as e:
            raise StorageError("Persisted queue is not valid JSON", {"key": key}) from e
        if not isinstance(records, list):
            raise StorageError("Persisted queue is not a list", {"key": key})
        try:
            return [Task.from_record(r) for r in records]
        except (ValidationError, TypeError, ValueError) as e:
            raise StorageError(
                "Persisted queue has a malformed record", {"key": key, "err": short_err(e)}
            ) from e

    def _save(self, key: str, tasks: Iterable[Task]) -> None:
        raw = json.dumps([t.to_record() for t in tasks], ensure_ascii=False)
        self.storage.set(key, raw)

    # -------------------------------------------------------------------------
    # очередь
    # -------------------------------------------------------------------------
    def enqueue(self, task: Task) -> Task:
        with self._lock:
            tasks = self._load(self.key)
            if any(t.id == task.id for t in tasks):
                # повторный enqueue того же объекта не дублирует задачу
                return task
            tasks.append(task)
            self._save(self.key, tasks)
        log.info(
            "task_enqueued",
            extra={"payload": {"task_id": task.id, "type": task.type, "queue_len": len(tasks)}},
        )
        return task

    def drain(self) -> list[Task]:
        """Снапшот очереди (FIFO). Хранилище не меняется."""
        with self._lock:
            return self._load(self.key)

    def replace(self, remaining: list[Task]) -> None:
        with self._lock:
            self._save(self.key, remaining)

    def clear(self) -> None:
        with self._lock:
            self._save(self.key, [])

    def length(self) -> int:
        return len(self.drain())

    def settle(self, snapshot: list[Task], survivors: list[Task]) -> list[Task]:
        """
        Итог прохода: survivors + задачи, добавленные во время прохода
        (есть в хранилище, но не было в snapshot). Возвращает новую очередь.
        """
        with self._lock:
            seen = {t.id for t in snapshot}
            arrived = [t for t in self._load(self.key) if t.id not in seen]
            remaining = list(survivors) + arrived
            if remaining:
                self.replace(remaining)
            else:
                self.clear()
            return remaining

    # -------------------------------------------------------------------------
    # dead-letter
    # -------------------------------------------------------------------------
    def dead_letter(self, tasks: list[Task]) -> None:
        if not tasks:
            return
        with self._lock:
            current = self._load(self.dlq_key)
            known = {t.id for t in current}
            current.extend(t for t in tasks if t.id not in known)
            self._save(self.dlq_key, current)
        log.warning(
            "tasks_dead_lettered",
            extra={"payload": {"task_ids": [t.id for t in tasks], "dlq_len": len(current)}},
        )

    def dead_letters(self) -> list[Task]:
        with self._lock:
            return self._load(self.dlq_key)

    def clear_dead_letters(self) -> None:
        with self._lock:
            self._save(self.dlq_key, [])

    def requeue_dead_letters(self) -> int:
        """
        Вернуть dead-letter задачи в конец очереди со сброшенным счётчиком.
        Очередь пишется раньше, чем чистится DLQ: при сбое задача может
        оказаться в обоих списках, но не потеряется.
        """
        with self._lock:
            dead = self._load(self.dlq_key)
            if not dead:
                return 0
            tasks = self._load(self.key)
            queued = {t.id for t in tasks}
            tasks.extend(t.reset_attempts() for t in dead if t.id not in queued)
            self._save(self.key, tasks)
            self._save(self.dlq_key, [])
        log.info("dead_letters_requeued", extra={"payload": {"count": len(dead)}})
        return len(dead)
