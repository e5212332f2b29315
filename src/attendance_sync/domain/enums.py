"""
Доменные перечисления (enum).

Используются во всей системе:
- типы задач локальной очереди
- исходы обработки задачи и статус прохода
- источники триггеров синхронизации
"""

from __future__ import annotations

import enum


class TaskType(str, enum.Enum):
    """
    Известные типы задач. Значения = persisted `type` в очереди.
    """

    attendance = "attendance"
    notification = "notification"
    undo_attendance_scan = "undo_attendance_scan"
    chat_message = "chat_message"

    @classmethod
    def parse(cls, raw: str | None) -> TaskType | None:
        try:
            return cls(str(raw or ""))
        except ValueError:
            return None


class TaskOutcome(str, enum.Enum):
    """
    Исход обработки одной задачи в проходе.
    """

    succeeded = "succeeded"
    failed = "failed"
    parked = "parked"
    dead_lettered = "dead_lettered"


class ProcessorState(str, enum.Enum):
    """
    Состояние sync-процессора.
    """

    idle = "idle"
    draining = "draining"


class SyncPassStatus(str, enum.Enum):
    empty = "empty"
    completed = "completed"
    coalesced = "coalesced"
    error = "error"


class TriggerSource(str, enum.Enum):
    network_restored = "network_restored"
    app_foreground = "app_foreground"
    manual = "manual"
    interval = "interval"


class AlertType(str, enum.Enum):
    attendance_scan = "attendance_scan"
