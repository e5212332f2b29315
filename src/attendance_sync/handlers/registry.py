"""
Реестр обработчиков: тип задачи -> функция.

Неизвестный тип -> UnknownTaskTypeError: процессор паркует такую задачу
(она остаётся в очереди для будущей версии, которая его понимает).
"""

from __future__ import annotations

from attendance_sync.common.errors import UnknownTaskTypeError
from attendance_sync.domain.enums import TaskType

from .base import TaskHandler
from .forwarding import handle_attendance_write, handle_notification_write
from .messages import handle_chat_message
from .undo_scan import handle_undo_attendance_scan

HANDLERS: dict[TaskType, TaskHandler] = {
    TaskType.attendance: handle_attendance_write,
    TaskType.notification: handle_notification_write,
    TaskType.undo_attendance_scan: handle_undo_attendance_scan,
    TaskType.chat_message: handle_chat_message,
}


def resolve_handler(
    task_type: str, handlers: dict[TaskType, TaskHandler] | None = None
) -> TaskHandler:
    known = TaskType.parse(task_type)
    handler = (handlers if handlers is not None else HANDLERS).get(known) if known else None
    if handler is None:
        raise UnknownTaskTypeError(str(task_type))
    return handler
