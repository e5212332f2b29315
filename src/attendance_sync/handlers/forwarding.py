"""
Пересылка отложенных записей в каноническое API.

Сервер дедуплицирует по естественному ключу, поэтому повторная отправка безопасна.
"""

from __future__ import annotations

from typing import Any

from attendance_sync.common.logging import get_project_logger

from .base import HandlerContext

log = get_project_logger()


def handle_attendance_write(payload: dict[str, Any], ctx: HandlerContext) -> None:
    ctx.backend.submit("attendance", payload)
    log.info(
        "attendance_synced",
        extra={"payload": {"student_id": payload.get("studentId"), "scan_id": payload.get("scanId")}},
    )


def handle_notification_write(payload: dict[str, Any], ctx: HandlerContext) -> None:
    ctx.backend.submit("notifications", payload)
    log.info("notification_synced", extra={"payload": {"notification_id": payload.get("id")}})
