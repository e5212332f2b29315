"""
Интерактивная отмена скана посещаемости.

- проверка окна допустимости (по умолчанию 5 минут с момента скана)
- online: каскад выполняется сразу, результат — пользователю
- offline: задача ставится в очередь, пользователь видит "queued"
- online, но каскад упал частично: задача ставится в очередь, чтобы
  ретраи довели откат до конца
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime

from attendance_sync.common.config import get_settings
from attendance_sync.common.errors import PartialCascadeFailure, ValidationError
from attendance_sync.common.logging import get_project_logger
from attendance_sync.common.time import utc_now, utc_now_iso
from attendance_sync.common.utils import short_err
from attendance_sync.contracts.tasks import UndoAttendanceScanPayload
from attendance_sync.domain.eligibility import undo_eligibility
from attendance_sync.domain.enums import TaskType
from attendance_sync.domain.identity import StudentRef
from attendance_sync.handlers.undo_scan import undo_attendance_scan

from .offline_sync import OfflineSync

log = get_project_logger()

MSG_DONE = "Entry has been removed successfully."
MSG_QUEUED = "Entry removal has been queued and will be processed when connection is restored."
MSG_FAILED = "Failed to remove entry. Please try again."
MSG_EXPIRED = "Undo is no longer available for this entry."


class UndoStatus(str, enum.Enum):
    done = "done"
    queued = "queued"
    failed = "failed"
    expired = "expired"


@dataclass
class RecentScan:
    scan_id: str
    scanned_at: datetime | str | int | float | None


@dataclass
class UndoOutcome:
    status: UndoStatus
    message: str
    task_id: str | None = None
    error: str | None = None


class UndoService:
    def __init__(self, sync: OfflineSync, *, window_sec: int | None = None) -> None:
        self.sync = sync
        self.window_sec = int(
            window_sec if window_sec is not None else get_settings().undo_window_sec
        )

    def request_undo(
        self, scan: RecentScan, student: StudentRef, now: datetime | None = None
    ) -> UndoOutcome:
        eligibility = undo_eligibility(scan.scanned_at, now or utc_now(), self.window_sec)
        if not eligibility.eligible:
            log.info(
                "undo_rejected_window_closed",
                extra={"payload": {"scan_id": scan.scan_id, "student_id": student.student_id}},
            )
            return UndoOutcome(status=UndoStatus.expired, message=MSG_EXPIRED)

        try:
            payload = UndoAttendanceScanPayload.parse(
                {
                    "scanId": scan.scan_id,
                    "studentId": student.student_id,
                    "uid": student.uid,
                    "requestedAt": utc_now_iso(),
                }
            )
        except ValidationError as e:
            return UndoOutcome(status=UndoStatus.failed, message=MSG_FAILED, error=short_err(e))

        if not self.sync.is_online:
            return self._queue(payload, reason="offline")

        try:
            undo_attendance_scan(self.sync.ctx.gateway, payload)
        except PartialCascadeFailure as e:
            log.warning(
                "undo_inline_partial_failure",
                extra={
                    "payload": {
                        "scan_id": payload.scan_id,
                        "transient": e.transient,
                        "failed_steps": len(e.failed_steps),
                    }
                },
            )
            return self._queue(payload, reason="inline_partial_failure")

        log.info(
            "undo_inline_done",
            extra={"payload": {"scan_id": payload.scan_id, "student_id": payload.student_id}},
        )
        return UndoOutcome(status=UndoStatus.done, message=MSG_DONE)

    def _queue(self, payload: UndoAttendanceScanPayload, *, reason: str) -> UndoOutcome:
        task = self.sync.enqueue(TaskType.undo_attendance_scan, payload.to_payload())
        log.info(
            "undo_queued",
            extra={"payload": {"scan_id": payload.scan_id, "task_id": task.id, "reason": reason}},
        )
        return UndoOutcome(status=UndoStatus.queued, message=MSG_QUEUED, task_id=task.id)
