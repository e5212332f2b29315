"""
Каскад отмены скана посещаемости (undo_attendance_scan).

Шаги (каждый независимо устойчив к ошибкам):
1. удалить ScanRecord student_attendances/{studentId}/scans/{scanId}
   (нет документа — уже отменено, успех)
2. найти активные связи parent<->student по обоим идентификаторам студента
3. для каждого родителя отфильтровать parent_alerts/{parentId}.items
4. то же для student_alerts/{studentId}

Контракт: это НЕ транзакция. Fan-out best-effort по каждой цели; если упал
хотя бы один шаг, поднимается PartialCascadeFailure и задача ретраится
целиком. Уже выполненные шаги при повторе — no-op (delete-if-exists,
filter-and-rewrite), поэтому ретраи сходятся к полному откату.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from attendance_sync.common.errors import PartialCascadeFailure, is_transient
from attendance_sync.common.logging import get_project_logger
from attendance_sync.common.metrics import record_cascade_step
from attendance_sync.common.utils import short_err
from attendance_sync.contracts.documents import (
    ALERT_ITEMS_FIELD,
    PARENT_ALERTS,
    PARENT_STUDENT_LINKS,
    STUDENT_ALERTS,
    alert_items,
    scans_collection,
    without_scan_alert,
)
from attendance_sync.contracts.tasks import UndoAttendanceScanPayload
from attendance_sync.domain.identity import StudentRef, parent_ids_from_links
from attendance_sync.remote.base import RemoteGateway

from .base import HandlerContext

log = get_project_logger()


@dataclass
class CascadeReport:
    scan_deleted: bool = False
    parents_discovered: list[str] = field(default_factory=list)
    feeds_rewritten: list[str] = field(default_factory=list)
    failed_steps: list[dict[str, Any]] = field(default_factory=list)

    def fail(self, step: str, target: str, err: BaseException) -> None:
        self.failed_steps.append(
            {"step": step, "target": target, "err": short_err(err), "transient": is_transient(err)}
        )


def _strip_feed(
    gateway: RemoteGateway, collection: str, key: str, *, scan_id: str, student_id: str
) -> bool:
    """
    Read-filter-rewrite одной ленты. True — лента переписана.
    Нет документа или нечего удалять — документ не трогаем.
    """
    doc = gateway.get(collection, key)
    if doc is None:
        return False
    items = alert_items(doc)
    filtered = without_scan_alert(items, scan_id=scan_id, student_id=student_id)
    if len(filtered) == len(items):
        return False
    gateway.put(collection, key, {ALERT_ITEMS_FIELD: filtered})
    return True


def undo_attendance_scan(
    gateway: RemoteGateway, undo: UndoAttendanceScanPayload
) -> CascadeReport:
    report = CascadeReport()
    student = StudentRef(student_id=undo.student_id, uid=undo.uid)

    # 1. ScanRecord
    try:
        gateway.delete(scans_collection(student.student_id), undo.scan_id)
        report.scan_deleted = True
        record_cascade_step(target="scan", ok=True)
    except Exception as e:
        report.fail("delete_scan", undo.scan_id, e)
        record_cascade_step(target="scan", ok=False)

    # 2. связи (один упавший запрос не отменяет результаты другого)
    links: list[dict[str, Any]] = []
    for filters in student.link_filters():
        try:
            links.extend(d.data for d in gateway.query(PARENT_STUDENT_LINKS, filters))
            record_cascade_step(target="links", ok=True)
        except Exception as e:
            report.fail("discover_links", ",".join(sorted(filters)), e)
            record_cascade_step(target="links", ok=False)
    report.parents_discovered = parent_ids_from_links(links)

    # 3. ленты родителей
    for parent_id in report.parents_discovered:
        try:
            if _strip_feed(
                gateway,
                PARENT_ALERTS,
                parent_id,
                scan_id=undo.scan_id,
                student_id=student.student_id,
            ):
                report.feeds_rewritten.append(f"{PARENT_ALERTS}/{parent_id}")
            record_cascade_step(target="parent_feed", ok=True)
        except Exception as e:
            report.fail("parent_feed", parent_id, e)
            record_cascade_step(target="parent_feed", ok=False)
            log.warning(
                "undo_parent_feed_failed",
                extra={"payload": {"parent_id": parent_id, "err": short_err(e)}},
            )

    # 4. лента студента
    try:
        if _strip_feed(
            gateway,
            STUDENT_ALERTS,
            student.student_id,
            scan_id=undo.scan_id,
            student_id=student.student_id,
        ):
            report.feeds_rewritten.append(f"{STUDENT_ALERTS}/{student.student_id}")
        record_cascade_step(target="student_feed", ok=True)
    except Exception as e:
        report.fail("student_feed", student.student_id, e)
        record_cascade_step(target="student_feed", ok=False)

    log.info(
        "undo_attendance_scan_cascade",
        extra={
            "payload": {
                "scan_id": undo.scan_id,
                "student_id": student.student_id,
                "scan_deleted": report.scan_deleted,
                "parents": report.parents_discovered,
                "feeds_rewritten": report.feeds_rewritten,
                "failed_steps": len(report.failed_steps),
            }
        },
    )
    if report.failed_steps:
        raise PartialCascadeFailure(report.failed_steps)
    return report


def handle_undo_attendance_scan(payload: dict[str, Any], ctx: HandlerContext) -> CascadeReport:
    return undo_attendance_scan(ctx.gateway, UndoAttendanceScanPayload.parse(payload))
