"""
Контракты remote-документов, которые трогает синхронизация.

Коллекции:
- student_attendances/{studentId}/scans/{scanId} — ScanRecord
  (entry, timeOfScanned, scanLocation, scannerDeviceId)
- student_alerts/{studentId}  — лента алертов студента {items: [...]}
- parent_alerts/{parentId}    — лента алертов родителя {items: [...]}
- parent_student_links        — связи (только чтение)
- conversations/{conversationId}             — беседа {id, updatedAt}
- conversations/{conversationId}/messages/{id} — сообщение
  (senderId, text, createdAt, status)
"""

from __future__ import annotations

from typing import Any

from attendance_sync.domain.enums import AlertType

STUDENT_ATTENDANCES = "student_attendances"
STUDENT_ALERTS = "student_alerts"
PARENT_ALERTS = "parent_alerts"
PARENT_STUDENT_LINKS = "parent_student_links"
CONVERSATIONS = "conversations"

ALERT_ITEMS_FIELD = "items"


def scans_collection(student_id: str) -> str:
    return f"{STUDENT_ATTENDANCES}/{student_id}/scans"


def messages_collection(conversation_id: str) -> str:
    return f"{CONVERSATIONS}/{conversation_id}/messages"


def alert_items(doc: dict[str, Any] | None) -> list[dict[str, Any]]:
    if not doc:
        return []
    items = doc.get(ALERT_ITEMS_FIELD)
    return list(items) if isinstance(items, list) else []


def matches_scan_alert(item: Any, *, scan_id: str, student_id: str) -> bool:
    """
    Совпадение только по составному ключу (type, scanId, studentId).
    Один scanId в общей ленте может принадлежать разным студентам.
    """
    if not isinstance(item, dict):
        return False
    return (
        item.get("type") == AlertType.attendance_scan.value
        and str(item.get("scanId")) == str(scan_id)
        and str(item.get("studentId")) == str(student_id)
    )


def without_scan_alert(
    items: list[dict[str, Any]], *, scan_id: str, student_id: str
) -> list[dict[str, Any]]:
    return [i for i in items if not matches_scan_alert(i, scan_id=scan_id, student_id=student_id)]
