"""
Нормализация идентификаторов студента / родителя.

У студента два пространства идентификаторов:
- student_id — форматированный номер (ST-001), ключ документов посещаемости
  и student_alerts
- uid — id аккаунта

Маппинг на поля parent_student_links:
- studentIdNumber <- student_id
- studentId       <- uid

Все запросы к связям строятся только здесь, вызывающий код не знает имён полей.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from attendance_sync.common.errors import ValidationError

LINK_STATUS_ACTIVE = "active"
LINK_FIELD_STUDENT_NUMBER = "studentIdNumber"
LINK_FIELD_STUDENT_UID = "studentId"
LINK_FIELD_PARENT = "parentId"
LINK_FIELD_STATUS = "status"


def _norm(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class StudentRef:
    student_id: str
    uid: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> StudentRef:
        student_id = _norm(payload.get("studentId"))
        if not student_id:
            raise ValidationError("studentId is required", {"field": "studentId"})
        uid = _norm(payload.get("uid") or payload.get("actorUid")) or None
        return cls(student_id=student_id, uid=uid)

    def link_filters(self) -> list[dict[str, str]]:
        """
        Фильтры активных связей parent<->student. По одному на каждую известную
        форму идентификатора; номер студента идёт первым.
        """
        filters = [
            {
                LINK_FIELD_STUDENT_NUMBER: self.student_id,
                LINK_FIELD_STATUS: LINK_STATUS_ACTIVE,
            }
        ]
        if self.uid:
            filters.append(
                {
                    LINK_FIELD_STUDENT_UID: self.uid,
                    LINK_FIELD_STATUS: LINK_STATUS_ACTIVE,
                }
            )
        return filters


def is_canonical_parent_id(parent_id: Any) -> bool:
    """
    Канонический id родителя — форматированный (P-1). Сырые uid в связях
    встречаются, но документов parent_alerts под ними нет.
    """
    pid = _norm(parent_id)
    return bool(pid) and "-" in pid


def parent_ids_from_links(links: list[dict[str, Any]]) -> list[str]:
    """
    Уникальные канонические parentId в порядке первого появления.
    """
    out: list[str] = []
    seen: set[str] = set()
    for link in links:
        if _norm(link.get(LINK_FIELD_STATUS)) != LINK_STATUS_ACTIVE:
            continue
        pid = _norm(link.get(LINK_FIELD_PARENT))
        if not is_canonical_parent_id(pid) or pid in seen:
            continue
        seen.add(pid)
        out.append(pid)
    return out
