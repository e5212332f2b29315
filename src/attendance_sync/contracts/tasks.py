"""
Контракты задач локальной очереди.

Правила:
- payload должен быть JSON-совместимым
- Task неизменяем: неудачная попытка порождает новый Task (with_failure)
- persisted-формат: {"id", "type", "payload", "enqueuedAt", "attempts", "lastError"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

from attendance_sync.common.errors import ValidationError
from attendance_sync.common.ids import content_task_id, new_task_id
from attendance_sync.common.time import utc_now_iso
from attendance_sync.domain.enums import TaskType


@dataclass(frozen=True)
class Task:
    type: str
    payload: dict[str, Any]
    id: str = field(default_factory=new_task_id)
    enqueued_at: str = field(default_factory=utc_now_iso)
    attempts: int = 0
    last_error: str | None = None

    @classmethod
    def create(cls, task_type: str | TaskType, payload: dict[str, Any] | None) -> Task:
        raw_type = task_type.value if isinstance(task_type, TaskType) else str(task_type or "")
        raw_type = raw_type.strip()
        if not raw_type:
            raise ValidationError("Task type is required")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("Task payload must be an object", {"type": raw_type})
        try:
            # копия через JSON: payload отвязан от объекта вызывающего и гарантированно сериализуем
            frozen_payload = json.loads(json.dumps(payload, ensure_ascii=False))
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Task payload is not JSON-serializable", {"type": raw_type, "err": str(e)[:200]}
            ) from e
        return cls(type=raw_type, payload=frozen_payload)

    @property
    def known_type(self) -> TaskType | None:
        return TaskType.parse(self.type)

    def with_failure(self, error: str) -> Task:
        return replace(self, attempts=self.attempts + 1, last_error=(error or "")[:300])

    def with_error(self, error: str) -> Task:
        """Та же задача, но с обновлённым last_error (попытка не считается)."""
        return replace(self, last_error=(error or "")[:300])

    def reset_attempts(self) -> Task:
        return replace(self, attempts=0, last_error=None)

    # -------------------------------------------------------------------------
    # (де)сериализация
    # -------------------------------------------------------------------------
    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "enqueuedAt": self.enqueued_at,
            "attempts": self.attempts,
            "lastError": self.last_error,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Task:
        if not isinstance(record, dict):
            raise ValidationError("Task record must be an object")
        task_id = str(record.get("id") or "") or content_task_id(record)
        payload = record.get("payload")
        enqueued_at = record.get("enqueuedAt") or record.get("enqueued_at")
        if not enqueued_at and isinstance(payload, dict):
            # старые клиенты клали время только в payload.timestamp
            enqueued_at = payload.get("timestamp")
        return cls(
            id=task_id,
            type=str(record.get("type") or ""),
            payload=payload if isinstance(payload, dict) else {},
            enqueued_at=str(enqueued_at or ""),
            attempts=int(record.get("attempts") or 0),
            last_error=record.get("lastError"),
        )


def task_from_request(request: dict[str, Any] | Task) -> Task:
    """
    {type, payload} от UI -> Task.
    """
    if isinstance(request, Task):
        return request
    if not isinstance(request, dict):
        raise ValidationError("Enqueue request must be an object")
    return Task.create(request.get("type") or "", request.get("payload"))


# =============================================================================
# PAYLOAD-КОНТРАКТЫ
# =============================================================================
@dataclass(frozen=True)
class UndoAttendanceScanPayload:
    scan_id: str
    student_id: str
    uid: str | None = None
    requested_at: str | None = None

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> UndoAttendanceScanPayload:
        scan_id = str(payload.get("scanId") or "").strip()
        student_id = str(payload.get("studentId") or "").strip()
        if not scan_id or not student_id:
            raise ValidationError(
                "Missing scanId or studentId in undo payload",
                {"has_scan_id": bool(scan_id), "has_student_id": bool(student_id)},
            )
        uid = str(payload.get("uid") or payload.get("actorUid") or "").strip() or None
        requested_at = payload.get("requestedAt") or payload.get("timestamp")
        return cls(
            scan_id=scan_id,
            student_id=student_id,
            uid=uid,
            requested_at=str(requested_at) if requested_at is not None else None,
        )

    def to_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {"scanId": self.scan_id, "studentId": self.student_id}
        if self.uid:
            out["uid"] = self.uid
        if self.requested_at:
            out["requestedAt"] = self.requested_at
        return out


@dataclass(frozen=True)
class ChatMessagePayload:
    """
    Отложенное сообщение беседы. id назначается при постановке в очередь
    и служит ключом документа сообщения: повторная отправка не плодит копии.
    """

    conversation_id: str
    message_id: str
    sender_id: str
    text: str
    created_at: str | None = None

    @classmethod
    def parse(cls, payload: dict[str, Any]) -> ChatMessagePayload:
        conversation_id = str(payload.get("conversationId") or "").strip()
        message_id = str(payload.get("id") or payload.get("messageId") or "").strip()
        sender_id = str(payload.get("senderId") or "").strip()
        text = payload.get("text")
        if not conversation_id or not message_id or not sender_id or not isinstance(text, str):
            raise ValidationError(
                "Missing conversationId, id, senderId or text in message payload",
                {
                    "has_conversation_id": bool(conversation_id),
                    "has_id": bool(message_id),
                    "has_sender_id": bool(sender_id),
                },
            )
        created_at = payload.get("createdAt")
        return cls(
            conversation_id=conversation_id,
            message_id=message_id,
            sender_id=sender_id,
            text=text,
            created_at=str(created_at) if created_at else None,
        )

    def to_payload(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "conversationId": self.conversation_id,
            "id": self.message_id,
            "senderId": self.sender_id,
            "text": self.text,
        }
        if self.created_at:
            out["createdAt"] = self.created_at
        return out
