"""
Отправка отложенных сообщений бесед (chat_message).

Порядок:
1. upsert conversations/{conversationId} (merge: id, updatedAt) — беседа
   могла ещё не существовать на сервере
2. запись conversations/{conversationId}/messages/{id} со status=sent

Оба шага — merge-записи по фиксированным ключам, повтор безопасен.
Из очереди уходит только успешно отправленное сообщение; остальные
сообщения той же беседы обрабатываются независимо.
"""

from __future__ import annotations

from typing import Any

from attendance_sync.common.logging import get_project_logger
from attendance_sync.common.time import utc_now_iso
from attendance_sync.contracts.documents import CONVERSATIONS, messages_collection
from attendance_sync.contracts.tasks import ChatMessagePayload

from .base import HandlerContext

log = get_project_logger()


def send_chat_message(ctx: HandlerContext, msg: ChatMessagePayload) -> None:
    now = utc_now_iso()
    ctx.gateway.put(CONVERSATIONS, msg.conversation_id, {"id": msg.conversation_id, "updatedAt": now})
    ctx.gateway.put(
        messages_collection(msg.conversation_id),
        msg.message_id,
        {
            "senderId": msg.sender_id,
            "text": msg.text,
            "createdAt": msg.created_at or now,
            "status": "sent",
        },
    )
    log.info(
        "chat_message_sent",
        extra={"payload": {"conversation_id": msg.conversation_id, "message_id": msg.message_id}},
    )


def handle_chat_message(payload: dict[str, Any], ctx: HandlerContext) -> None:
    send_chat_message(ctx, ChatMessagePayload.parse(payload))
